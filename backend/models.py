from sqlalchemy import Column, Integer, String, Numeric, DateTime, Boolean, Text, JSON, Index
from datetime import datetime
import enum
import uuid
from database import Base


def new_id() -> str:
    """Server-assigned document id"""
    return uuid.uuid4().hex


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    CASHIER = "cashier"


class CustomerType(str, enum.Enum):
    RETAIL = "retail"
    WHOLESALE = "wholesale"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    CARD = "card"
    UPI = "upi"
    CREDIT = "credit"


class PaymentStatus(str, enum.Enum):
    PAID = "paid"
    PARTIAL = "partial"
    UNPAID = "unpaid"


class BillStatus(str, enum.Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"  # defined, never transitioned to
    RETURNED = "returned"  # defined, never transitioned to


class Account(Base):
    """Identity record owned by the authentication provider"""
    __tablename__ = "accounts"

    id = Column(String(32), primary_key=True, default=new_id)
    email = Column(String(100), unique=True, nullable=False, index=True)
    hashed_password = Column(String(255), nullable=False)
    display_name = Column(String(100), nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<Account {self.email}>"


class UserProfile(Base):
    """Shop membership profile, keyed by the account uid"""
    __tablename__ = "users"

    id = Column(String(32), primary_key=True)  # same value as Account.id
    email = Column(String(100), nullable=False)
    display_name = Column(String(100), nullable=False)
    role = Column(String(20), nullable=False, default=UserRole.CASHIER.value)
    shop_id = Column(String(32), nullable=False, index=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<UserProfile {self.email} (Shop: {self.shop_id})>"


class Shop(Base):
    """Tenant boundary - every other document carries a shop_id"""
    __tablename__ = "shops"

    id = Column(String(32), primary_key=True, default=new_id)
    name = Column(String(100), nullable=False)
    address = Column(Text, nullable=True)
    phone = Column(String(20), nullable=True)
    email = Column(String(100), nullable=True)
    gst_number = Column(String(20), nullable=True)
    logo_url = Column(String(255), nullable=True)
    timezone = Column(String(50), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Shop {self.name}>"


class Category(Base):
    __tablename__ = "categories"

    id = Column(String(32), primary_key=True, default=new_id)
    shop_id = Column(String(32), nullable=False, index=True)
    name = Column(String(50), nullable=False)  # unique per shop (checked before write)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index('idx_categories_shop_name', 'shop_id', 'name'),
    )

    def __repr__(self):
        return f"<Category {self.name} (Shop: {self.shop_id})>"


class Product(Base):
    __tablename__ = "products"

    id = Column(String(32), primary_key=True, default=new_id)
    shop_id = Column(String(32), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    sku = Column(String(50), nullable=False)  # unique per shop (checked before write)
    barcode = Column(String(50), nullable=True, index=True)
    category_id = Column(String(32), nullable=True, index=True)
    category_name = Column(String(50), nullable=True)  # denormalized copy of Category.name
    retail_price = Column(Numeric(12, 2), nullable=False, default=0)
    wholesale_price = Column(Numeric(12, 2), nullable=True)
    cost_price = Column(Numeric(12, 2), nullable=False, default=0)
    current_stock = Column(Integer, nullable=False, default=0)
    unit = Column(String(20), default="pcs")
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index('idx_products_shop_sku', 'shop_id', 'sku'),
    )

    def __repr__(self):
        return f"<Product {self.name} ({self.sku})>"


class Customer(Base):
    __tablename__ = "customers"

    id = Column(String(32), primary_key=True, default=new_id)
    shop_id = Column(String(32), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    phone = Column(String(20), nullable=False)  # unique per shop (checked before write)
    email = Column(String(100), nullable=True)
    address = Column(Text, nullable=True)
    customer_type = Column(String(20), nullable=False, default=CustomerType.RETAIL.value)
    credit_limit = Column(Numeric(12, 2), nullable=False, default=0)  # 0 = no limit
    outstanding_balance = Column(Numeric(12, 2), nullable=False, default=0)  # running total, no ledger
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index('idx_customers_shop_phone', 'shop_id', 'phone'),
    )

    def __repr__(self):
        return f"<Customer {self.name} (Shop: {self.shop_id})>"


class Bill(Base):
    """Checkout record. Line items are embedded snapshots of the products sold."""
    __tablename__ = "bills"

    id = Column(String(32), primary_key=True, default=new_id)
    shop_id = Column(String(32), nullable=False, index=True)
    bill_number = Column(String(20), nullable=False)
    bill_date = Column(DateTime, nullable=False, default=datetime.utcnow)
    customer_id = Column(String(32), nullable=True, index=True)
    customer_name = Column(String(100), nullable=False, default="Walk-in")
    customer_type = Column(String(20), nullable=False, default=CustomerType.RETAIL.value)
    items = Column(JSON, nullable=False, default=list)
    subtotal = Column(Numeric(12, 2), nullable=False, default=0)
    discount = Column(Numeric(12, 2), nullable=False, default=0)
    tax_rate = Column(Numeric(5, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(12, 2), nullable=False, default=0)
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    total_profit = Column(Numeric(12, 2), nullable=False, default=0)
    paid_amount = Column(Numeric(12, 2), nullable=False, default=0)
    balance_amount = Column(Numeric(12, 2), nullable=False, default=0)
    payment_status = Column(String(20), nullable=False)
    payment_method = Column(String(20), nullable=False)
    bill_status = Column(String(20), nullable=False, default=BillStatus.ACTIVE.value)
    created_by = Column(String(32), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index('idx_bills_shop_number', 'shop_id', 'bill_number'),
        Index('idx_bills_shop_created', 'shop_id', 'created_at'),
        Index('idx_bills_shop_customer_status', 'shop_id', 'customer_id', 'payment_status'),
    )

    def __repr__(self):
        return f"<Bill {self.bill_number} Total:{self.total_amount}>"


class Collection(Base):
    """Append-only payment record against one bill"""
    __tablename__ = "collections"

    id = Column(String(32), primary_key=True, default=new_id)
    shop_id = Column(String(32), nullable=False, index=True)
    bill_id = Column(String(32), nullable=False, index=True)
    customer_id = Column(String(32), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    payment_method = Column(String(20), nullable=False)
    payment_date = Column(DateTime, nullable=False, default=datetime.utcnow)

    def __repr__(self):
        return f"<Collection {self.id} Amount:{self.amount} Bill:{self.bill_id}>"


# Collection name -> mapped class, used by the document store
COLLECTIONS = {
    "accounts": Account,
    "users": UserProfile,
    "shops": Shop,
    "categories": Category,
    "products": Product,
    "customers": Customer,
    "bills": Bill,
    "collections": Collection,
}
