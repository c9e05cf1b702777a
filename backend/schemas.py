from pydantic import BaseModel, EmailStr, Field
from typing import Optional, List
from datetime import datetime, date
from decimal import Decimal
from models import UserRole, CustomerType, PaymentMethod, PaymentStatus, BillStatus


# Auth Schemas
class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    display_name: Optional[str] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class SessionContext(BaseModel):
    """Resolved caller identity + shop scope, injected into every use case"""
    uid: str
    email: str = ""
    display_name: str = "User"
    role: UserRole = UserRole.ADMIN
    shop_id: str
    is_active: bool = True


# Shop Schemas
class ShopUpdate(BaseModel):
    name: str = Field(..., min_length=3)
    address: str = Field(..., min_length=5)
    phone: str = Field(..., min_length=10)
    email: EmailStr
    gst_number: Optional[str] = None
    logo_url: Optional[str] = None
    timezone: Optional[str] = None


class ShopResponse(BaseModel):
    id: str
    name: str
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    gst_number: Optional[str] = None
    logo_url: Optional[str] = None
    timezone: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# Category Schemas
class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = None


class CategoryUpdate(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = None


class CategoryResponse(BaseModel):
    id: str
    shop_id: str
    name: str
    description: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# Product Schemas
class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    sku: Optional[str] = Field(None, max_length=50, description="Generated when omitted")
    barcode: Optional[str] = None
    category_id: Optional[str] = None
    retail_price: Decimal = Field(..., ge=0)
    wholesale_price: Optional[Decimal] = Field(None, ge=0)
    cost_price: Decimal = Field(Decimal("0"), ge=0)
    current_stock: int = 0
    unit: str = "pcs"


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    sku: Optional[str] = Field(None, min_length=1, max_length=50)
    barcode: Optional[str] = None
    category_id: Optional[str] = None
    retail_price: Optional[Decimal] = Field(None, ge=0)
    wholesale_price: Optional[Decimal] = Field(None, ge=0)
    cost_price: Optional[Decimal] = Field(None, ge=0)
    current_stock: Optional[int] = None
    unit: Optional[str] = None


class ProductResponse(BaseModel):
    id: str
    shop_id: str
    name: str
    sku: str
    barcode: Optional[str] = None
    category_id: Optional[str] = None
    category_name: Optional[str] = None
    retail_price: Decimal
    wholesale_price: Optional[Decimal] = None
    cost_price: Optional[Decimal] = None
    current_stock: int = 0
    unit: str = "pcs"
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# Customer Schemas
class CustomerCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    phone: str = Field(..., min_length=10, max_length=20)
    email: Optional[str] = None
    address: Optional[str] = None
    customer_type: CustomerType = CustomerType.RETAIL
    credit_limit: Decimal = Field(Decimal("0"), ge=0)


class CustomerUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = Field(None, min_length=10, max_length=20)
    email: Optional[str] = None
    address: Optional[str] = None
    customer_type: Optional[CustomerType] = None
    credit_limit: Optional[Decimal] = Field(None, ge=0)
    is_active: Optional[bool] = None


class CustomerResponse(BaseModel):
    id: str
    shop_id: str
    name: str
    phone: str
    email: Optional[str] = None
    address: Optional[str] = None
    customer_type: CustomerType = CustomerType.RETAIL
    credit_limit: Decimal = Decimal("0")
    outstanding_balance: Decimal = Decimal("0")
    is_active: bool = True
    created_at: Optional[datetime] = None


# Bill Schemas
class BillItem(BaseModel):
    """Snapshot of a product at sale time, embedded in the bill"""
    product_id: str
    product_name: str
    sku: str
    category_id: Optional[str] = None
    category_name: Optional[str] = None
    quantity: int
    unit: str = "pcs"
    cost_price: Decimal = Decimal("0")
    selling_price: Decimal
    discount: Decimal = Decimal("0")  # carried, not used downstream
    tax: Decimal = Decimal("0")  # carried, not used downstream
    total_amount: Decimal
    profit_per_item: Optional[Decimal] = None
    total_profit: Optional[Decimal] = None


class BillResponse(BaseModel):
    id: str
    shop_id: str
    bill_number: str
    bill_date: datetime
    customer_id: Optional[str] = None
    customer_name: str
    customer_type: CustomerType
    items: List[BillItem]
    subtotal: Decimal
    discount: Decimal
    tax_rate: Decimal = Decimal("0")
    tax_amount: Decimal
    total_amount: Decimal
    total_profit: Decimal = Decimal("0")
    paid_amount: Decimal
    balance_amount: Decimal
    payment_status: PaymentStatus
    payment_method: PaymentMethod
    bill_status: BillStatus
    created_by: str
    created_at: Optional[datetime] = None


class BillPage(BaseModel):
    bills: List[BillResponse]
    has_more: bool
    next_cursor: Optional[str] = None


class InvoiceResponse(BaseModel):
    """Everything an invoice renderer needs"""
    bill: BillResponse
    shop: Optional[ShopResponse] = None


# Cart Schemas
class CartItemAdd(BaseModel):
    product_id: str
    quantity: int = Field(1, gt=0)


class CartItemUpdate(BaseModel):
    quantity: Optional[int] = None  # <= 0 removes the line
    selling_price: Optional[Decimal] = Field(None, ge=0)


class CartCustomerUpdate(BaseModel):
    """Omit customer_id to switch back to the walk-in customer"""
    customer_id: Optional[str] = None


class CartDiscountUpdate(BaseModel):
    amount: Optional[Decimal] = None
    percent: Optional[Decimal] = None


class CartTaxUpdate(BaseModel):
    tax_rate: Decimal


class CartResponse(BaseModel):
    items: List[BillItem]
    customer_id: Optional[str] = None
    customer_name: str
    customer_type: CustomerType
    discount: Decimal
    tax_rate: Decimal
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    total_profit: Decimal


class CheckoutRequest(BaseModel):
    payment_method: PaymentMethod = PaymentMethod.CASH
    cash_tendered: Optional[Decimal] = Field(None, ge=0)


class CheckoutResponse(BaseModel):
    bill: BillResponse
    change_due: Decimal = Decimal("0")


# Collections Schemas
class PaymentCreate(BaseModel):
    bill_id: str
    amount: Decimal
    payment_method: PaymentMethod = PaymentMethod.CASH


class CollectionResponse(BaseModel):
    id: str
    shop_id: str
    bill_id: str
    customer_id: str
    amount: Decimal
    payment_method: PaymentMethod
    payment_date: datetime


class PaymentResult(BaseModel):
    collection_id: str
    bill: BillResponse
    outstanding_balance: Decimal


# Report Schemas
class ReportSummary(BaseModel):
    total_sales: Decimal
    total_tax: Decimal
    bill_count: int
    total_outstanding: Decimal


class CustomerReportRow(BaseModel):
    customer_id: Optional[str] = None
    customer_name: str
    total_bill_amount: Decimal
    outstanding_amount: Decimal
    bill_count: int


class CategoryReportRow(BaseModel):
    category_id: str
    category_name: str
    total_sales: Decimal
    quantity_sold: int


class ProductReportRow(BaseModel):
    product_id: str
    product_name: str
    sku: str
    category_name: str
    total_sales: Decimal
    quantity_sold: int


class SalesReport(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    summary: ReportSummary
    customers: List[CustomerReportRow]
    categories: List[CategoryReportRow]
    products: List[ProductReportRow]


class SalesReportRow(BaseModel):
    bill_id: str
    bill_number: str
    bill_date: date
    customer_name: str
    customer_type: CustomerType
    subtotal: Decimal
    discount: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    total_profit: Decimal
    payment_status: PaymentStatus
    payment_method: PaymentMethod


class BillSalesReport(BaseModel):
    total_sales: Decimal
    total_tax: Decimal
    total_profit: Decimal
    rows: List[SalesReportRow]


class OutstandingAuditRow(BaseModel):
    customer_id: str
    customer_name: str
    stored_balance: Decimal
    unpaid_bills_balance: Decimal
    ledger_balance: Decimal
    consistent: bool


class DashboardStats(BaseModel):
    today_bills_amount: Decimal
    today_bills_count: int
    today_profit: Decimal
    total_customers: int
    total_products: int
