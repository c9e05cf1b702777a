"""
Safe auto-seeding of a demo shop.

Idempotent:
- the demo admin account, shop and profile are created only when missing
- catalog data is only added when the demo shop has no products yet
- controlled by SEED_DEMO_DATA
"""
import logging
from decimal import Decimal

from auth import find_account_by_email, get_password_hash
from config import settings
from document_store import DocumentStore
from models import CustomerType, UserRole

logger = logging.getLogger(__name__)

DEMO_EMAIL = "admin@retailpos.com"
DEMO_PASSWORD = "admin123"

CATEGORIES = ["Beverages", "Snacks", "Stationery", "Personal Care"]

PRODUCTS = [
    # name, sku, category, retail, wholesale, cost, stock, unit
    ("Cola 500ml", "BEV-001", "Beverages", "40", "36", "30", 100, "bottle"),
    ("Mineral Water 1L", "BEV-002", "Beverages", "20", "18", "12", 150, "bottle"),
    ("Salted Chips 150g", "SNK-001", "Snacks", "50", "45", "35", 60, "pkt"),
    ("Milk Chocolate 80g", "SNK-002", "Snacks", "80", None, "60", 40, "bar"),
    ("Ball Pen Blue", "STA-001", "Stationery", "10", "8", "5", 200, "pcs"),
    ("Notebook A5", "STA-002", "Stationery", "45", "40", "30", 75, "pcs"),
    ("Bath Soap 100g", "PER-001", "Personal Care", "35", "32", "25", 90, "pcs"),
]

CUSTOMERS = [
    # name, phone, type, credit limit
    ("Sharma Stores", "9811100001", CustomerType.WHOLESALE, "20000"),
    ("Anita Verma", "9811100002", CustomerType.RETAIL, "2000"),
    ("Rahul Mehta", "9811100003", CustomerType.RETAIL, "0"),
]


async def seed_demo_shop(store: DocumentStore) -> str:
    """Create the demo admin with its own shop profile; returns the shop id"""
    account = await find_account_by_email(store, DEMO_EMAIL)
    if account:
        return account["id"]

    shop_id = await store.create("accounts", {
        "email": DEMO_EMAIL,
        "hashed_password": get_password_hash(DEMO_PASSWORD),
        "display_name": "Admin User",
        "is_active": True,
    })
    await store.create("shops", {
        "id": shop_id,
        "name": "Demo Store",
        "address": "1 Market Road",
        "phone": "9876543210",
        "email": DEMO_EMAIL,
        "timezone": settings.DEFAULT_TIMEZONE,
    })
    await store.create("users", {
        "id": shop_id,
        "email": DEMO_EMAIL,
        "display_name": "Admin User",
        "role": UserRole.ADMIN,
        "shop_id": shop_id,
        "is_active": True,
    })
    logger.info(f"✅ Demo shop created ({DEMO_EMAIL} / {DEMO_PASSWORD})")
    return shop_id


async def seed_demo_catalog(store: DocumentStore, shop_id: str) -> None:
    existing = await store.query("products", [("shop_id", "==", shop_id)], limit=1)
    if existing:
        logger.info("✓ Demo shop already has products - skipping catalog seed")
        return

    logger.info(f"🌱 Seeding demo catalog for shop {shop_id}")

    category_ids = {}
    for name in CATEGORIES:
        category_ids[name] = await store.create("categories", {
            "shop_id": shop_id, "name": name, "is_active": True,
        })

    for name, sku, category, retail, wholesale, cost, stock, unit in PRODUCTS:
        await store.create("products", {
            "shop_id": shop_id,
            "name": name,
            "sku": sku,
            "category_id": category_ids[category],
            "category_name": category,
            "retail_price": Decimal(retail),
            "wholesale_price": Decimal(wholesale) if wholesale else None,
            "cost_price": Decimal(cost),
            "current_stock": stock,
            "unit": unit,
            "is_active": True,
        })

    for name, phone, customer_type, credit_limit in CUSTOMERS:
        await store.create("customers", {
            "shop_id": shop_id,
            "name": name,
            "phone": phone,
            "customer_type": customer_type,
            "credit_limit": Decimal(credit_limit),
            "outstanding_balance": Decimal("0"),
            "is_active": True,
        })

    logger.info(
        f"  ✓ {len(CATEGORIES)} categories, {len(PRODUCTS)} products, {len(CUSTOMERS)} customers"
    )


async def seed_demo_data(store: DocumentStore) -> None:
    try:
        shop_id = await seed_demo_shop(store)
        await seed_demo_catalog(store, shop_id)
    except Exception as e:
        logger.error(f"❌ Error seeding demo data: {e}")
        raise
