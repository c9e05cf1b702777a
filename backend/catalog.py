"""
Catalog API Endpoints
Categories, products and customers of the current shop
"""
from fastapi import APIRouter, Depends, HTTPException, status
from datetime import datetime
from typing import List, Optional
import logging

from auth import get_session_context, get_store
from document_store import DocumentStore
from schemas import (
    SessionContext,
    CategoryCreate, CategoryUpdate, CategoryResponse,
    ProductCreate, ProductUpdate, ProductResponse,
    CustomerCreate, CustomerUpdate, CustomerResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["catalog"])


def generate_sku(now: Optional[datetime] = None) -> str:
    """SKU-YYMMDDHHMMSS from the local clock"""
    now = now or datetime.now()
    return f"SKU-{now:%y%m%d%H%M%S}"


async def _get_scoped(store: DocumentStore, collection: str, doc_id: str, shop_id: str, label: str) -> dict:
    doc = await store.get(collection, doc_id)
    if doc is None or doc["shop_id"] != shop_id:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return doc


async def _exists_other(
    store: DocumentStore, collection: str, shop_id: str, field: str, value, exclude_id: Optional[str] = None
) -> bool:
    matches = await store.query(collection, [("shop_id", "==", shop_id), (field, "==", value)])
    return any(m["id"] != exclude_id for m in matches)


# ==================== CATEGORIES ====================

@router.get("/categories", response_model=List[CategoryResponse])
async def get_categories(
    active_only: bool = False,
    session: SessionContext = Depends(get_session_context),
    store: DocumentStore = Depends(get_store),
):
    """List categories of the current shop"""
    filters = [("shop_id", "==", session.shop_id)]
    if active_only:
        filters.append(("is_active", "==", True))
    return await store.query("categories", filters, order_by="name")


@router.post("/categories", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
async def create_category(
    category_data: CategoryCreate,
    session: SessionContext = Depends(get_session_context),
    store: DocumentStore = Depends(get_store),
):
    if await _exists_other(store, "categories", session.shop_id, "name", category_data.name):
        raise HTTPException(status_code=400, detail="A category with this name already exists")

    category_id = await store.create("categories", {
        "shop_id": session.shop_id,
        "name": category_data.name,
        "description": category_data.description,
        "is_active": True,
    })
    return await store.get("categories", category_id)


@router.put("/categories/{category_id}", response_model=CategoryResponse)
async def update_category(
    category_id: str,
    category_data: CategoryUpdate,
    session: SessionContext = Depends(get_session_context),
    store: DocumentStore = Depends(get_store),
):
    """
    Update a category.
    A rename is copied onto every product that references the category;
    existing bills keep the name they were sold under.
    """
    category = await _get_scoped(store, "categories", category_id, session.shop_id, "Category")

    if await _exists_other(store, "categories", session.shop_id, "name", category_data.name, exclude_id=category_id):
        raise HTTPException(status_code=400, detail="A category with this name already exists")

    await store.update("categories", category_id, {
        **category_data.model_dump(exclude_unset=True),
        "updated_at": datetime.utcnow(),
    })

    if category_data.name != category["name"]:
        products = await store.query(
            "products", [("shop_id", "==", session.shop_id), ("category_id", "==", category_id)]
        )
        for product in products:
            await store.update("products", product["id"], {"category_name": category_data.name})
        logger.info(
            f"Category {category_id} renamed '{category['name']}' -> '{category_data.name}', "
            f"refreshed {len(products)} products"
        )

    return await store.get("categories", category_id)


@router.post("/categories/{category_id}/toggle", response_model=CategoryResponse)
async def toggle_category(
    category_id: str,
    session: SessionContext = Depends(get_session_context),
    store: DocumentStore = Depends(get_store),
):
    category = await _get_scoped(store, "categories", category_id, session.shop_id, "Category")
    await store.update("categories", category_id, {"is_active": not category["is_active"]})
    return await store.get("categories", category_id)


# ==================== PRODUCTS ====================

async def _category_name(store: DocumentStore, shop_id: str, category_id: Optional[str]) -> Optional[str]:
    if not category_id:
        return None
    category = await _get_scoped(store, "categories", category_id, shop_id, "Category")
    return category["name"]


@router.get("/products", response_model=List[ProductResponse])
async def get_products(
    search: Optional[str] = None,
    category_id: Optional[str] = None,
    active_only: bool = False,
    session: SessionContext = Depends(get_session_context),
    store: DocumentStore = Depends(get_store),
):
    """List products, optionally matching `search` against name, SKU or category"""
    filters = [("shop_id", "==", session.shop_id)]
    if category_id:
        filters.append(("category_id", "==", category_id))
    if active_only:
        filters.append(("is_active", "==", True))
    products = await store.query("products", filters, order_by="name")

    if search:
        term = search.strip().lower()
        products = [
            p for p in products
            if term in p["name"].lower()
            or term in p["sku"].lower()
            or (p["category_name"] and term in p["category_name"].lower())
        ]
    return products


@router.get("/products/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: str,
    session: SessionContext = Depends(get_session_context),
    store: DocumentStore = Depends(get_store),
):
    return await _get_scoped(store, "products", product_id, session.shop_id, "Product")


@router.post("/products", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
async def create_product(
    product_data: ProductCreate,
    session: SessionContext = Depends(get_session_context),
    store: DocumentStore = Depends(get_store),
):
    sku = product_data.sku or generate_sku()
    if await _exists_other(store, "products", session.shop_id, "sku", sku):
        raise HTTPException(status_code=400, detail="A product with this SKU already exists")

    category_name = await _category_name(store, session.shop_id, product_data.category_id)

    product_id = await store.create("products", {
        **product_data.model_dump(),
        "sku": sku,
        "shop_id": session.shop_id,
        "category_id": product_data.category_id or None,
        "category_name": category_name,
        "is_active": True,
    })
    logger.info(f"Product {sku} created in shop {session.shop_id}")
    return await store.get("products", product_id)


@router.put("/products/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: str,
    product_data: ProductUpdate,
    session: SessionContext = Depends(get_session_context),
    store: DocumentStore = Depends(get_store),
):
    await _get_scoped(store, "products", product_id, session.shop_id, "Product")
    fields = product_data.model_dump(exclude_unset=True)

    if "sku" in fields and await _exists_other(
        store, "products", session.shop_id, "sku", fields["sku"], exclude_id=product_id
    ):
        raise HTTPException(status_code=400, detail="A product with this SKU already exists")

    if "category_id" in fields:
        fields["category_id"] = fields["category_id"] or None
        fields["category_name"] = await _category_name(store, session.shop_id, fields["category_id"])

    fields["updated_at"] = datetime.utcnow()
    await store.update("products", product_id, fields)
    return await store.get("products", product_id)


@router.post("/products/{product_id}/toggle", response_model=ProductResponse)
async def toggle_product(
    product_id: str,
    session: SessionContext = Depends(get_session_context),
    store: DocumentStore = Depends(get_store),
):
    """Products are never hard-deleted, only deactivated"""
    product = await _get_scoped(store, "products", product_id, session.shop_id, "Product")
    await store.update("products", product_id, {"is_active": not product["is_active"]})
    return await store.get("products", product_id)


# ==================== CUSTOMERS ====================

@router.get("/customers", response_model=List[CustomerResponse])
async def get_customers(
    search: Optional[str] = None,
    session: SessionContext = Depends(get_session_context),
    store: DocumentStore = Depends(get_store),
):
    """List customers with optional search on name or phone"""
    customers = await store.query("customers", [("shop_id", "==", session.shop_id)], order_by="name")
    if search:
        term = search.strip().lower()
        customers = [c for c in customers if term in c["name"].lower() or term in c["phone"]]
    return customers


@router.get("/customers/{customer_id}", response_model=CustomerResponse)
async def get_customer(
    customer_id: str,
    session: SessionContext = Depends(get_session_context),
    store: DocumentStore = Depends(get_store),
):
    return await _get_scoped(store, "customers", customer_id, session.shop_id, "Customer")


@router.post("/customers", response_model=CustomerResponse, status_code=status.HTTP_201_CREATED)
async def create_customer(
    customer_data: CustomerCreate,
    session: SessionContext = Depends(get_session_context),
    store: DocumentStore = Depends(get_store),
):
    """Create a new customer in the current shop"""
    if await _exists_other(store, "customers", session.shop_id, "phone", customer_data.phone):
        raise HTTPException(status_code=400, detail="A customer with this phone number already exists")

    customer_id = await store.create("customers", {
        **customer_data.model_dump(),
        "shop_id": session.shop_id,
        "outstanding_balance": 0,
        "is_active": True,
    })
    return await store.get("customers", customer_id)


@router.put("/customers/{customer_id}", response_model=CustomerResponse)
async def update_customer(
    customer_id: str,
    customer_data: CustomerUpdate,
    session: SessionContext = Depends(get_session_context),
    store: DocumentStore = Depends(get_store),
):
    """Update a customer. The outstanding balance is only changed by sales and collections."""
    await _get_scoped(store, "customers", customer_id, session.shop_id, "Customer")
    fields = customer_data.model_dump(exclude_unset=True)

    if "phone" in fields and await _exists_other(
        store, "customers", session.shop_id, "phone", fields["phone"], exclude_id=customer_id
    ):
        raise HTTPException(status_code=400, detail="A customer with this phone number already exists")

    if fields:
        await store.update("customers", customer_id, fields)
    return await store.get("customers", customer_id)
