"""
Sales API Endpoints
Shop settings, the billing cart and checkout, bills, collections and reports
"""
from fastapi import APIRouter, Depends, HTTPException, Response, status
from datetime import datetime, date
from typing import List, Optional
import logging

import pytz

from auth import get_session_context, get_store
from billing import CheckoutService, delete_bill, get_bill
from cart import Cart, WALK_IN, carts
from document_store import DocumentStore
from export_utils import csv_filename, rows_to_csv
from models import CustomerType
from money import ZERO, clamp_discount, clamp_tax_rate, percent_discount
from payments import (
    list_bill_collections, list_customers_with_outstanding, list_unpaid_bills, record_payment,
)
from reports import (
    dashboard_stats, list_bills_page, load_bill_sales_report, load_outstanding_audit,
    load_sales_report, sales_report_csv_rows,
)
from schemas import (
    SessionContext, ShopUpdate, ShopResponse, ProductResponse,
    CartItemAdd, CartItemUpdate, CartCustomerUpdate, CartDiscountUpdate, CartTaxUpdate,
    CartResponse, CheckoutRequest, CheckoutResponse,
    BillResponse, BillPage, InvoiceResponse,
    CustomerResponse, PaymentCreate, PaymentResult, CollectionResponse,
    SalesReport, BillSalesReport, OutstandingAuditRow, DashboardStats,
)
from timezone_utils import get_shop_today

logger = logging.getLogger(__name__)

router = APIRouter(tags=["sales"])


# ==================== SHOP ====================

@router.get("/shop", response_model=ShopResponse)
async def get_shop(
    session: SessionContext = Depends(get_session_context),
    store: DocumentStore = Depends(get_store),
):
    shop = await store.get("shops", session.shop_id)
    if shop is None:
        raise HTTPException(status_code=404, detail="Shop not found")
    return shop


@router.put("/shop", response_model=ShopResponse)
async def update_shop(
    shop_data: ShopUpdate,
    session: SessionContext = Depends(get_session_context),
    store: DocumentStore = Depends(get_store),
):
    """Create or update the settings of the current shop"""
    if shop_data.timezone and shop_data.timezone not in pytz.all_timezones_set:
        raise HTTPException(status_code=400, detail=f"Unknown timezone '{shop_data.timezone}'")

    fields = shop_data.model_dump(exclude_unset=True)
    if await store.get("shops", session.shop_id) is None:
        await store.create("shops", {"id": session.shop_id, **fields})
        logger.info(f"Shop {session.shop_id} created by {session.uid}")
    else:
        await store.update("shops", session.shop_id, {**fields, "updated_at": datetime.utcnow()})
    return await store.get("shops", session.shop_id)


# ==================== CART ====================

def get_cart(session: SessionContext = Depends(get_session_context)) -> Cart:
    return carts.get(session.shop_id, session.uid)


def _reclamp_discount(cart: Cart) -> None:
    # Keep an earlier flat discount within a subtotal that just shrank
    if cart.discount > cart.subtotal:
        cart.set_discount(clamp_discount(cart.discount, cart.subtotal))


@router.get("/cart", response_model=CartResponse)
async def view_cart(cart: Cart = Depends(get_cart)):
    return cart.snapshot()


@router.delete("/cart", response_model=CartResponse)
async def clear_cart(cart: Cart = Depends(get_cart)):
    cart.clear()
    return cart.snapshot()


@router.post("/cart/items", response_model=CartResponse)
async def add_cart_item(
    item_data: CartItemAdd,
    cart: Cart = Depends(get_cart),
    session: SessionContext = Depends(get_session_context),
    store: DocumentStore = Depends(get_store),
):
    product = await store.get("products", item_data.product_id)
    if product is None or product["shop_id"] != session.shop_id:
        raise HTTPException(status_code=404, detail="Product not found")
    if not product["is_active"]:
        raise HTTPException(status_code=400, detail="Product is not available")

    cart.add_item(ProductResponse(**product), item_data.quantity)
    return cart.snapshot()


@router.put("/cart/items/{product_id}", response_model=CartResponse)
async def update_cart_item(
    product_id: str,
    item_data: CartItemUpdate,
    cart: Cart = Depends(get_cart),
):
    """Change quantity (<= 0 removes the line) and/or selling price"""
    if item_data.selling_price is not None:
        cart.update_price(product_id, item_data.selling_price)
    if item_data.quantity is not None:
        cart.update_quantity(product_id, item_data.quantity)
    _reclamp_discount(cart)
    return cart.snapshot()


@router.delete("/cart/items/{product_id}", response_model=CartResponse)
async def remove_cart_item(product_id: str, cart: Cart = Depends(get_cart)):
    cart.remove_item(product_id)
    _reclamp_discount(cart)
    return cart.snapshot()


@router.put("/cart/customer", response_model=CartResponse)
async def set_cart_customer(
    customer_data: CartCustomerUpdate,
    cart: Cart = Depends(get_cart),
    session: SessionContext = Depends(get_session_context),
    store: DocumentStore = Depends(get_store),
):
    """Lines already in the cart keep their price"""
    if not customer_data.customer_id:
        cart.set_customer(WALK_IN, CustomerType.RETAIL, None)
        return cart.snapshot()

    customer = await store.get("customers", customer_data.customer_id)
    if customer is None or customer["shop_id"] != session.shop_id:
        raise HTTPException(status_code=404, detail="Customer not found")
    cart.set_customer(customer["name"], customer["customer_type"], customer["id"])
    return cart.snapshot()


@router.put("/cart/discount", response_model=CartResponse)
async def set_cart_discount(discount_data: CartDiscountUpdate, cart: Cart = Depends(get_cart)):
    """Flat `amount` is capped at the subtotal; `percent` is capped to 0-100"""
    if discount_data.percent is not None:
        cart.set_discount(percent_discount(discount_data.percent, cart.subtotal))
    elif discount_data.amount is not None:
        cart.set_discount(clamp_discount(discount_data.amount, cart.subtotal))
    else:
        cart.set_discount(ZERO)
    return cart.snapshot()


@router.put("/cart/tax", response_model=CartResponse)
async def set_cart_tax(tax_data: CartTaxUpdate, cart: Cart = Depends(get_cart)):
    cart.set_tax_rate(clamp_tax_rate(tax_data.tax_rate))
    return cart.snapshot()


@router.post("/cart/checkout", response_model=CheckoutResponse, status_code=status.HTTP_201_CREATED)
async def checkout_cart(
    checkout_data: CheckoutRequest,
    cart: Cart = Depends(get_cart),
    session: SessionContext = Depends(get_session_context),
    store: DocumentStore = Depends(get_store),
):
    bill, change_due = await CheckoutService(store).checkout(
        cart, session, checkout_data.payment_method, checkout_data.cash_tendered
    )
    carts.discard(session.shop_id, session.uid)
    return CheckoutResponse(bill=BillResponse(**bill), change_due=change_due)


# ==================== BILLS ====================

@router.get("/bills", response_model=BillPage)
async def get_bills(
    start_after: Optional[str] = None,
    session: SessionContext = Depends(get_session_context),
    store: DocumentStore = Depends(get_store),
):
    """Newest first; pass `next_cursor` back as `start_after` for the next page"""
    return await list_bills_page(store, session.shop_id, start_after=start_after)


@router.get("/bills/{bill_id}", response_model=BillResponse)
async def get_bill_detail(
    bill_id: str,
    session: SessionContext = Depends(get_session_context),
    store: DocumentStore = Depends(get_store),
):
    return await get_bill(store, session.shop_id, bill_id)


@router.get("/bills/{bill_id}/invoice", response_model=InvoiceResponse)
async def get_invoice(
    bill_id: str,
    session: SessionContext = Depends(get_session_context),
    store: DocumentStore = Depends(get_store),
):
    """Bill plus shop details for the invoice renderer"""
    bill = await get_bill(store, session.shop_id, bill_id)
    shop = await store.get("shops", session.shop_id)
    return InvoiceResponse(bill=BillResponse(**bill), shop=ShopResponse(**shop) if shop else None)


@router.delete("/bills/{bill_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_bill(
    bill_id: str,
    session: SessionContext = Depends(get_session_context),
    store: DocumentStore = Depends(get_store),
):
    await delete_bill(store, session, bill_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/bills/{bill_id}/collections", response_model=List[CollectionResponse])
async def get_bill_collections(
    bill_id: str,
    session: SessionContext = Depends(get_session_context),
    store: DocumentStore = Depends(get_store),
):
    return await list_bill_collections(store, session.shop_id, bill_id)


# ==================== COLLECTIONS ====================

@router.get("/collections/customers", response_model=List[CustomerResponse])
async def get_customers_with_outstanding(
    session: SessionContext = Depends(get_session_context),
    store: DocumentStore = Depends(get_store),
):
    return await list_customers_with_outstanding(store, session.shop_id)


@router.get("/collections/customers/{customer_id}/bills", response_model=List[BillResponse])
async def get_customer_unpaid_bills(
    customer_id: str,
    session: SessionContext = Depends(get_session_context),
    store: DocumentStore = Depends(get_store),
):
    return await list_unpaid_bills(store, session.shop_id, customer_id)


@router.post("/collections", response_model=PaymentResult, status_code=status.HTTP_201_CREATED)
async def create_collection(
    payment_data: PaymentCreate,
    session: SessionContext = Depends(get_session_context),
    store: DocumentStore = Depends(get_store),
):
    """Record a payment against an unpaid or partially paid bill"""
    collection_id, bill, outstanding = await record_payment(
        store, session, payment_data.bill_id, payment_data.amount, payment_data.payment_method
    )
    return PaymentResult(
        collection_id=collection_id,
        bill=BillResponse(**bill),
        outstanding_balance=outstanding,
    )


# ==================== REPORTS ====================

@router.get("/reports/summary", response_model=SalesReport)
async def get_report_summary(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    session: SessionContext = Depends(get_session_context),
    store: DocumentStore = Depends(get_store),
):
    """Customer-, category- and product-wise sales for an inclusive date range"""
    return await load_sales_report(store, session.shop_id, start_date, end_date)


@router.get("/reports/sales", response_model=BillSalesReport)
async def get_sales_report(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    session: SessionContext = Depends(get_session_context),
    store: DocumentStore = Depends(get_store),
):
    return await load_bill_sales_report(store, session.shop_id, start_date, end_date)


@router.get("/reports/sales.csv")
async def export_sales_report(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    session: SessionContext = Depends(get_session_context),
    store: DocumentStore = Depends(get_store),
):
    report = await load_bill_sales_report(store, session.shop_id, start_date, end_date)
    content = rows_to_csv(sales_report_csv_rows(report))

    shop = await store.get("shops", session.shop_id)
    today = get_shop_today(shop.get("timezone") if shop else None)
    filename = csv_filename("sales-report", today.isoformat())
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/reports/outstanding-audit", response_model=List[OutstandingAuditRow])
async def get_outstanding_audit(
    session: SessionContext = Depends(get_session_context),
    store: DocumentStore = Depends(get_store),
):
    """Stored outstanding balances next to their bill- and ledger-derived values"""
    return await load_outstanding_audit(store, session.shop_id)


@router.get("/dashboard/stats", response_model=DashboardStats)
async def get_dashboard_stats(
    session: SessionContext = Depends(get_session_context),
    store: DocumentStore = Depends(get_store),
):
    return await dashboard_stats(store, session.shop_id)
