"""
Read-only reports over a shop's bills.

The `build_*` functions are pure folds over already-loaded documents; the
`load_*` helpers fetch those documents for one shop and delegate.
"""
import logging
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from config import settings
from document_store import DocumentStore
from models import BillStatus, PaymentMethod, PaymentStatus
from money import ZERO, round2, to_money
from schemas import (
    BillPage, BillResponse, BillSalesReport, CategoryReportRow, CustomerReportRow,
    DashboardStats, OutstandingAuditRow, ProductReportRow, ReportSummary,
    SalesReport, SalesReportRow,
)
from timezone_utils import get_shop_day_bounds, get_shop_today, utc_to_shop_date

logger = logging.getLogger(__name__)

WALK_IN_KEY = "walk-in"
UNCATEGORIZED_KEY = "uncategorized"
UNCATEGORIZED_NAME = "Uncategorized"


def filter_bills(
    bills: Iterable[dict],
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    shop_timezone: Optional[str] = None,
) -> List[dict]:
    """Active bills whose bill_date falls in the inclusive local date range"""
    start_utc, end_utc = get_shop_day_bounds(start_date, end_date, shop_timezone)
    selected = []
    for bill in bills:
        if bill["bill_status"] != BillStatus.ACTIVE.value:
            continue
        bill_date = bill["bill_date"]
        if start_utc is not None and bill_date < start_utc:
            continue
        if end_utc is not None and bill_date > end_utc:
            continue
        selected.append(bill)
    return selected


def _backfilled_items(bill: dict, products_by_id: Dict[str, dict]) -> List[dict]:
    # Older bills were written before line items carried category info
    items = []
    for item in bill["items"] or []:
        if not item.get("category_id") or not item.get("category_name"):
            product = products_by_id.get(item["product_id"])
            if product is not None:
                item = {
                    **item,
                    "category_id": item.get("category_id") or product["category_id"],
                    "category_name": item.get("category_name") or product["category_name"],
                }
        items.append(item)
    return items


def build_sales_report(
    bills: Iterable[dict],
    customers: Iterable[dict],
    products: Iterable[dict],
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    shop_timezone: Optional[str] = None,
) -> SalesReport:
    """
    Fold bills into a summary plus customer, category and product rows.

    total_outstanding sums every customer's current balance and ignores the
    date range. Rows are sorted by sales, highest first; ties keep the order
    in which they were first seen.
    """
    customers = list(customers)
    products_by_id = {p["id"]: p for p in products}
    outstanding_by_customer = {c["id"]: to_money(c["outstanding_balance"] or 0) for c in customers}

    selected = filter_bills(bills, start_date, end_date, shop_timezone)

    total_sales = ZERO
    total_tax = ZERO
    customer_rows: Dict[str, dict] = {}
    category_rows: Dict[str, dict] = {}
    product_rows: Dict[str, dict] = {}

    for bill in selected:
        total_sales = round2(total_sales + to_money(bill["total_amount"]))
        total_tax = round2(total_tax + to_money(bill["tax_amount"]))

        customer_key = bill.get("customer_id") or WALK_IN_KEY
        row = customer_rows.setdefault(customer_key, {
            "customer_id": bill.get("customer_id"),
            "customer_name": bill["customer_name"],
            "total_bill_amount": ZERO,
            "outstanding_amount": outstanding_by_customer.get(customer_key, ZERO),
            "bill_count": 0,
        })
        row["total_bill_amount"] = round2(row["total_bill_amount"] + to_money(bill["total_amount"]))
        row["bill_count"] += 1

        for item in _backfilled_items(bill, products_by_id):
            item_total = to_money(item["total_amount"])
            quantity = int(item["quantity"])

            category_key = item.get("category_id") or UNCATEGORIZED_KEY
            category = category_rows.setdefault(category_key, {
                "category_id": category_key,
                "category_name": item.get("category_name") or UNCATEGORIZED_NAME,
                "total_sales": ZERO,
                "quantity_sold": 0,
            })
            category["total_sales"] = round2(category["total_sales"] + item_total)
            category["quantity_sold"] += quantity

            product = product_rows.setdefault(item["product_id"], {
                "product_id": item["product_id"],
                "product_name": item["product_name"],
                "sku": item.get("sku") or "",
                "category_name": item.get("category_name") or UNCATEGORIZED_NAME,
                "total_sales": ZERO,
                "quantity_sold": 0,
            })
            product["total_sales"] = round2(product["total_sales"] + item_total)
            product["quantity_sold"] += quantity

    summary = ReportSummary(
        total_sales=total_sales,
        total_tax=total_tax,
        bill_count=len(selected),
        total_outstanding=round2(sum(outstanding_by_customer.values(), ZERO)),
    )

    return SalesReport(
        start_date=start_date,
        end_date=end_date,
        summary=summary,
        customers=[
            CustomerReportRow(**r)
            for r in sorted(customer_rows.values(), key=lambda r: r["total_bill_amount"], reverse=True)
        ],
        categories=[
            CategoryReportRow(**r)
            for r in sorted(category_rows.values(), key=lambda r: r["total_sales"], reverse=True)
        ],
        products=[
            ProductReportRow(**r)
            for r in sorted(product_rows.values(), key=lambda r: r["total_sales"], reverse=True)
        ],
    )


def build_bill_sales_report(
    bills: Iterable[dict],
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    shop_timezone: Optional[str] = None,
) -> BillSalesReport:
    """One row per bill in the range, oldest first, with sales/tax/profit totals"""
    selected = sorted(
        filter_bills(bills, start_date, end_date, shop_timezone),
        key=lambda b: (b["bill_date"], b["id"]),
    )

    rows = [
        SalesReportRow(
            bill_id=bill["id"],
            bill_number=bill["bill_number"],
            bill_date=utc_to_shop_date(bill["bill_date"], shop_timezone),
            customer_name=bill["customer_name"],
            customer_type=bill["customer_type"],
            subtotal=round2(bill["subtotal"]),
            discount=round2(bill["discount"]),
            tax_amount=round2(bill["tax_amount"]),
            total_amount=round2(bill["total_amount"]),
            total_profit=round2(bill["total_profit"] or 0),
            payment_status=bill["payment_status"],
            payment_method=bill["payment_method"],
        )
        for bill in selected
    ]

    return BillSalesReport(
        total_sales=round2(sum((r.total_amount for r in rows), ZERO)),
        total_tax=round2(sum((r.tax_amount for r in rows), ZERO)),
        total_profit=round2(sum((r.total_profit for r in rows), ZERO)),
        rows=rows,
    )


def sales_report_csv_rows(report: BillSalesReport) -> List[dict]:
    """Flatten the bill-level report into ordered CSV records"""
    return [
        {
            "Bill Number": row.bill_number,
            "Date": row.bill_date.isoformat(),
            "Customer": row.customer_name,
            "Type": row.customer_type.value,
            "Subtotal": f"{row.subtotal:.2f}",
            "Discount": f"{row.discount:.2f}",
            "Tax": f"{row.tax_amount:.2f}",
            "Total": f"{row.total_amount:.2f}",
            "Profit": f"{row.total_profit:.2f}",
            "Payment Status": row.payment_status.value,
            "Payment Method": row.payment_method.value,
        }
        for row in report.rows
    ]


def audit_outstanding(
    customers: Iterable[dict],
    bills: Iterable[dict],
    collections: Iterable[dict],
) -> List[OutstandingAuditRow]:
    """
    Compare each customer's stored outstanding balance with two derivations:
    the sum of balances on their unpaid/partial credit bills, and a replay of
    credit bill totals minus recorded collections. Nothing is corrected here.
    """
    unpaid_by_customer: Dict[str, Decimal] = {}
    credit_by_customer: Dict[str, Decimal] = {}
    collected_by_customer: Dict[str, Decimal] = {}

    for bill in bills:
        customer_id = bill.get("customer_id")
        if not customer_id or bill["bill_status"] != BillStatus.ACTIVE.value:
            continue
        if bill["payment_method"] == PaymentMethod.CREDIT.value:
            credit_by_customer[customer_id] = round2(
                credit_by_customer.get(customer_id, ZERO) + to_money(bill["total_amount"])
            )
        if bill["payment_status"] in (PaymentStatus.UNPAID.value, PaymentStatus.PARTIAL.value):
            unpaid_by_customer[customer_id] = round2(
                unpaid_by_customer.get(customer_id, ZERO) + to_money(bill["balance_amount"])
            )

    for collection in collections:
        customer_id = collection["customer_id"]
        collected_by_customer[customer_id] = round2(
            collected_by_customer.get(customer_id, ZERO) + to_money(collection["amount"])
        )

    rows = []
    for customer in customers:
        customer_id = customer["id"]
        stored = round2(customer["outstanding_balance"] or 0)
        unpaid = unpaid_by_customer.get(customer_id, ZERO)
        ledger = round2(credit_by_customer.get(customer_id, ZERO) - collected_by_customer.get(customer_id, ZERO))
        consistent = stored == unpaid == ledger
        if not consistent:
            logger.warning(
                f"Outstanding drift for customer {customer_id}: stored={stored} "
                f"unpaid_bills={unpaid} ledger={ledger}"
            )
        rows.append(OutstandingAuditRow(
            customer_id=customer_id,
            customer_name=customer["name"],
            stored_balance=stored,
            unpaid_bills_balance=unpaid,
            ledger_balance=ledger,
            consistent=consistent,
        ))
    return rows


# ---------- loaders ----------

async def _shop_timezone(store: DocumentStore, shop_id: str) -> Optional[str]:
    shop = await store.get("shops", shop_id)
    return shop.get("timezone") if shop else None


async def load_sales_report(
    store: DocumentStore,
    shop_id: str,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> SalesReport:
    shop_timezone = await _shop_timezone(store, shop_id)
    bills = await store.query(
        "bills", [("shop_id", "==", shop_id), ("bill_status", "==", BillStatus.ACTIVE)]
    )
    customers = await store.query("customers", [("shop_id", "==", shop_id)])
    products = await store.query("products", [("shop_id", "==", shop_id)])
    return build_sales_report(bills, customers, products, start_date, end_date, shop_timezone)


async def load_bill_sales_report(
    store: DocumentStore,
    shop_id: str,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> BillSalesReport:
    shop_timezone = await _shop_timezone(store, shop_id)
    bills = await store.query(
        "bills", [("shop_id", "==", shop_id), ("bill_status", "==", BillStatus.ACTIVE)]
    )
    return build_bill_sales_report(bills, start_date, end_date, shop_timezone)


async def load_outstanding_audit(store: DocumentStore, shop_id: str) -> List[OutstandingAuditRow]:
    customers = await store.query("customers", [("shop_id", "==", shop_id)], order_by="name")
    bills = await store.query("bills", [("shop_id", "==", shop_id)])
    collections = await store.query("collections", [("shop_id", "==", shop_id)])
    return audit_outstanding(customers, bills, collections)


async def dashboard_stats(store: DocumentStore, shop_id: str) -> DashboardStats:
    """Today's figures use the shop-local day on created_at"""
    shop_timezone = await _shop_timezone(store, shop_id)
    today = get_shop_today(shop_timezone)
    start_utc, end_utc = get_shop_day_bounds(today, today, shop_timezone)

    today_bills = await store.query(
        "bills",
        [("shop_id", "==", shop_id), ("created_at", ">=", start_utc), ("created_at", "<=", end_utc)],
    )
    customers = await store.query("customers", [("shop_id", "==", shop_id), ("is_active", "==", True)])
    products = await store.query("products", [("shop_id", "==", shop_id), ("is_active", "==", True)])

    return DashboardStats(
        today_bills_amount=round2(sum((to_money(b["total_amount"]) for b in today_bills), ZERO)),
        today_bills_count=len(today_bills),
        today_profit=round2(sum((to_money(b["total_profit"] or 0) for b in today_bills), ZERO)),
        total_customers=len(customers),
        total_products=len(products),
    )


async def list_bills_page(
    store: DocumentStore,
    shop_id: str,
    start_after: Optional[str] = None,
    page_size: Optional[int] = None,
) -> BillPage:
    """Newest bills first; fetches one extra document to know whether more exist"""
    page_size = page_size or settings.BILLS_PAGE_SIZE
    bills = await store.query(
        "bills",
        [("shop_id", "==", shop_id)],
        order_by="-created_at",
        limit=page_size + 1,
        start_after=start_after,
    )
    has_more = len(bills) > page_size
    bills = bills[:page_size]
    return BillPage(
        bills=[BillResponse(**b) for b in bills],
        has_more=has_more,
        next_cursor=bills[-1]["id"] if has_more else None,
    )
