"""
Collections: recording payments against unpaid/partial credit bills.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from billing import StepLog, get_bill
from config import settings
from document_store import DocumentStore
from exceptions import ConflictError, NotFoundError, ValidationError
from models import BillStatus, PaymentMethod, PaymentStatus
from money import ZERO, round2, to_money
from schemas import SessionContext

logger = logging.getLogger(__name__)

COLLECTABLE_STATUSES = (PaymentStatus.UNPAID, PaymentStatus.PARTIAL)
COLLECTION_METHODS = (PaymentMethod.CASH, PaymentMethod.CARD, PaymentMethod.UPI)


def validate_payment(bill: dict, amount: Decimal, payment_method: PaymentMethod) -> None:
    if bill["bill_status"] != BillStatus.ACTIVE.value:
        raise ValidationError("Payments can only be recorded against active bills")
    if bill["payment_status"] not in [s.value for s in COLLECTABLE_STATUSES]:
        raise ValidationError("Bill is already fully paid")
    if not bill.get("customer_id"):
        raise ValidationError("Bill has no customer to collect from")
    if payment_method not in COLLECTION_METHODS:
        raise ValidationError("Payment method must be cash, card or upi")

    balance = to_money(bill["balance_amount"])
    if amount <= 0:
        raise ValidationError("Please enter a valid amount")
    if amount > balance:
        raise ValidationError(f"Amount cannot exceed balance of {balance}")


class PaymentRecorder:
    """
    Writes a Collection record, applies it to the bill and reduces the
    customer's outstanding balance.

    `mode` follows CONSISTENCY_MODE: 'sequential' issues independent writes and
    raises PartialWriteError on failure, 'atomic' runs everything in one
    transaction and writes the new bill and customer balances with
    compare-and-set updates against the values it just read.
    """

    def __init__(self, store: DocumentStore, mode: Optional[str] = None):
        self.store = store
        self.mode = mode or settings.CONSISTENCY_MODE

    async def record(
        self,
        session: SessionContext,
        bill_id: str,
        amount,
        payment_method: PaymentMethod = PaymentMethod.CASH,
    ) -> Tuple[str, dict, Decimal]:
        """Returns (collection_id, updated bill, customer outstanding balance)"""
        amount = round2(amount)
        payment_method = PaymentMethod(payment_method)

        bill = await get_bill(self.store, session.shop_id, bill_id)
        validate_payment(bill, amount, payment_method)

        collection = {
            "shop_id": session.shop_id,
            "bill_id": bill_id,
            "customer_id": bill["customer_id"],
            "amount": amount,
            "payment_method": payment_method,
            "payment_date": datetime.utcnow(),
        }

        if self.mode == "sequential":
            collection_id = await self._apply_sequential(bill, collection, amount)
        else:
            collection_id = await self._apply_atomic(bill, collection, amount)

        updated = await get_bill(self.store, session.shop_id, bill_id)
        customer = await self.store.get("customers", bill["customer_id"])
        outstanding = to_money(customer["outstanding_balance"]) if customer else ZERO

        logger.info(
            f"💰 Payment of {amount} ({payment_method.value}) recorded on bill {bill['bill_number']}, "
            f"balance now {updated['balance_amount']}"
        )
        return collection_id, updated, outstanding

    async def _apply_sequential(self, bill: dict, collection: dict, amount: Decimal) -> str:
        log = StepLog("payment")
        log.bill_id = bill["id"]

        collection_id = await log.run(
            "create_collection", lambda: self.store.create("collections", collection)
        )

        new_paid = round2(to_money(bill["paid_amount"]) + amount)
        new_balance = round2(to_money(bill["balance_amount"]) - amount)
        new_status = PaymentStatus.PAID if new_balance == ZERO else PaymentStatus.PARTIAL
        await log.run(
            "update_bill",
            lambda: self.store.update("bills", bill["id"], {
                "paid_amount": new_paid,
                "balance_amount": new_balance,
                "payment_status": new_status,
            }),
        )

        customer_id = bill["customer_id"]
        await log.run(
            f"decrement_outstanding:{customer_id}",
            lambda: self._decrement_outstanding(customer_id, amount),
        )
        return collection_id

    async def _decrement_outstanding(self, customer_id: str, amount: Decimal) -> None:
        customer = await self.store.get("customers", customer_id)
        if customer is None:
            logger.warning(f"Customer {customer_id} vanished before outstanding update, skipping")
            return
        current = to_money(customer["outstanding_balance"] or 0)
        await self.store.update("customers", customer_id, {"outstanding_balance": round2(current - amount)})

    async def _apply_atomic(self, bill: dict, collection: dict, amount: Decimal) -> str:
        shop_id = bill["shop_id"]
        bill_id = bill["id"]
        customer_id = bill["customer_id"]
        changed = "Bill balance changed while recording the payment. Please reload and try again"

        async with self.store.transaction() as tx:
            collection_id = await tx.create("collections", collection)

            current = await tx.get("bills", bill_id)
            if current is None or current["shop_id"] != shop_id:
                raise NotFoundError("Bill not found")
            paid = to_money(current["paid_amount"])
            balance = to_money(current["balance_amount"])
            if current["bill_status"] != BillStatus.ACTIVE.value or amount > balance:
                raise ConflictError(changed)

            new_balance = round2(balance - amount)
            try:
                await tx.update(
                    "bills",
                    bill_id,
                    {
                        "paid_amount": round2(paid + amount),
                        "balance_amount": new_balance,
                        "payment_status": PaymentStatus.PAID if new_balance == ZERO else PaymentStatus.PARTIAL,
                    },
                    conditions=[
                        ("paid_amount", "==", current["paid_amount"]),
                        ("balance_amount", "==", current["balance_amount"]),
                    ],
                )
            except ConflictError:
                raise ConflictError(changed)

            customer = await tx.get("customers", customer_id)
            if customer is None or customer["shop_id"] != shop_id:
                raise NotFoundError("Customer not found")
            outstanding = to_money(customer["outstanding_balance"])
            if outstanding < amount:
                logger.warning(
                    f"Outstanding balance of customer {customer_id} ({outstanding}) "
                    f"is below payment {amount}; flooring at 0"
                )
                new_outstanding = ZERO
            else:
                new_outstanding = round2(outstanding - amount)
            try:
                await tx.update(
                    "customers",
                    customer_id,
                    {"outstanding_balance": new_outstanding},
                    conditions=[("outstanding_balance", "==", customer["outstanding_balance"])],
                )
            except ConflictError:
                raise ConflictError("Customer balance changed while recording the payment. Please try again")

        return collection_id


async def record_payment(
    store: DocumentStore,
    session: SessionContext,
    bill_id: str,
    amount,
    payment_method: PaymentMethod = PaymentMethod.CASH,
    mode: Optional[str] = None,
) -> Tuple[str, dict, Decimal]:
    return await PaymentRecorder(store, mode).record(session, bill_id, amount, payment_method)


async def list_customers_with_outstanding(store: DocumentStore, shop_id: str) -> List[dict]:
    return await store.query(
        "customers",
        [("shop_id", "==", shop_id), ("outstanding_balance", ">", 0)],
        order_by="name",
    )


async def list_unpaid_bills(store: DocumentStore, shop_id: str, customer_id: str) -> List[dict]:
    customer = await store.get("customers", customer_id)
    if customer is None or customer["shop_id"] != shop_id:
        raise NotFoundError("Customer not found")
    return await store.query(
        "bills",
        [
            ("shop_id", "==", shop_id),
            ("customer_id", "==", customer_id),
            ("bill_status", "==", BillStatus.ACTIVE),
            ("payment_status", "in", COLLECTABLE_STATUSES),
        ],
        order_by="created_at",
    )


async def list_bill_collections(store: DocumentStore, shop_id: str, bill_id: str) -> List[dict]:
    await get_bill(store, shop_id, bill_id)
    return await store.query(
        "collections",
        [("shop_id", "==", shop_id), ("bill_id", "==", bill_id)],
        order_by="payment_date",
    )
