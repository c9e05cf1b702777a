"""
Checkout: turns a cart into a persisted bill plus its stock/ledger side effects.

Checkout sequence:
1. validate (nothing is written when this fails)
2. allocate a bill number, collision-checked against the shop's bills
3. persist the bill
4. decrement stock for every line
5. credit sales only: add the total to the customer's outstanding balance

Steps 3-5 are delegated to a SaleEffects strategy:
- SequentialSaleEffects issues them as independent read-then-write calls with
  no rollback, and reports exactly which steps completed when one fails.
- AtomicSaleEffects runs them in one transaction using conditional updates,
  so either all of them land or none do.
"""
import logging
import random
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Awaitable, Callable, List, Optional, Tuple

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from cart import Cart, WALK_IN
from config import settings
from document_store import DocumentStore
from exceptions import ConflictError, NotFoundError, PartialWriteError, RetailError, ValidationError
from models import BillStatus, PaymentMethod
from money import ZERO, derive_payment_status, round2, to_money
from schemas import SessionContext
from timezone_utils import get_shop_now

logger = logging.getLogger(__name__)


class BillNumberCollision(ConflictError):
    pass


def generate_bill_number(now: Optional[datetime] = None) -> str:
    """BILL-YYMMDD-RRRR with four random digits"""
    now = now or get_shop_now()
    return f"BILL-{now:%y%m%d}-{random.randint(0, 9999):04d}"


async def allocate_bill_number(
    store: DocumentStore,
    shop_id: str,
    shop_timezone: Optional[str] = None,
) -> str:
    """Draw random bill numbers until one is unused in this shop"""
    async for attempt in AsyncRetrying(
        retry=retry_if_exception_type(BillNumberCollision),
        stop=stop_after_attempt(settings.BILL_NUMBER_MAX_ATTEMPTS),
        reraise=True,
    ):
        with attempt:
            bill_number = generate_bill_number(get_shop_now(shop_timezone))
            existing = await store.query(
                "bills",
                [("shop_id", "==", shop_id), ("bill_number", "==", bill_number)],
                limit=1,
            )
            if existing:
                logger.warning(f"Bill number {bill_number} already used, drawing again")
                raise BillNumberCollision(f"Could not allocate a unique bill number for shop {shop_id}")
    return bill_number


async def get_bill(store: DocumentStore, shop_id: str, bill_id: str) -> dict:
    bill = await store.get("bills", bill_id)
    if bill is None or bill["shop_id"] != shop_id:
        raise NotFoundError("Bill not found")
    return bill


def build_bill(
    cart: Cart,
    session: SessionContext,
    payment_method: PaymentMethod,
    bill_number: str,
    now: Optional[datetime] = None,
) -> dict:
    """Snapshot the cart into a bill document (not yet persisted)"""
    now = now or datetime.utcnow()
    totals = cart.totals
    total_amount = totals["total_amount"]

    if payment_method == PaymentMethod.CREDIT:
        paid_amount, balance_amount = ZERO, total_amount
    else:
        paid_amount, balance_amount = total_amount, ZERO

    return {
        "shop_id": session.shop_id,
        "bill_number": bill_number,
        "bill_date": now,
        "customer_id": cart.customer_id,
        "customer_name": cart.customer_name,
        "customer_type": cart.customer_type,
        "items": [item.model_dump(mode="json") for item in cart.items],
        "subtotal": totals["subtotal"],
        "discount": totals["discount"],
        "tax_rate": cart.tax_rate,
        "tax_amount": totals["tax_amount"],
        "total_amount": total_amount,
        "total_profit": cart.total_profit,
        "paid_amount": paid_amount,
        "balance_amount": balance_amount,
        "payment_status": derive_payment_status(total_amount, balance_amount),
        "payment_method": payment_method,
        "bill_status": BillStatus.ACTIVE,
        "created_by": session.uid,
        "created_at": now,
    }


class StepLog:
    """Runs named write steps in order and remembers which ones completed"""

    def __init__(self, sequence: str):
        self.sequence = sequence
        self.completed: List[str] = []
        self.bill_id: Optional[str] = None

    async def run(self, name: str, operation: Callable[[], Awaitable]):
        try:
            result = await operation()
        except Exception as e:
            logger.error(
                f"❌ {self.sequence} failed at step '{name}' after {self.completed or 'no steps'}: {e}",
                exc_info=True,
            )
            raise PartialWriteError(
                f"Failed to complete {self.sequence}. Please try again",
                completed_steps=self.completed,
                failed_step=name,
                bill_id=self.bill_id,
            ) from e
        self.completed.append(name)
        return result


class SaleEffects(ABC):
    """Persists a bill draft together with its stock and ledger effects"""

    def __init__(self, store: DocumentStore):
        self.store = store

    @abstractmethod
    async def apply(self, bill: dict) -> str:
        """Returns the id of the persisted bill"""


class SequentialSaleEffects(SaleEffects):
    """
    Independent writes, each committed on its own.

    Stock and outstanding are read and then written back, so two checkouts on
    the same product or customer can interleave and lose an update. Nothing is
    rolled back when a later step fails.
    """

    async def apply(self, bill: dict) -> str:
        log = StepLog("checkout")
        bill_id = await log.run("create_bill", lambda: self.store.create("bills", bill))
        log.bill_id = bill_id

        for item in bill["items"]:
            product_id = item["product_id"]
            await log.run(
                f"decrement_stock:{product_id}",
                lambda: self._decrement_stock(product_id, item["quantity"]),
            )

        if bill["payment_method"] == PaymentMethod.CREDIT:
            customer_id = bill["customer_id"]
            await log.run(
                f"increment_outstanding:{customer_id}",
                lambda: self._increment_outstanding(customer_id, bill["total_amount"]),
            )
        return bill_id

    async def _decrement_stock(self, product_id: str, quantity: int) -> None:
        product = await self.store.get("products", product_id)
        if product is None:
            logger.warning(f"Product {product_id} vanished before stock update, skipping")
            return
        current_stock = product["current_stock"] or 0
        await self.store.update("products", product_id, {"current_stock": current_stock - quantity})

    async def _increment_outstanding(self, customer_id: str, amount: Decimal) -> None:
        customer = await self.store.get("customers", customer_id)
        if customer is None:
            logger.warning(f"Customer {customer_id} vanished before outstanding update, skipping")
            return
        current = to_money(customer["outstanding_balance"] or 0)
        await self.store.update("customers", customer_id, {"outstanding_balance": round2(current + amount)})


class AtomicSaleEffects(SaleEffects):
    """
    Bill insert, stock decrements and outstanding increment in one transaction.

    Stock is only decremented while current_stock >= quantity; otherwise the
    whole checkout rolls back with ConflictError.
    """

    async def apply(self, bill: dict) -> str:
        shop_id = bill["shop_id"]
        async with self.store.transaction() as tx:
            bill_id = await tx.create("bills", bill)

            for item in bill["items"]:
                quantity = item["quantity"]
                try:
                    await tx.increment(
                        "products",
                        item["product_id"],
                        {"current_stock": -quantity},
                        conditions=[("shop_id", "==", shop_id), ("current_stock", ">=", quantity)],
                    )
                except ConflictError:
                    product = await tx.get("products", item["product_id"])
                    if product is None or product["shop_id"] != shop_id:
                        raise NotFoundError(f"Product {item['product_name']} not found")
                    raise ConflictError(
                        f"Insufficient stock for {item['product_name']}. Available: {product['current_stock']}"
                    )

            if bill["payment_method"] == PaymentMethod.CREDIT:
                customer_id = bill["customer_id"]
                customer = await tx.get("customers", customer_id)
                if customer is None or customer["shop_id"] != shop_id:
                    raise NotFoundError("Customer not found")
                outstanding = to_money(customer["outstanding_balance"])
                try:
                    await tx.update(
                        "customers",
                        customer_id,
                        {"outstanding_balance": round2(outstanding + bill["total_amount"])},
                        conditions=[("outstanding_balance", "==", customer["outstanding_balance"])],
                    )
                except ConflictError:
                    raise ConflictError("Customer balance changed during checkout. Please try again")
        return bill_id


def make_sale_effects(store: DocumentStore, mode: Optional[str] = None) -> SaleEffects:
    mode = mode or settings.CONSISTENCY_MODE
    if mode == "sequential":
        return SequentialSaleEffects(store)
    return AtomicSaleEffects(store)


class CheckoutService:
    def __init__(self, store: DocumentStore, effects: Optional[SaleEffects] = None):
        self.store = store
        self.effects = effects or make_sale_effects(store)

    async def validate(
        self,
        cart: Cart,
        session: SessionContext,
        payment_method: PaymentMethod,
        cash_tendered: Optional[Decimal] = None,
    ) -> None:
        """Every rejection happens here, before the first write"""
        if cart.is_empty:
            raise ValidationError("Cart is empty")

        total_amount = cart.total_amount

        if payment_method == PaymentMethod.CREDIT:
            if not cart.customer_id:
                raise ValidationError("Please select a customer for credit sales")
            customer = await self.store.get("customers", cart.customer_id)
            if customer is None or customer["shop_id"] != session.shop_id:
                raise NotFoundError("Customer not found")
            credit_limit = to_money(customer["credit_limit"] or 0)
            outstanding = to_money(customer["outstanding_balance"] or 0)
            if credit_limit > 0 and outstanding + total_amount > credit_limit:
                raise ValidationError(
                    f"Credit limit exceeded. Limit: {credit_limit}, "
                    f"Current balance: {outstanding}, Bill total: {total_amount}"
                )

        if payment_method == PaymentMethod.CASH and cash_tendered is not None:
            cash_tendered = to_money(cash_tendered)
            if cash_tendered < total_amount:
                raise ValidationError(f"Insufficient amount (Short by {round2(total_amount - cash_tendered)})")

    async def checkout(
        self,
        cart: Cart,
        session: SessionContext,
        payment_method: PaymentMethod = PaymentMethod.CASH,
        cash_tendered: Optional[Decimal] = None,
    ) -> Tuple[dict, Decimal]:
        """
        Create the bill for `cart` and apply its side effects.

        Returns the persisted bill and the change due for cash sales. The cart
        is cleared only after every step succeeded.
        """
        payment_method = PaymentMethod(payment_method)
        await self.validate(cart, session, payment_method, cash_tendered)

        shop = await self.store.get("shops", session.shop_id)
        shop_timezone = shop.get("timezone") if shop else None

        bill_number = await allocate_bill_number(self.store, session.shop_id, shop_timezone)
        bill = build_bill(cart, session, payment_method, bill_number)

        try:
            bill_id = await self.effects.apply(bill)
        except RetailError as e:
            logger.warning(f"Checkout of {bill_number} rejected: {e.message}")
            raise

        persisted = await get_bill(self.store, session.shop_id, bill_id)
        logger.info(
            f"✅ Bill {bill_number} created: total {persisted['total_amount']} "
            f"via {payment_method.value} ({cart.customer_name or WALK_IN})"
        )

        change_due = ZERO
        if payment_method == PaymentMethod.CASH and cash_tendered is not None:
            change_due = round2(to_money(cash_tendered) - persisted["total_amount"])

        cart.clear()
        return persisted, change_due


async def delete_bill(store: DocumentStore, session: SessionContext, bill_id: str) -> dict:
    """
    Hard-delete a bill.

    Stock and customer outstanding are NOT reversed; the caller is expected to
    adjust its own running stats.
    """
    bill = await get_bill(store, session.shop_id, bill_id)
    await store.delete("bills", bill_id)
    logger.warning(
        f"Bill {bill['bill_number']} deleted by {session.uid}; "
        f"stock and outstanding balances were not reversed"
    )
    return bill
