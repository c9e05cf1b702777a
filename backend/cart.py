"""
In-memory shopping cart.

Lines keep insertion order. Totals are recomputed from the current lines on
every read, never cached.
"""
import logging
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from models import CustomerType
from money import (
    ZERO, calculate_bill_totals, line_profit, line_total, round2, to_money,
)
from schemas import BillItem, CartResponse, ProductResponse

logger = logging.getLogger(__name__)

WALK_IN = "Walk-in"


class Cart:
    def __init__(self):
        self.clear()

    # ---------- mutations ----------

    def add_item(self, product: ProductResponse, quantity: int = 1) -> BillItem:
        """
        Add a product, or bump the quantity of its existing line.

        The selling price is chosen once, here: wholesale customers get the
        wholesale price when the product has one. Changing the customer later
        does not reprice lines already in the cart.
        """
        existing = self._find(product.id)
        if existing is not None:
            existing.quantity += quantity
            self._recompute(existing)
            return existing

        if self.customer_type == CustomerType.WHOLESALE and product.wholesale_price:
            selling_price = product.wholesale_price
        else:
            selling_price = product.retail_price

        item = BillItem(
            product_id=product.id,
            product_name=product.name,
            sku=product.sku,
            category_id=product.category_id or None,
            category_name=product.category_name or None,
            quantity=quantity,
            unit=product.unit,
            cost_price=to_money(product.cost_price or 0),
            selling_price=to_money(selling_price),
            total_amount=ZERO,
        )
        self._recompute(item)
        self.items.append(item)
        return item

    def remove_item(self, product_id: str) -> None:
        self.items = [item for item in self.items if item.product_id != product_id]

    def update_quantity(self, product_id: str, quantity: int) -> None:
        if quantity <= 0:
            self.remove_item(product_id)
            return
        item = self._find(product_id)
        if item is not None:
            item.quantity = quantity
            self._recompute(item)

    def update_price(self, product_id: str, price) -> None:
        item = self._find(product_id)
        if item is not None:
            item.selling_price = to_money(price)
            self._recompute(item)

    def set_customer(
        self,
        name: str,
        customer_type: CustomerType = CustomerType.RETAIL,
        customer_id: Optional[str] = None,
    ) -> None:
        self.customer_name = name
        self.customer_type = CustomerType(customer_type)
        self.customer_id = customer_id

    def set_discount(self, amount) -> None:
        # Callers clamp (money.clamp_discount / money.percent_discount)
        self.discount = round2(amount)

    def set_tax_rate(self, percent) -> None:
        # Callers clamp (money.clamp_tax_rate)
        self.tax_rate = to_money(percent)

    def clear(self) -> None:
        self.items: List[BillItem] = []
        self.customer_name = WALK_IN
        self.customer_id: Optional[str] = None
        self.customer_type = CustomerType.RETAIL
        self.discount = ZERO
        self.tax_rate = Decimal("0")

    # ---------- derived totals ----------

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def totals(self) -> dict:
        return calculate_bill_totals(
            (item.total_amount for item in self.items), self.discount, self.tax_rate
        )

    @property
    def subtotal(self) -> Decimal:
        return self.totals["subtotal"]

    @property
    def tax_amount(self) -> Decimal:
        return self.totals["tax_amount"]

    @property
    def total_amount(self) -> Decimal:
        return self.totals["total_amount"]

    @property
    def total_profit(self) -> Decimal:
        return round2(sum((item.total_profit or ZERO for item in self.items), ZERO))

    def snapshot(self) -> CartResponse:
        totals = self.totals
        return CartResponse(
            items=[item.model_copy() for item in self.items],
            customer_id=self.customer_id,
            customer_name=self.customer_name,
            customer_type=self.customer_type,
            discount=self.discount,
            tax_rate=self.tax_rate,
            subtotal=totals["subtotal"],
            tax_amount=totals["tax_amount"],
            total_amount=totals["total_amount"],
            total_profit=self.total_profit,
        )

    # ---------- internals ----------

    def _find(self, product_id: str) -> Optional[BillItem]:
        for item in self.items:
            if item.product_id == product_id:
                return item
        return None

    @staticmethod
    def _recompute(item: BillItem) -> None:
        item.total_amount = line_total(item.quantity, item.selling_price)
        item.profit_per_item = item.selling_price - item.cost_price
        item.total_profit = line_profit(item.quantity, item.selling_price, item.cost_price)


class CartRegistry:
    """One cart per (shop, user) session, kept in process memory"""

    def __init__(self):
        self._carts: Dict[Tuple[str, str], Cart] = {}

    def get(self, shop_id: str, uid: str) -> Cart:
        key = (shop_id, uid)
        if key not in self._carts:
            self._carts[key] = Cart()
        return self._carts[key]

    def discard(self, shop_id: str, uid: str) -> None:
        self._carts.pop((shop_id, uid), None)


carts = CartRegistry()
