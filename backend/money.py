"""
Money and quantity arithmetic for bills.

All amounts are Decimals rounded half-up to 2 places. Rounding is applied after
every multiplication and every sum, not only on the grand total, so that totals
match to the paisa across implementations.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Union

from models import PaymentStatus

Number = Union[Decimal, int, float, str]

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def to_money(value: Number) -> Decimal:
    """Coerce input into a Decimal. Floats go through str() to avoid binary noise."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round2(value: Number) -> Decimal:
    return to_money(value).quantize(CENT, rounding=ROUND_HALF_UP)


def line_total(quantity: Number, selling_price: Number) -> Decimal:
    return round2(to_money(quantity) * to_money(selling_price))


def line_profit(quantity: Number, selling_price: Number, cost_price: Number) -> Decimal:
    profit_per_item = to_money(selling_price) - to_money(cost_price)
    return round2(profit_per_item * to_money(quantity))


def calculate_subtotal(line_totals: Iterable[Number]) -> Decimal:
    return round2(sum((to_money(t) for t in line_totals), ZERO))


def calculate_tax(subtotal: Number, discount: Number, tax_rate: Number) -> Decimal:
    taxable = to_money(subtotal) - to_money(discount)
    return round2(taxable * to_money(tax_rate) / HUNDRED)


def calculate_total(subtotal: Number, discount: Number, tax_amount: Number) -> Decimal:
    return round2(to_money(subtotal) - to_money(discount) + to_money(tax_amount))


def calculate_bill_totals(line_totals: Iterable[Number], discount: Number, tax_rate: Number) -> dict:
    """Fold line totals, an absolute discount and a tax percentage into bill totals."""
    subtotal = calculate_subtotal(line_totals)
    discount = round2(discount)
    tax_amount = calculate_tax(subtotal, discount, tax_rate)
    return {
        "subtotal": subtotal,
        "discount": discount,
        "tax_amount": tax_amount,
        "total_amount": calculate_total(subtotal, discount, tax_amount),
    }


def clamp_discount(amount: Number, subtotal: Number) -> Decimal:
    """A flat discount can never be negative nor exceed the subtotal."""
    amount = to_money(amount)
    subtotal = to_money(subtotal)
    if amount < 0:
        return ZERO
    return round2(min(amount, subtotal))


def percent_discount(percent: Number, subtotal: Number) -> Decimal:
    """Convert a percentage discount (clamped to 0-100) into an absolute amount."""
    percent = clamp_percent(percent)
    return round2(to_money(subtotal) * percent / HUNDRED)


def clamp_percent(percent: Number) -> Decimal:
    percent = to_money(percent)
    if percent < 0:
        return Decimal("0")
    if percent > HUNDRED:
        return HUNDRED
    return percent


def clamp_tax_rate(rate: Number) -> Decimal:
    return clamp_percent(rate)


def derive_payment_status(total_amount: Number, balance_amount: Number) -> PaymentStatus:
    """paid iff nothing is owed, unpaid iff everything is owed, partial otherwise."""
    total = round2(total_amount)
    balance = round2(balance_amount)
    if balance == ZERO:
        return PaymentStatus.PAID
    if balance == total:
        return PaymentStatus.UNPAID
    return PaymentStatus.PARTIAL
