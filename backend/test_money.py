from decimal import Decimal

from models import PaymentStatus
from money import (
    calculate_bill_totals, calculate_tax, clamp_discount, clamp_tax_rate,
    derive_payment_status, line_profit, line_total, percent_discount, round2,
)


def test_round_half_up_after_multiplication():
    # 3 x 10.005 = 30.015 -> 30.02, never banker's rounding to 30.01
    assert line_total(3, "10.005") == Decimal("30.02")
    totals = calculate_bill_totals([line_total(3, "10.005")], 0, 0)
    assert totals["subtotal"] == Decimal("30.02")
    assert totals["total_amount"] == Decimal("30.02")


def test_totals_are_reproducible():
    lines = [line_total(3, "10.005"), line_total(7, "3.333"), line_total(1, "0.125")]
    first = calculate_bill_totals(lines, "5", "12.5")
    second = calculate_bill_totals(lines, "5", "12.5")
    assert first == second


def test_rounding_applied_per_step_not_only_at_end():
    # 2 x 0.125 = 0.25 and 0.125 -> 0.13; the subtotal is the sum of rounded lines
    lines = [line_total(2, "0.125"), line_total(1, "0.125")]
    assert lines == [Decimal("0.25"), Decimal("0.13")]
    assert calculate_bill_totals(lines, 0, 0)["subtotal"] == Decimal("0.38")


def test_scenario_widget_with_18_percent_tax():
    total = line_total(2, 50)
    totals = calculate_bill_totals([total], 0, 18)
    assert totals["subtotal"] == Decimal("100.00")
    assert totals["tax_amount"] == Decimal("18.00")
    assert totals["total_amount"] == Decimal("118.00")
    assert line_profit(2, 50, 30) == Decimal("40.00")


def test_tax_is_on_discounted_subtotal():
    assert calculate_tax(Decimal("100"), Decimal("10"), Decimal("18")) == Decimal("16.20")


def test_flat_discount_clamped_to_subtotal():
    discount = clamp_discount(150, Decimal("100"))
    assert discount == Decimal("100.00")
    totals = calculate_bill_totals([Decimal("100")], discount, 18)
    assert totals["tax_amount"] == Decimal("0.00")
    assert totals["total_amount"] == Decimal("0.00")


def test_negative_discount_becomes_zero():
    assert clamp_discount(-5, Decimal("100")) == Decimal("0.00")


def test_percentage_discount_clamped_to_100():
    assert percent_discount(250, Decimal("80")) == Decimal("80.00")
    assert percent_discount(-10, Decimal("80")) == Decimal("0.00")
    assert percent_discount(12.5, Decimal("80")) == Decimal("10.00")


def test_tax_rate_clamped():
    assert clamp_tax_rate(150) == Decimal("100")
    assert clamp_tax_rate(-1) == Decimal("0")
    assert clamp_tax_rate("18") == Decimal("18")


def test_float_inputs_do_not_leak_binary_noise():
    assert round2(0.1 + 0.2) == Decimal("0.30")
    assert line_total(3, 0.1) == Decimal("0.30")


def test_payment_status_derivation():
    assert derive_payment_status(500, 0) == PaymentStatus.PAID
    assert derive_payment_status(500, 500) == PaymentStatus.UNPAID
    assert derive_payment_status(500, 200) == PaymentStatus.PARTIAL
    # nothing owed on a zero bill counts as paid
    assert derive_payment_status(0, 0) == PaymentStatus.PAID
