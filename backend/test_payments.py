import logging
from decimal import Decimal

import pytest

from billing import AtomicSaleEffects, CheckoutService
from cart import Cart
from exceptions import NotFoundError, PartialWriteError, ValidationError
from payments import (
    PaymentRecorder, list_bill_collections, list_customers_with_outstanding,
    list_unpaid_bills, record_payment,
)
from schemas import ProductResponse

SHOP_ID = "shop1"


@pytest.fixture
async def credit_bill(store, session, product, customer):
    """Credit sale of 500 against a customer already owing 200"""
    cart = Cart()
    cart.add_item(ProductResponse(**product), 2)
    cart.update_price(product["id"], "250")
    cart.set_customer(customer["name"], customer["customer_type"], customer["id"])
    bill, _ = await CheckoutService(store, AtomicSaleEffects(store)).checkout(cart, session, "credit")
    return bill


@pytest.fixture(params=["sequential", "atomic"])
def recorder(request, store):
    return PaymentRecorder(store, request.param)


async def test_partial_payment(recorder, store, session, credit_bill, customer):
    collection_id, bill, outstanding = await recorder.record(session, credit_bill["id"], Decimal("300"), "cash")

    assert bill["paid_amount"] == Decimal("300.00")
    assert bill["balance_amount"] == Decimal("200.00")
    assert bill["payment_status"] == "partial"
    assert bill["paid_amount"] + bill["balance_amount"] == bill["total_amount"]
    assert outstanding == Decimal("400.00")

    collection = await store.get("collections", collection_id)
    assert collection["amount"] == Decimal("300.00")
    assert collection["bill_id"] == credit_bill["id"]
    assert collection["customer_id"] == customer["id"]
    assert collection["payment_method"] == "cash"


async def test_full_payment_marks_bill_paid(recorder, store, session, credit_bill):
    await recorder.record(session, credit_bill["id"], Decimal("300"), "upi")
    _, bill, outstanding = await recorder.record(session, credit_bill["id"], Decimal("200"), "card")

    assert bill["paid_amount"] == Decimal("500.00")
    assert bill["balance_amount"] == Decimal("0.00")
    assert bill["payment_status"] == "paid"
    assert outstanding == Decimal("200.00")

    with pytest.raises(ValidationError, match="already fully paid"):
        await recorder.record(session, credit_bill["id"], Decimal("1"), "cash")


@pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5"), Decimal("500.01")])
async def test_amount_out_of_range_rejected(recorder, store, session, credit_bill, amount):
    with pytest.raises(ValidationError):
        await recorder.record(session, credit_bill["id"], amount, "cash")

    bill = await store.get("bills", credit_bill["id"])
    assert bill["balance_amount"] == Decimal("500.00")
    assert await store.query("collections", [("shop_id", "==", SHOP_ID)]) == []


async def test_credit_is_not_a_collection_method(recorder, session, credit_bill):
    with pytest.raises(ValidationError, match="cash, card or upi"):
        await recorder.record(session, credit_bill["id"], Decimal("10"), "credit")


async def test_paid_cash_bill_cannot_take_payments(recorder, store, session, product):
    cart = Cart()
    cart.add_item(ProductResponse(**product), 1)
    bill, _ = await CheckoutService(store, AtomicSaleEffects(store)).checkout(cart, session, "cash")

    with pytest.raises(ValidationError):
        await recorder.record(session, bill["id"], Decimal("10"), "cash")


async def test_unknown_bill_is_not_found(recorder, session):
    with pytest.raises(NotFoundError, match="Bill not found"):
        await recorder.record(session, "missing", Decimal("10"), "cash")


async def test_atomic_payment_floors_drifted_outstanding(store, session, credit_bill, customer):
    # stored balance has drifted below what the bill says is owed
    await store.update("customers", customer["id"], {"outstanding_balance": Decimal("100")})

    _, bill, outstanding = await record_payment(
        store, session, credit_bill["id"], Decimal("300"), "cash", mode="atomic"
    )
    assert bill["balance_amount"] == Decimal("200.00")
    assert outstanding == Decimal("0.00")


async def test_sequential_payment_keeps_drift(store, session, credit_bill, customer):
    await store.update("customers", customer["id"], {"outstanding_balance": Decimal("100")})

    _, _, outstanding = await record_payment(
        store, session, credit_bill["id"], Decimal("300"), "cash", mode="sequential"
    )
    assert outstanding == Decimal("-200.00")


async def test_listings(store, session, credit_bill, customer):
    await store.create("customers", {
        "shop_id": SHOP_ID, "name": "Settled", "phone": "9000000000", "outstanding_balance": Decimal("0"),
    })

    owing = await list_customers_with_outstanding(store, SHOP_ID)
    assert [c["id"] for c in owing] == [customer["id"]]

    unpaid = await list_unpaid_bills(store, SHOP_ID, customer["id"])
    assert [b["id"] for b in unpaid] == [credit_bill["id"]]

    await record_payment(store, session, credit_bill["id"], Decimal("500"), "cash", mode="atomic")
    assert await list_unpaid_bills(store, SHOP_ID, customer["id"]) == []

    collections = await list_bill_collections(store, SHOP_ID, credit_bill["id"])
    assert len(collections) == 1
    assert collections[0]["amount"] == Decimal("500.00")


async def test_unpaid_bills_of_unknown_customer(store):
    with pytest.raises(NotFoundError, match="Customer not found"):
        await list_unpaid_bills(store, SHOP_ID, "missing")


async def test_settles_balance_left_by_partial_payment(recorder, store, session, customer, caplog):
    product_id = await store.create("products", {
        "shop_id": SHOP_ID, "name": "Toffee", "sku": "SKU-TOF",
        "retail_price": Decimal("0.35"), "cost_price": Decimal("0.20"), "current_stock": 50,
    })
    product = await store.get("products", product_id)
    await store.update("customers", customer["id"], {"outstanding_balance": Decimal("0")})

    cart = Cart()
    cart.add_item(ProductResponse(**product), 2)
    cart.set_customer(customer["name"], customer["customer_type"], customer["id"])
    bill, _ = await CheckoutService(store, AtomicSaleEffects(store)).checkout(cart, session, "credit")
    assert bill["total_amount"] == Decimal("0.70")

    _, bill, outstanding = await recorder.record(session, bill["id"], Decimal("0.40"), "cash")
    assert bill["balance_amount"] == Decimal("0.30")
    assert outstanding == Decimal("0.30")

    with caplog.at_level(logging.WARNING):
        _, bill, outstanding = await recorder.record(session, bill["id"], bill["balance_amount"], "upi")

    assert bill["payment_status"] == "paid"
    assert bill["paid_amount"] == Decimal("0.70")
    assert bill["balance_amount"] == Decimal("0.00")
    assert outstanding == Decimal("0.00")
    assert "flooring" not in caplog.text


async def test_sequential_payment_failure_on_bill_step(failing_store, store, session, credit_bill):
    recorder = PaymentRecorder(failing_store("bills"), "sequential")

    with pytest.raises(PartialWriteError) as exc_info:
        await recorder.record(session, credit_bill["id"], Decimal("100"), "cash")

    error = exc_info.value
    assert error.completed_steps == ["create_collection"]
    assert error.failed_step == "update_bill"
    assert error.bill_id == credit_bill["id"]

    # the collection record stays, the bill is untouched
    assert len(await list_bill_collections(store, SHOP_ID, credit_bill["id"])) == 1
    assert (await store.get("bills", credit_bill["id"]))["balance_amount"] == Decimal("500.00")


async def test_sequential_payment_failure_on_outstanding_step(failing_store, store, session, credit_bill, customer):
    recorder = PaymentRecorder(failing_store("customers"), "sequential")

    with pytest.raises(PartialWriteError) as exc_info:
        await recorder.record(session, credit_bill["id"], Decimal("100"), "cash")

    error = exc_info.value
    assert error.completed_steps == ["create_collection", "update_bill"]
    assert error.failed_step == f"decrement_outstanding:{customer['id']}"

    bill = await store.get("bills", credit_bill["id"])
    assert bill["balance_amount"] == Decimal("400.00")
    assert bill["payment_status"] == "partial"
    assert (await store.get("customers", customer["id"]))["outstanding_balance"] == Decimal("700.00")


@pytest.mark.parametrize("fail_collection", ["bills", "customers"])
async def test_atomic_payment_failure_rolls_back(failing_store, store, session, credit_bill, customer, fail_collection):
    recorder = PaymentRecorder(failing_store(fail_collection), "atomic")

    with pytest.raises(OSError):
        await recorder.record(session, credit_bill["id"], Decimal("100"), "cash")

    assert await store.query("collections", [("shop_id", "==", SHOP_ID)]) == []
    bill = await store.get("bills", credit_bill["id"])
    assert bill["paid_amount"] == Decimal("0.00")
    assert bill["balance_amount"] == Decimal("500.00")
    assert bill["payment_status"] == "unpaid"
    assert (await store.get("customers", customer["id"]))["outstanding_balance"] == Decimal("700.00")
