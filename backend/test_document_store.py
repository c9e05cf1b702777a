from decimal import Decimal

import pytest

from exceptions import ConflictError, NotFoundError
from models import PaymentMethod

SHOP_ID = "shop1"


async def add_customer(store, name, phone, balance="0"):
    return await store.create("customers", {
        "shop_id": SHOP_ID, "name": name, "phone": phone, "outstanding_balance": Decimal(balance),
    })


async def test_create_and_get(store):
    customer_id = await add_customer(store, "Ravi", "9876543210", "12.50")
    doc = await store.get("customers", customer_id)
    assert doc["name"] == "Ravi"
    assert doc["outstanding_balance"] == Decimal("12.50")
    assert doc["customer_type"] == "retail"
    assert await store.get("customers", "missing") is None


async def test_update_merges_fields(store):
    customer_id = await add_customer(store, "Ravi", "9876543210")
    await store.update("customers", customer_id, {"name": "Ravi K"})
    doc = await store.get("customers", customer_id)
    assert doc["name"] == "Ravi K"
    assert doc["phone"] == "9876543210"

    with pytest.raises(NotFoundError):
        await store.update("customers", "missing", {"name": "x"})


async def test_update_with_conditions_is_compare_and_set(store):
    customer_id = await add_customer(store, "Ravi", "9876543210", "0.70")
    current = (await store.get("customers", customer_id))["outstanding_balance"]

    await store.update(
        "customers", customer_id, {"outstanding_balance": Decimal("0.30")},
        conditions=[("outstanding_balance", "==", current)],
    )
    assert (await store.get("customers", customer_id))["outstanding_balance"] == Decimal("0.30")

    # the value read before the first write is stale now
    with pytest.raises(ConflictError):
        await store.update(
            "customers", customer_id, {"outstanding_balance": Decimal("0")},
            conditions=[("outstanding_balance", "==", current)],
        )
    assert (await store.get("customers", customer_id))["outstanding_balance"] == Decimal("0.30")


async def test_enum_values_are_stored_as_strings(store):
    collection_id = await store.create("collections", {
        "shop_id": SHOP_ID, "bill_id": "b1", "customer_id": "c1",
        "amount": Decimal("10"), "payment_method": PaymentMethod.UPI,
    })
    doc = await store.get("collections", collection_id)
    assert doc["payment_method"] == "upi"

    found = await store.query("collections", [("payment_method", "==", PaymentMethod.UPI)])
    assert [d["id"] for d in found] == [collection_id]


async def test_query_filters_and_ordering(store):
    await add_customer(store, "Cara", "1000000003", "30")
    await add_customer(store, "Abe", "1000000001", "10")
    await add_customer(store, "Bea", "1000000002", "0")
    await store.create("customers", {"shop_id": "other", "name": "Zed", "phone": "1000000009"})

    names = [d["name"] for d in await store.query("customers", [("shop_id", "==", SHOP_ID)], order_by="name")]
    assert names == ["Abe", "Bea", "Cara"]

    owing = await store.query(
        "customers", [("shop_id", "==", SHOP_ID), ("outstanding_balance", ">", 0)], order_by="-name"
    )
    assert [d["name"] for d in owing] == ["Cara", "Abe"]

    picked = await store.query("customers", [("phone", "in", ["1000000002", "1000000009"])], order_by="name")
    assert [d["name"] for d in picked] == ["Bea", "Zed"]


async def test_query_pages_with_start_after(store):
    for i in range(5):
        await add_customer(store, f"C{i}", f"100000000{i}")

    first = await store.query("customers", [("shop_id", "==", SHOP_ID)], order_by="name", limit=2)
    second = await store.query(
        "customers", [("shop_id", "==", SHOP_ID)], order_by="name", limit=2, start_after=first[-1]["id"]
    )
    rest = await store.query(
        "customers", [("shop_id", "==", SHOP_ID)], order_by="name", start_after=second[-1]["id"]
    )
    assert [d["name"] for d in first + second + rest] == ["C0", "C1", "C2", "C3", "C4"]


async def test_unknown_collection_field_and_operator(store):
    with pytest.raises(ValueError):
        await store.get("widgets", "x")
    with pytest.raises(ValueError):
        await store.query("customers", [("nickname", "==", "x")])
    with pytest.raises(ValueError):
        await store.query("customers", [("name", "~", "x")])


async def test_delete(store):
    customer_id = await add_customer(store, "Ravi", "9876543210")
    await store.delete("customers", customer_id)
    assert await store.get("customers", customer_id) is None
    with pytest.raises(NotFoundError):
        await store.delete("customers", customer_id)


async def test_conditional_increment(store):
    product_id = await store.create("products", {
        "shop_id": SHOP_ID, "name": "Pen", "sku": "SKU-1", "retail_price": Decimal("5"), "current_stock": 5,
    })

    await store.increment("products", product_id, {"current_stock": -3}, [("current_stock", ">=", 3)])
    assert (await store.get("products", product_id))["current_stock"] == 2

    with pytest.raises(ConflictError):
        await store.increment("products", product_id, {"current_stock": -3}, [("current_stock", ">=", 3)])
    assert (await store.get("products", product_id))["current_stock"] == 2

    with pytest.raises(ConflictError):
        await store.increment("products", "missing", {"current_stock": 1})


async def test_transaction_rolls_back_on_error(store):
    with pytest.raises(RuntimeError):
        async with store.transaction() as tx:
            await add_customer(tx, "Ghost", "9999999999")
            raise RuntimeError("boom")

    assert await store.query("customers", [("name", "==", "Ghost")]) == []


async def test_transaction_commits_together(store):
    async with store.transaction() as tx:
        first = await add_customer(tx, "One", "1111111111")
        await tx.update("customers", first, {"name": "One!"})
        # nested blocks join the outer transaction
        async with tx.transaction() as inner:
            await add_customer(inner, "Two", "2222222222")

    names = sorted(d["name"] for d in await store.query("customers", [("shop_id", "==", SHOP_ID)]))
    assert names == ["One!", "Two"]
