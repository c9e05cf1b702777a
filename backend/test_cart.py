from decimal import Decimal

from cart import Cart, CartRegistry, WALK_IN
from models import CustomerType
from schemas import ProductResponse


def make_product(product_id="p1", retail="50", wholesale="45", cost="30", category_id="c1"):
    return ProductResponse(
        id=product_id,
        shop_id="shop1",
        name=f"Product {product_id}",
        sku=f"SKU-{product_id}",
        category_id=category_id,
        category_name="Gadgets" if category_id else None,
        retail_price=Decimal(retail),
        wholesale_price=Decimal(wholesale) if wholesale else None,
        cost_price=Decimal(cost),
        current_stock=10,
    )


def test_new_cart_is_empty_walk_in():
    cart = Cart()
    assert cart.is_empty
    assert cart.customer_name == WALK_IN
    assert cart.customer_type == CustomerType.RETAIL
    assert cart.customer_id is None
    assert cart.total_amount == Decimal("0.00")


def test_add_item_computes_line_totals_and_profit():
    cart = Cart()
    item = cart.add_item(make_product(), 2)
    assert item.selling_price == Decimal("50")
    assert item.total_amount == Decimal("100.00")
    assert item.profit_per_item == Decimal("20")
    assert item.total_profit == Decimal("40.00")
    assert item.category_name == "Gadgets"


def test_adding_same_product_bumps_quantity():
    cart = Cart()
    cart.add_item(make_product(), 1)
    cart.add_item(make_product(), 2)
    assert len(cart.items) == 1
    assert cart.items[0].quantity == 3
    assert cart.subtotal == Decimal("150.00")


def test_lines_keep_insertion_order():
    cart = Cart()
    cart.add_item(make_product("b"))
    cart.add_item(make_product("a"))
    cart.add_item(make_product("c"))
    assert [i.product_id for i in cart.items] == ["b", "a", "c"]


def test_wholesale_price_chosen_at_add_time_only():
    cart = Cart()
    cart.add_item(make_product("retail-line"))
    cart.set_customer("Bulk Buyer", CustomerType.WHOLESALE, "cust1")
    cart.add_item(make_product("wholesale-line"))

    prices = {i.product_id: i.selling_price for i in cart.items}
    assert prices["retail-line"] == Decimal("50")
    assert prices["wholesale-line"] == Decimal("45")


def test_wholesale_customer_falls_back_to_retail_price():
    cart = Cart()
    cart.set_customer("Bulk Buyer", CustomerType.WHOLESALE, "cust1")
    item = cart.add_item(make_product(wholesale=None))
    assert item.selling_price == Decimal("50")


def test_update_quantity_zero_removes_line():
    cart = Cart()
    cart.add_item(make_product("p1"))
    cart.add_item(make_product("p2"))
    cart.update_quantity("p1", 0)
    assert [i.product_id for i in cart.items] == ["p2"]
    cart.update_quantity("p2", -3)
    assert cart.is_empty


def test_update_quantity_recomputes():
    cart = Cart()
    cart.add_item(make_product())
    cart.update_quantity("p1", 4)
    assert cart.items[0].total_amount == Decimal("200.00")
    assert cart.items[0].total_profit == Decimal("80.00")


def test_update_price_recomputes_total_and_profit():
    cart = Cart()
    cart.add_item(make_product(), 3)
    cart.update_price("p1", "40.50")
    item = cart.items[0]
    assert item.total_amount == Decimal("121.50")
    assert item.profit_per_item == Decimal("10.50")
    assert item.total_profit == Decimal("31.50")


def test_totals_follow_discount_and_tax():
    cart = Cart()
    cart.add_item(make_product(), 2)
    cart.set_tax_rate(18)
    assert cart.tax_amount == Decimal("18.00")
    assert cart.total_amount == Decimal("118.00")

    cart.set_discount(10)
    assert cart.tax_amount == Decimal("16.20")
    assert cart.total_amount == Decimal("106.20")

    # totals are never cached
    cart.remove_item("p1")
    assert cart.subtotal == Decimal("0.00")


def test_clear_resets_everything():
    cart = Cart()
    cart.add_item(make_product())
    cart.set_customer("Ravi", CustomerType.WHOLESALE, "cust1")
    cart.set_discount(5)
    cart.set_tax_rate(18)
    cart.clear()

    assert cart.is_empty
    assert cart.customer_name == WALK_IN
    assert cart.customer_type == CustomerType.RETAIL
    assert cart.customer_id is None
    assert cart.discount == Decimal("0")
    assert cart.tax_rate == Decimal("0")


def test_snapshot_is_detached_from_cart():
    cart = Cart()
    cart.add_item(make_product(), 2)
    snapshot = cart.snapshot()
    cart.update_quantity("p1", 5)
    assert snapshot.items[0].quantity == 2
    assert snapshot.total_amount == Decimal("100.00")


def test_registry_keeps_one_cart_per_user_and_shop():
    registry = CartRegistry()
    first = registry.get("shop1", "u1")
    assert registry.get("shop1", "u1") is first
    assert registry.get("shop1", "u2") is not first
    assert registry.get("shop2", "u1") is not first

    registry.discard("shop1", "u1")
    assert registry.get("shop1", "u1") is not first
