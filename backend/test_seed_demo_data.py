from auth import authenticate_account, resolve_session
from seed_demo_data import CATEGORIES, CUSTOMERS, DEMO_EMAIL, DEMO_PASSWORD, PRODUCTS, seed_demo_data


async def test_seed_creates_demo_shop(store):
    await seed_demo_data(store)

    account = await authenticate_account(store, DEMO_EMAIL, DEMO_PASSWORD)
    assert account is not None
    session = await resolve_session(store, account)
    assert session.shop_id == account["id"]

    shop = await store.get("shops", session.shop_id)
    assert shop["name"] == "Demo Store"

    products = await store.query("products", [("shop_id", "==", session.shop_id)])
    assert len(products) == len(PRODUCTS)
    assert all(p["category_name"] in CATEGORIES for p in products)


async def test_seed_is_idempotent(store):
    await seed_demo_data(store)
    await seed_demo_data(store)

    assert len(await store.query("accounts", [("email", "==", DEMO_EMAIL)])) == 1
    assert len(await store.query("products", [])) == len(PRODUCTS)
    assert len(await store.query("categories", [])) == len(CATEGORIES)
    assert len(await store.query("customers", [])) == len(CUSTOMERS)
