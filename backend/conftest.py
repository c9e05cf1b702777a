import pytest
from decimal import Decimal

from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cart import carts
from database import create_engine_for, create_tables
from document_store import SqlDocumentStore
from schemas import SessionContext

SHOP_ID = "shop1"


@pytest.fixture
async def engine(tmp_path):
    engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path}/test.db")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def store(session_maker):
    return SqlDocumentStore(session_maker)


@pytest.fixture
def session():
    return SessionContext(uid="user1", email="cashier@example.com", display_name="Cashier", shop_id=SHOP_ID)


@pytest.fixture
async def product(store):
    """Widget: retail 50, wholesale 45, cost 30, stock 10"""
    category_id = await store.create("categories", {"shop_id": SHOP_ID, "name": "Gadgets"})
    product_id = await store.create("products", {
        "shop_id": SHOP_ID,
        "name": "Widget",
        "sku": "SKU-001",
        "category_id": category_id,
        "category_name": "Gadgets",
        "retail_price": Decimal("50"),
        "wholesale_price": Decimal("45"),
        "cost_price": Decimal("30"),
        "current_stock": 10,
        "unit": "pcs",
    })
    return await store.get("products", product_id)


@pytest.fixture
async def customer(store):
    """Credit customer owing 200 with no credit limit"""
    customer_id = await store.create("customers", {
        "shop_id": SHOP_ID,
        "name": "Ravi Traders",
        "phone": "9876543210",
        "customer_type": "retail",
        "credit_limit": Decimal("0"),
        "outstanding_balance": Decimal("200"),
    })
    return await store.get("customers", customer_id)


@pytest.fixture
async def client(store):
    from main import app
    from auth import get_store

    app.dependency_overrides[get_store] = lambda: store
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
    carts._carts.clear()


@pytest.fixture
async def auth_headers(client):
    response = await client.post("/auth/register", json={
        "email": "owner@example.com",
        "password": "secret123",
        "display_name": "Owner",
    })
    assert response.status_code == 201
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


class FailingStore(SqlDocumentStore):
    """Raises on writes to one collection"""

    def __init__(self, session_maker, fail_collection, fail_after=0):
        super().__init__(session_maker)
        self.fail_collection = fail_collection
        self.fail_after = fail_after
        self.writes = 0

    def _maybe_fail(self, collection):
        if collection == self.fail_collection:
            self.writes += 1
            if self.writes > self.fail_after:
                raise OSError("connection reset by peer")

    async def update(self, collection, doc_id, fields, conditions=()):
        self._maybe_fail(collection)
        return await super().update(collection, doc_id, fields, conditions)

    async def increment(self, collection, doc_id, deltas, conditions=()):
        self._maybe_fail(collection)
        return await super().increment(collection, doc_id, deltas, conditions)

    def transaction(self):
        return _FailingTransaction(self)


class _FailingTransaction:
    def __init__(self, outer):
        self.outer = outer
        self._inner = None

    async def __aenter__(self):
        self._inner = SqlDocumentStore.transaction(self.outer)
        tx = await self._inner.__aenter__()
        bound = FailingStore(self.outer._session_maker, self.outer.fail_collection, self.outer.fail_after)
        bound._session = tx._session
        return bound

    async def __aexit__(self, *exc_info):
        return await self._inner.__aexit__(*exc_info)


@pytest.fixture
def failing_store(session_maker):
    """Factory for a store whose writes to one collection fail"""
    def make(fail_collection, fail_after=0):
        return FailingStore(session_maker, fail_collection, fail_after)
    return make
