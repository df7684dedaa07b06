"""
Test Configuration — Fixtures for async DB, test client, and seed data.

Each test gets its own in-memory SQLite database. StaticPool keeps a single
connection so the schema survives across sessions, and the services under
test commit and roll back for real.
"""

from datetime import datetime, timedelta

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from api.deps import get_current_user, get_db
from api.main import app
from db.session import Base

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
async def test_engine():
    """Fresh in-memory database with all tables."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def test_db(test_engine):
    session = AsyncSession(test_engine, expire_on_commit=False)
    yield session
    await session.close()


@pytest.fixture
def mock_user():
    """Mock authenticated user holding every role."""
    return {
        "sub": "auth|test-user-id",
        "email": "test@shelfsense.local",
        "roles": ["manager", "staff", "warehouse"],
    }


@pytest.fixture
async def client(test_db, mock_user):
    """Create an async test client with dependency overrides."""

    async def override_get_db():
        yield test_db

    def override_get_current_user():
        return mock_user

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
async def seeded_db(test_db):
    """Two stores, dairy and bakery shelves, two products, staff. No stock yet."""
    from db.models import Product, Shelf, Staff, Store

    store = Store(name="Downtown Store", city="Minneapolis", state="MN", postal_code="55401")
    other_store = Store(name="Uptown Store", city="Minneapolis", state="MN", postal_code="55408")
    test_db.add_all([store, other_store])
    await test_db.flush()

    dairy_shelf = Shelf(shelf_code="D-01", store_id=store.store_id, category="Dairy", capacity=100)
    dairy_shelf_2 = Shelf(shelf_code="D-02", store_id=store.store_id, category="Dairy", capacity=50)
    bakery_shelf = Shelf(shelf_code="B-01", store_id=store.store_id, category="Bakery", capacity=10)
    other_dairy_shelf = Shelf(shelf_code="D-01", store_id=other_store.store_id, category="Dairy", capacity=40)
    test_db.add_all([dairy_shelf, dairy_shelf_2, bakery_shelf, other_dairy_shelf])

    milk = Product(sku="SKU-MILK", name="Whole Milk 1L", category="Dairy", unit="each")
    bread = Product(sku="SKU-BREAD", name="Sourdough Loaf", category="Bakery", unit="each")
    test_db.add_all([milk, bread])
    await test_db.flush()

    clerk = Staff(store_id=store.store_id, name="Alice Clerk", role="staff", email="alice@shelfsense.local")
    test_db.add(clerk)
    await test_db.flush()
    manager = Staff(store_id=store.store_id, name="Bob Manager", role="manager", email="bob@shelfsense.local")
    test_db.add(manager)
    await test_db.commit()

    return {
        "store": store,
        "other_store": other_store,
        "dairy_shelf": dairy_shelf,
        "dairy_shelf_2": dairy_shelf_2,
        "bakery_shelf": bakery_shelf,
        "other_dairy_shelf": other_dairy_shelf,
        "milk": milk,
        "bread": bread,
        "clerk": clerk,
        "manager": manager,
    }


@pytest.fixture
def stock_shelf(test_db):
    """Place a product on a shelf with a given quantity."""
    from db.models import ShelfStock

    async def _stock(product, shelf, quantity):
        stock = ShelfStock(product_id=product.product_id, shelf_id=shelf.shelf_id, quantity=quantity)
        test_db.add(stock)
        await test_db.commit()
        return stock

    return _stock


@pytest.fixture
def record_sales(test_db):
    """One sale of `units` per day for the last `days` days (today included)."""
    from db.models import SalesEvent

    async def _record(product, store, units, days):
        now = datetime.utcnow()
        for offset in range(days):
            test_db.add(
                SalesEvent(
                    product_id=product.product_id,
                    store_id=store.store_id,
                    quantity=units,
                    sold_at=now - timedelta(days=offset),
                )
            )
        await test_db.commit()

    return _record
