"""
Test Configuration — Fixtures for async DB, test client, and a small network.

Each test gets its own in-memory SQLite database so code under test can
commit and roll back exactly as it does in production.
"""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from api.deps import get_db
from api.main import app
from db.session import Base

TEST_DATABASE_URL = "sqlite+aiosqlite://"


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
    session_factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(test_db):
    """Create an async test client with dependency overrides."""

    async def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def read_stock(test_db):
    """Read a quantity straight from the database (bypasses stale ORM state)."""
    from db.models import InventoryRecord

    async def _read(warehouse_id, product_id) -> int | None:
        return await test_db.scalar(
            select(InventoryRecord.quantity).where(
                InventoryRecord.warehouse_id == warehouse_id,
                InventoryRecord.product_id == product_id,
            )
        )

    return _read


@pytest.fixture
async def seeded_db(test_db):
    """
    Two warehouses and one product:
      Alpha Depot (North): 10 packs, below min_stock 100
      Beta Depot (South): 500 packs, well above 2 × min_stock
    plus a dealer in the South tied to Beta Depot.
    """
    from db.models import Dealer, InventoryRecord, Product, Warehouse

    product = Product(
        sku="PF-INT-001",
        name="Arctic White Emulsion",
        category="Interior",
        pack_size_litres=10,
        unit_price=450.0,
        min_stock=100,
    )
    alpha = Warehouse(name="Alpha Depot", region="North", capacity=10000)
    beta = Warehouse(name="Beta Depot", region="South", capacity=10000)
    test_db.add_all([product, alpha, beta])
    await test_db.flush()

    dealer = Dealer(name="Reddy Paint Mart", region="South", warehouse_id=beta.warehouse_id)
    test_db.add(dealer)
    test_db.add_all(
        [
            InventoryRecord(warehouse_id=alpha.warehouse_id, product_id=product.product_id, quantity=10),
            InventoryRecord(warehouse_id=beta.warehouse_id, product_id=product.product_id, quantity=500),
        ]
    )
    await test_db.commit()

    # Plain ids stay usable after the code under test rolls back the session.
    return {
        "product": product,
        "alpha": alpha,
        "beta": beta,
        "dealer": dealer,
        "product_id": product.product_id,
        "alpha_id": alpha.warehouse_id,
        "beta_id": beta.warehouse_id,
        "dealer_id": dealer.dealer_id,
    }
