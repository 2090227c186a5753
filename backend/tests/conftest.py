"""
Pytest fixtures for the POS backend tests.

Each test gets its own SQLite Ledger Store in a temporary directory, an app
built around it (scheduler and demo seeding off) and an httpx client talking
to the app in-process.
"""

from datetime import datetime, timedelta

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import select

from database import LedgerStore
from main import create_app
from models import Tenant, Product, Transaction, Notification
from timezone_utils import utcnow


@pytest_asyncio.fixture
async def store(tmp_path):
    store = LedgerStore(f"sqlite+aiosqlite:///{tmp_path / 'ledger.sqlite'}")
    await store.create_all()
    yield store
    await store.dispose()


@pytest.fixture
def app(store):
    return create_app(store=store, start_scheduler=False, seed_demo=False)


@pytest_asyncio.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver/api") as client:
        yield client


@pytest.fixture
def make_tenant(store):
    async def _make(name="Corner Cafe", expires_in=timedelta(days=30), plan="monthly", expiry_date=None):
        async with store.session() as db:
            tenant = Tenant(
                name=name,
                email="owner@example.com",
                plan=plan,
                expiry_date=expiry_date or (utcnow() + expires_in),
                status="active"
            )
            db.add(tenant)
            await db.commit()
            await db.refresh(tenant)
            return tenant
    return _make


@pytest.fixture
def make_product(store):
    async def _make(tenant_id, name="Coffee Latte", price=4.50, stock=50, low_stock_threshold=5):
        async with store.session() as db:
            product = Product(
                tenant_id=tenant_id,
                name=name,
                price=price,
                category="Beverages",
                stock=stock,
                low_stock_threshold=low_stock_threshold
            )
            db.add(product)
            await db.commit()
            await db.refresh(product)
            return product
    return _make


@pytest.fixture
def fetch(store):
    """Small read helpers against the store"""
    class Fetch:
        async def stock(self, product_id):
            async with store.session() as db:
                result = await db.execute(select(Product.stock).where(Product.id == product_id))
                return result.scalar_one()

        async def transactions(self, tenant_id):
            async with store.session() as db:
                result = await db.execute(select(Transaction).where(Transaction.tenant_id == tenant_id))
                return list(result.scalars().all())

        async def notifications(self, tenant_id=None):
            async with store.session() as db:
                query = select(Notification).order_by(Notification.id)
                if tenant_id is None:
                    query = query.where(Notification.tenant_id.is_(None))
                else:
                    query = query.where(Notification.tenant_id == tenant_id)
                result = await db.execute(query)
                return list(result.scalars().all())

        async def tenant(self, tenant_id):
            async with store.session() as db:
                result = await db.execute(select(Tenant).where(Tenant.id == tenant_id))
                return result.scalar_one_or_none()

    return Fetch()


@pytest.fixture
def noon():
    """A fixed instant well clear of any day boundary"""
    return datetime(2026, 3, 10, 12, 0, 0)
