"""
Demo data seeding.

Creates one demo tenant with the starter cafe catalogue when the database has
no tenants. Called on startup when SEED_DEMO_DATA is set, or manually:

Usage:
    python seed_data.py
"""
import asyncio
import logging

from sqlalchemy import select, func

from database import LedgerStore, init_db
from models import Tenant, Product, SubscriptionPlan
import subscription_gate
from timezone_utils import utcnow

logger = logging.getLogger(__name__)

DEMO_PRODUCTS = [
    # name, price, category, stock, image
    ("Coffee Latte", 4.50, "Beverages", 50, "https://picsum.photos/seed/latte/200/200"),
    ("Cappuccino", 4.00, "Beverages", 40, "https://picsum.photos/seed/cappuccino/200/200"),
    ("Croissant", 3.25, "Bakery", 30, "https://picsum.photos/seed/croissant/200/200"),
    ("Blueberry Muffin", 2.75, "Bakery", 25, "https://picsum.photos/seed/muffin/200/200"),
    ("Avocado Toast", 8.50, "Food", 15, "https://picsum.photos/seed/toast/200/200"),
    ("Green Tea", 3.00, "Beverages", 60, "https://picsum.photos/seed/greentea/200/200"),
]


async def seed_demo_data(store: LedgerStore, low_stock_threshold: int = 5) -> bool:
    """Seed the demo tenant if the database is empty. Returns True if data was added."""
    async with store.session() as db:
        result = await db.execute(select(func.count(Tenant.id)))
        if (result.scalar() or 0) > 0:
            logger.info("ℹ️ Tenants already present - skipping demo seeding")
            return False

        now = utcnow()
        tenant = Tenant(
            name="Lucid Demo Cafe",
            email="demo@lucidhub.example",
            plan=SubscriptionPlan.MONTHLY.value,
            expiry_date=now + subscription_gate.plan_duration(SubscriptionPlan.MONTHLY),
            status="active",
            created_at=now
        )
        db.add(tenant)
        await db.flush()

        for name, price, category, stock, image in DEMO_PRODUCTS:
            db.add(Product(
                tenant_id=tenant.id,
                name=name,
                price=price,
                category=category,
                stock=stock,
                low_stock_threshold=low_stock_threshold,
                image=image
            ))

        await db.commit()
        logger.info(f"🌱 Seeded demo tenant {tenant.id} with {len(DEMO_PRODUCTS)} products (expires {tenant.expiry_date:%Y-%m-%d})")
        return True


async def main():
    store = LedgerStore()
    try:
        await init_db(store)
        await seed_demo_data(store)
    finally:
        await store.dispose()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
