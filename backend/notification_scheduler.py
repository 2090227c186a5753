"""
Notification Scheduler - Background derivation of system notifications

This module handles:
1. Subscription scan: warning at 7 days left, critical at 3 days, error once expired
2. Low-stock scan: warning for every product at or below its threshold
3. Per-day de-duplication keyed on (tenant, message, calendar day)

Runs once at process start and then on a fixed interval using APScheduler.
Exactly one scheduler instance is expected system-wide; the unique
de-duplication key keeps a stray second instance from double-inserting.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select

from config import settings
from database import LedgerStore
from models import Tenant, Product, NotificationType
from repositories import insert_notification_once
import subscription_gate
from timezone_utils import utcnow

logger = logging.getLogger(__name__)

SUBSCRIPTION_WARNING_MESSAGE = "Your subscription expires in 7 days. Renew now to avoid interruption."
SUBSCRIPTION_CRITICAL_MESSAGE = "Urgent: your subscription expires in 3 days. Renew soon to keep selling."
SUBSCRIPTION_EXPIRED_MESSAGE = "Your subscription has expired. Checkout is locked until you renew."

SUBSCRIPTION_MESSAGES = {
    NotificationType.WARNING: SUBSCRIPTION_WARNING_MESSAGE,
    NotificationType.CRITICAL: SUBSCRIPTION_CRITICAL_MESSAGE,
    NotificationType.ERROR: SUBSCRIPTION_EXPIRED_MESSAGE,
}


def low_stock_message(product: Product) -> str:
    return (
        f"Low stock alert: {product.name} has {product.stock} left "
        f"(threshold {product.low_stock_threshold})."
    )


@dataclass
class ScanReport:
    """Outcome of one scheduler run"""
    tenants_scanned: int = 0
    products_scanned: int = 0
    inserted: int = 0
    duplicates: int = 0
    errors: int = 0


class NotificationScheduler:
    """Derives alert notifications from tenant and product state"""

    def __init__(
        self,
        store: LedgerStore,
        interval_minutes: Optional[int] = None,
        timezone_name: Optional[str] = None
    ):
        self.store = store
        self.interval_minutes = interval_minutes or settings.NOTIFICATION_INTERVAL_MINUTES
        self.timezone_name = timezone_name or settings.TIMEZONE
        self._scheduler = None

    async def run_once(self, now: Optional[datetime] = None) -> ScanReport:
        """Run both scans. Errors are isolated per scan and per tenant/product."""
        now = now or utcnow()
        report = ScanReport()

        logger.info("=" * 60)
        logger.info("🔍 Starting notification scan...")

        for scan in (self.scan_subscriptions, self.scan_low_stock):
            try:
                await scan(now, report)
            except Exception as e:
                report.errors += 1
                logger.error(f"❌ {scan.__name__} aborted: {str(e)}")

        logger.info(
            f"✅ Notification scan completed: {report.inserted} inserted, "
            f"{report.duplicates} already sent today, {report.errors} error(s)"
        )
        logger.info("=" * 60)
        return report

    async def scan_subscriptions(self, now: datetime, report: ScanReport):
        async with self.store.session() as db:
            result = await db.execute(select(Tenant).order_by(Tenant.id))
            tenants = result.scalars().all()

        for tenant in tenants:
            report.tenants_scanned += 1
            try:
                level = subscription_gate.expiry_alert_level(tenant, now)
                if level is None:
                    continue

                await self._record(report, tenant.id, SUBSCRIPTION_MESSAGES[level], level, now)
            except Exception as e:
                report.errors += 1
                logger.error(f"❌ Subscription scan failed for tenant {tenant.id}: {str(e)}")

    async def scan_low_stock(self, now: datetime, report: ScanReport):
        async with self.store.session() as db:
            result = await db.execute(
                select(Product)
                .where(Product.stock <= Product.low_stock_threshold)
                .order_by(Product.tenant_id, Product.id)
            )
            products = result.scalars().all()

        for product in products:
            report.products_scanned += 1
            try:
                await self._record(
                    report, product.tenant_id, low_stock_message(product), NotificationType.WARNING, now
                )
            except Exception as e:
                report.errors += 1
                logger.error(f"❌ Low-stock scan failed for product {product.id}: {str(e)}")

    async def _record(self, report: ScanReport, tenant_id: int, message: str, level: NotificationType, now: datetime):
        inserted = await insert_notification_once(
            self.store, tenant_id, message, level, now, self.timezone_name
        )
        if inserted:
            report.inserted += 1
            logger.info(f"🔔 [{level.value}] tenant {tenant_id}: {message}")
        else:
            report.duplicates += 1

    async def _scheduled_run(self):
        try:
            await self.run_once()
        except Exception as e:
            logger.error(f"❌ Fatal error in notification scan: {str(e)}", exc_info=True)

    # ============================================================================
    # Scheduler Setup (APScheduler)
    # ============================================================================

    def start(self):
        """
        Start the APScheduler background scheduler.
        The first run fires immediately, then every interval.
        """
        from apscheduler.schedulers.asyncio import AsyncIOScheduler
        from apscheduler.triggers.interval import IntervalTrigger

        scheduler = AsyncIOScheduler()
        scheduler.add_job(
            self._scheduled_run,
            IntervalTrigger(minutes=self.interval_minutes),
            id="notification_scan",
            name="Subscription and Low-Stock Notification Scan",
            next_run_time=datetime.now(),
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.info(f"📅 Notification scheduler started - scans every {self.interval_minutes} minute(s)")
        return scheduler

    def shutdown(self):
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("Notification scheduler stopped")


# ============================================================================
# Manual Testing / CLI Execution
# ============================================================================

async def run_scan_now():
    """
    Run one scan against the configured database.
    Run with: python notification_scheduler.py
    """
    from database import init_db

    store = LedgerStore()
    try:
        await init_db(store)
        await NotificationScheduler(store).run_once()
    finally:
        await store.dispose()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(run_scan_now())
