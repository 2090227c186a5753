"""
Notification Scheduler tests: alert derivation, per-day de-duplication and
per-item error isolation, and the APScheduler lifecycle.
"""

import asyncio
from datetime import timedelta

import pytest

import notification_scheduler
from notification_scheduler import (
    NotificationScheduler, SUBSCRIPTION_WARNING_MESSAGE,
    SUBSCRIPTION_CRITICAL_MESSAGE, SUBSCRIPTION_EXPIRED_MESSAGE
)
from repositories import insert_notification_once, notification_dedup_key
import repositories


@pytest.fixture
def scheduler(store):
    return NotificationScheduler(store, interval_minutes=60, timezone_name="UTC")


class TestSubscriptionScan:

    @pytest.mark.parametrize("delta, message, severity", [
        (timedelta(days=7), SUBSCRIPTION_WARNING_MESSAGE, "warning"),
        (timedelta(days=3), SUBSCRIPTION_CRITICAL_MESSAGE, "critical"),
        (timedelta(0), SUBSCRIPTION_EXPIRED_MESSAGE, "error"),
        (timedelta(days=-10), SUBSCRIPTION_EXPIRED_MESSAGE, "error"),
    ])
    async def test_threshold_generates_notification(self, scheduler, make_tenant, fetch, noon, delta, message, severity):
        tenant = await make_tenant(expiry_date=noon + delta)

        await scheduler.run_once(now=noon)

        notes = await fetch.notifications(tenant.id)
        assert [(n.message, n.type) for n in notes] == [(message, severity)]

    @pytest.mark.parametrize("days", [1, 2, 4, 5, 6, 8, 30])
    async def test_no_notification_between_thresholds(self, scheduler, make_tenant, fetch, noon, days):
        tenant = await make_tenant(expiry_date=noon + timedelta(days=days))

        await scheduler.run_once(now=noon)

        assert await fetch.notifications(tenant.id) == []

    def test_threshold_messages_are_distinct(self):
        assert len({SUBSCRIPTION_WARNING_MESSAGE, SUBSCRIPTION_CRITICAL_MESSAGE, SUBSCRIPTION_EXPIRED_MESSAGE}) == 3

    async def test_expired_tenant_notified_once_per_day(self, scheduler, make_tenant, fetch, noon):
        tenant = await make_tenant(expiry_date=noon - timedelta(days=2))

        await scheduler.run_once(now=noon)
        await scheduler.run_once(now=noon + timedelta(hours=3))
        assert len(await fetch.notifications(tenant.id)) == 1

        await scheduler.run_once(now=noon + timedelta(days=1))
        assert len(await fetch.notifications(tenant.id)) == 2


class TestLowStockScan:

    async def test_low_stock_deduplicated_within_a_day(self, scheduler, make_tenant, make_product, fetch, noon):
        tenant = await make_tenant(expiry_date=noon + timedelta(days=30))
        await make_product(tenant.id, name="Avocado Toast", stock=4, low_stock_threshold=5)

        first = await scheduler.run_once(now=noon)
        second = await scheduler.run_once(now=noon + timedelta(minutes=60))

        notes = await fetch.notifications(tenant.id)
        assert len(notes) == 1
        assert notes[0].type == "warning"
        assert "Avocado Toast" in notes[0].message
        assert "4" in notes[0].message and "5" in notes[0].message
        assert (first.inserted, second.inserted, second.duplicates) == (1, 0, 1)

    async def test_stock_at_threshold_counts_as_low(self, scheduler, make_tenant, make_product, fetch, noon):
        tenant = await make_tenant(expiry_date=noon + timedelta(days=30))
        await make_product(tenant.id, stock=5, low_stock_threshold=5)
        await make_product(tenant.id, name="Plenty", stock=6, low_stock_threshold=5)

        await scheduler.run_once(now=noon)

        notes = await fetch.notifications(tenant.id)
        assert len(notes) == 1
        assert "Plenty" not in notes[0].message

    async def test_changed_stock_produces_new_message_same_day(self, scheduler, store, make_tenant, make_product, fetch, noon):
        tenant = await make_tenant(expiry_date=noon + timedelta(days=30))
        product = await make_product(tenant.id, stock=3)

        await scheduler.run_once(now=noon)
        async with store.session() as db:
            db_product = await db.get(type(product), product.id)
            db_product.stock = 1
            await db.commit()
        await scheduler.run_once(now=noon + timedelta(hours=1))

        assert len(await fetch.notifications(tenant.id)) == 2


class TestIsolation:

    async def test_failure_for_one_item_does_not_abort_scan(self, scheduler, make_tenant, make_product, fetch, noon, monkeypatch):
        broken = await make_tenant(name="Broken", expiry_date=noon - timedelta(days=1))
        healthy = await make_tenant(name="Healthy", expiry_date=noon - timedelta(days=1))
        await make_product(healthy.id, stock=0)

        real_insert = notification_scheduler.insert_notification_once

        async def flaky_insert(store, tenant_id, *args, **kwargs):
            if tenant_id == broken.id:
                raise RuntimeError("database hiccup")
            return await real_insert(store, tenant_id, *args, **kwargs)

        monkeypatch.setattr(notification_scheduler, "insert_notification_once", flaky_insert)

        report = await scheduler.run_once(now=noon)

        assert report.errors == 1
        assert report.inserted == 2
        assert await fetch.notifications(broken.id) == []
        assert len(await fetch.notifications(healthy.id)) == 2


class TestDeduplicationKey:

    def test_key_differs_by_tenant_day_and_message(self, noon):
        day = noon.date()
        base = notification_dedup_key(1, "Low stock", day)
        assert base == notification_dedup_key(1, "Low stock", day)
        assert base != notification_dedup_key(2, "Low stock", day)
        assert base != notification_dedup_key(None, "Low stock", day)
        assert base != notification_dedup_key(1, "Low stock", day + timedelta(days=1))
        assert base != notification_dedup_key(1, "Low stock!", day)

    async def test_unique_constraint_settles_a_lost_race(self, store, make_tenant, fetch, noon, monkeypatch):
        tenant = await make_tenant()
        assert await insert_notification_once(store, tenant.id, "Race", "warning", noon, "UTC")

        # A second writer that missed the existence check still cannot insert
        async def never_exists(db, key):
            return False

        monkeypatch.setattr(repositories, "notification_exists", never_exists)

        assert not await insert_notification_once(store, tenant.id, "Race", "warning", noon, "UTC")
        assert len(await fetch.notifications(tenant.id)) == 1

    async def test_broadcast_notifications_deduplicate(self, store, fetch, noon):
        assert await insert_notification_once(store, None, "Registration pending", "info", noon, "UTC")
        assert not await insert_notification_once(store, None, "Registration pending", "info", noon, "UTC")
        assert len(await fetch.notifications(None)) == 1


class TestScanIsolation:

    async def test_failed_subscription_query_still_runs_low_stock_scan(self, scheduler, make_tenant, make_product, fetch, noon, monkeypatch):
        tenant = await make_tenant(expiry_date=noon - timedelta(days=1))
        await make_product(tenant.id, name="Croissant", stock=2)

        async def unreachable_tenants(now, report):
            raise RuntimeError("tenants table locked")

        monkeypatch.setattr(scheduler, "scan_subscriptions", unreachable_tenants)

        report = await scheduler.run_once(now=noon)

        assert report.errors == 1
        assert report.inserted == 1
        notes = await fetch.notifications(tenant.id)
        assert len(notes) == 1
        assert "Croissant" in notes[0].message


class TestSchedulerLifecycle:

    async def test_start_runs_first_scan_immediately(self, scheduler, monkeypatch):
        ran = asyncio.Event()

        async def record_run():
            ran.set()

        monkeypatch.setattr(scheduler, "_scheduled_run", record_run)

        aps = scheduler.start()
        try:
            job = aps.get_job("notification_scan")
            assert job is not None
            assert job.next_run_time is not None
            assert job.max_instances == 1
            assert job.trigger.interval == timedelta(minutes=60)

            await asyncio.wait_for(ran.wait(), timeout=5)
        finally:
            scheduler.shutdown()

        assert not aps.running
        assert scheduler._scheduler is None

    def test_shutdown_without_start_is_a_noop(self, scheduler):
        scheduler.shutdown()
        assert scheduler._scheduler is None
