"""
Shared data-access helpers for the Ledger Store.

Tenant lookups, the notification de-duplication key and the notification
read/write queries used by the API, the scheduler and the subscription flows.
"""

import hashlib
import logging
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import LedgerStore
from exceptions import NotFound, ValidationError
from models import Tenant, Notification, NotificationType
from timezone_utils import local_date

logger = logging.getLogger(__name__)

NOTIFICATION_PAGE_SIZE = 20


def require_tenant_id(tenant_id: Optional[int]) -> int:
    if tenant_id is None:
        raise ValidationError("tenantId is required")
    return tenant_id


async def get_tenant(db: AsyncSession, tenant_id: int) -> Tenant:
    """Load a tenant or raise NotFound"""
    result = await db.execute(select(Tenant).where(Tenant.id == tenant_id))
    tenant = result.scalar_one_or_none()
    if not tenant:
        raise NotFound(f"Tenant {tenant_id} not found")
    return tenant


# ==================== NOTIFICATIONS ====================

def notification_dedup_key(tenant_id: Optional[int], message: str, day: date) -> str:
    """Hash of (tenant, calendar day, exact message). NULL tenant = broadcast."""
    owner = "broadcast" if tenant_id is None else str(tenant_id)
    raw = f"{owner}|{day.isoformat()}|{message}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


async def notification_exists(db: AsyncSession, dedup_key: str) -> bool:
    result = await db.execute(
        select(Notification.id).where(Notification.dedup_key == dedup_key)
    )
    return result.scalar_one_or_none() is not None


async def add_notification_once(
    db: AsyncSession,
    tenant_id: Optional[int],
    message: str,
    notification_type: NotificationType,
    now: datetime,
    timezone_name: Optional[str] = None
) -> bool:
    """
    Stage a notification inside the caller's transaction unless today's copy exists.
    The caller commits. Returns True if a row was added.
    """
    day = local_date(now, timezone_name or settings.TIMEZONE)
    key = notification_dedup_key(tenant_id, message, day)

    if await notification_exists(db, key):
        return False

    db.add(Notification(
        tenant_id=tenant_id,
        message=message,
        type=NotificationType(notification_type).value,
        is_read=False,
        created_at=now,
        dedup_key=key
    ))
    return True


async def insert_notification_once(
    store: LedgerStore,
    tenant_id: Optional[int],
    message: str,
    notification_type: NotificationType,
    now: datetime,
    timezone_name: Optional[str] = None
) -> bool:
    """
    Insert a notification in its own transaction unless today's copy exists.

    The existence check avoids needless writes; the unique constraint on
    dedup_key settles races between concurrent writers.
    """
    try:
        async with store.session() as db:
            async with db.begin():
                return await add_notification_once(
                    db, tenant_id, message, notification_type, now, timezone_name
                )
    except IntegrityError:
        logger.debug(f"Notification already recorded today for tenant {tenant_id}: {message}")
        return False


async def list_notifications(db: AsyncSession, tenant_id: int, limit: int = NOTIFICATION_PAGE_SIZE) -> List[Notification]:
    """Latest notifications for a tenant, newest first"""
    result = await db.execute(
        select(Notification)
        .where(Notification.tenant_id == tenant_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def list_broadcast_notifications(db: AsyncSession, limit: int = NOTIFICATION_PAGE_SIZE) -> List[Notification]:
    """Latest super-admin notifications (tenant_id IS NULL), newest first"""
    result = await db.execute(
        select(Notification)
        .where(Notification.tenant_id.is_(None))
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def mark_all_read(db: AsyncSession, tenant_id: int) -> int:
    result = await db.execute(
        update(Notification)
        .where(Notification.tenant_id == tenant_id, Notification.is_read == False)
        .values(is_read=True)
    )
    await db.commit()
    return result.rowcount or 0


async def count_unread(db: AsyncSession, tenant_id: int) -> int:
    result = await db.execute(
        select(func.count(Notification.id)).where(
            Notification.tenant_id == tenant_id,
            Notification.is_read == False
        )
    )
    return result.scalar() or 0
