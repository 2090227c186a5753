"""
Notification API Endpoints
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from database import get_db
from repositories import (
    require_tenant_id, list_notifications, list_broadcast_notifications,
    mark_all_read, count_unread
)
from schemas import NotificationResponse, MarkReadRequest, MarkReadResponse, UnreadCountResponse

router = APIRouter(prefix="/api", tags=["notifications"])


@router.get("/notifications", response_model=List[NotificationResponse])
async def get_notifications(
    tenant_id: Optional[int] = Query(None, alias="tenantId"),
    db: AsyncSession = Depends(get_db)
):
    """Latest 20 notifications for the tenant, newest first"""
    return await list_notifications(db, require_tenant_id(tenant_id))


@router.get("/notifications/unread-count", response_model=UnreadCountResponse)
async def get_unread_count(
    tenant_id: Optional[int] = Query(None, alias="tenantId"),
    db: AsyncSession = Depends(get_db)
):
    return UnreadCountResponse(unread=await count_unread(db, require_tenant_id(tenant_id)))


@router.post("/notifications/read", response_model=MarkReadResponse)
async def mark_notifications_read(
    body: MarkReadRequest,
    db: AsyncSession = Depends(get_db)
):
    """Mark every notification of the tenant as read"""
    updated = await mark_all_read(db, require_tenant_id(body.tenant_id))
    return MarkReadResponse(updated=updated)


@router.get("/admin/notifications", response_model=List[NotificationResponse])
async def get_admin_notifications(db: AsyncSession = Depends(get_db)):
    """Broadcast notifications addressed to the super-admin"""
    return await list_broadcast_notifications(db)
