"""
Subscription API Endpoints
Handles renewals, renewal payments, onboarding payments and their approval
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from database import get_db
from models import PaymentStatus
from schemas import (
    RenewRequest, SubscriptionPayRequest, PaymentDecisionRequest, RegistrationRequest,
    SubscriptionStatusResponse, SubscriptionPaymentResponse, PendingPaymentResponse
)
import subscriptions

router = APIRouter(prefix="/api", tags=["subscription"])


@router.get("/subscription/status", response_model=SubscriptionStatusResponse)
async def get_subscription_status(
    tenant_id: Optional[int] = Query(None, alias="tenantId"),
    db: AsyncSession = Depends(get_db)
):
    return await subscriptions.get_status(db, tenant_id)


@router.post("/renew", response_model=SubscriptionStatusResponse)
async def renew_subscription(body: RenewRequest, db: AsyncSession = Depends(get_db)):
    """Extend the subscription by the plan's increment (30/90/365 days)"""
    tenant = await subscriptions.renew(db, body.tenant_id, body.plan)
    return await subscriptions.get_status(db, tenant.id)


@router.post("/subscription/pay", response_model=SubscriptionPaymentResponse, status_code=status.HTTP_201_CREATED)
async def pay_subscription(body: SubscriptionPayRequest, db: AsyncSession = Depends(get_db)):
    """Submit a renewal payment for super-admin approval"""
    return await subscriptions.submit_subscription_payment(db, body.tenant_id, body.plan, body.amount)


@router.get("/admin/subscriptions", response_model=List[SubscriptionPaymentResponse])
async def get_subscription_payments(
    payment_status: Optional[PaymentStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db)
):
    return await subscriptions.list_subscription_payments(db, payment_status)


@router.post("/admin/subscriptions/approve", response_model=SubscriptionPaymentResponse)
async def approve_subscription(body: PaymentDecisionRequest, db: AsyncSession = Depends(get_db)):
    """404 unknown payment; 400 already processed"""
    return await subscriptions.approve_subscription_payment(db, body.payment_id)


@router.post("/admin/subscriptions/reject", response_model=SubscriptionPaymentResponse)
async def reject_subscription(body: PaymentDecisionRequest, db: AsyncSession = Depends(get_db)):
    return await subscriptions.reject_subscription_payment(db, body.payment_id)


# ==================== ONBOARDING ====================

@router.post("/register", response_model=PendingPaymentResponse, status_code=status.HTTP_201_CREATED)
async def register(body: RegistrationRequest, db: AsyncSession = Depends(get_db)):
    return await subscriptions.register_tenant(db, body)


@router.get("/admin/registrations", response_model=List[PendingPaymentResponse])
async def get_registrations(
    payment_status: Optional[PaymentStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db)
):
    return await subscriptions.list_registrations(db, payment_status)


@router.post("/admin/registrations/approve", response_model=PendingPaymentResponse)
async def approve_registration(body: PaymentDecisionRequest, db: AsyncSession = Depends(get_db)):
    """Creates the tenant with expiry = now + plan duration"""
    return await subscriptions.approve_registration(db, body.payment_id)


@router.post("/admin/registrations/reject", response_model=PendingPaymentResponse)
async def reject_registration(body: PaymentDecisionRequest, db: AsyncSession = Depends(get_db)):
    return await subscriptions.reject_registration(db, body.payment_id)
