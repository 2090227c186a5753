"""
Subscription lifecycle: renewals, renewal payments and onboarding payments.

These are the only writers of Tenant.expiry_date, the field the Subscription
Gate reads. Payments move from pending to a terminal state exactly once; the
transition is a conditional UPDATE so two concurrent approvals cannot both win.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from exceptions import AlreadyProcessed, NotFound, ValidationError
from models import (
    Tenant, SubscriptionPlan, SubscriptionPayment, PendingPayment,
    PaymentStatus, NotificationType
)
from repositories import get_tenant, require_tenant_id, add_notification_once
from schemas import SubscriptionStatusResponse, RegistrationRequest
import subscription_gate
from timezone_utils import utcnow

logger = logging.getLogger(__name__)


def _renewed_message(tenant: Tenant) -> str:
    return f"Subscription renewed on the {tenant.plan} plan. Active until {tenant.expiry_date:%B %d, %Y}."


async def get_status(db: AsyncSession, tenant_id: Optional[int], now: Optional[datetime] = None) -> SubscriptionStatusResponse:
    tenant_id = require_tenant_id(tenant_id)
    now = now or utcnow()
    tenant = await get_tenant(db, tenant_id)
    return SubscriptionStatusResponse(
        tenant_id=tenant.id,
        plan=tenant.plan,
        expiry_date=tenant.expiry_date,
        is_active=subscription_gate.is_active(tenant, now),
        days_remaining=subscription_gate.days_remaining(tenant, now)
    )


async def _apply_renewal(db: AsyncSession, tenant: Tenant, plan: SubscriptionPlan, now: datetime):
    tenant.expiry_date = subscription_gate.renewed_expiry(tenant, plan, now)
    tenant.plan = SubscriptionPlan(plan).value
    tenant.status = "active"
    tenant.updated_at = now
    await add_notification_once(db, tenant.id, _renewed_message(tenant), NotificationType.SUCCESS, now)


async def renew(db: AsyncSession, tenant_id: Optional[int], plan: SubscriptionPlan, now: Optional[datetime] = None) -> Tenant:
    """Immediately extend a tenant's subscription by the plan increment"""
    tenant_id = require_tenant_id(tenant_id)
    now = now or utcnow()
    tenant = await get_tenant(db, tenant_id)

    await _apply_renewal(db, tenant, plan, now)
    await db.commit()
    await db.refresh(tenant)

    logger.info(f"✅ Tenant {tenant.id} renewed on {tenant.plan} plan until {tenant.expiry_date}")
    return tenant


# ==================== RENEWAL PAYMENTS ====================

async def submit_subscription_payment(
    db: AsyncSession,
    tenant_id: Optional[int],
    plan: SubscriptionPlan,
    amount: float,
    now: Optional[datetime] = None
) -> SubscriptionPayment:
    """Record a renewal payment for super-admin review"""
    tenant_id = require_tenant_id(tenant_id)
    now = now or utcnow()
    tenant = await get_tenant(db, tenant_id)

    payment = SubscriptionPayment(
        tenant_id=tenant.id,
        plan=SubscriptionPlan(plan).value,
        amount=amount,
        status=PaymentStatus.PENDING.value,
        created_at=now
    )
    db.add(payment)
    await db.flush()

    await add_notification_once(
        db, None,
        f"Subscription payment #{payment.id} from {tenant.name}: {amount:.2f} for the {payment.plan} plan awaits approval.",
        NotificationType.INFO, now
    )
    await db.commit()
    await db.refresh(payment)

    logger.info(f"Subscription payment #{payment.id} submitted by tenant {tenant.id}")
    return payment


async def _claim(db: AsyncSession, model, payment_id: Optional[int], terminal: PaymentStatus, now: datetime):
    """Move a payment out of pending, or raise NotFound / AlreadyProcessed"""
    if payment_id is None:
        raise ValidationError("paymentId is required")

    result = await db.execute(select(model).where(model.id == payment_id))
    payment = result.scalar_one_or_none()
    if not payment:
        raise NotFound("Payment not found")
    if payment.status != PaymentStatus.PENDING.value:
        raise AlreadyProcessed()

    claimed = await db.execute(
        update(model)
        .where(model.id == payment_id, model.status == PaymentStatus.PENDING.value)
        .values(status=terminal.value, processed_at=now)
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount != 1:
        raise AlreadyProcessed()

    await db.refresh(payment)
    return payment


async def approve_subscription_payment(db: AsyncSession, payment_id: Optional[int], now: Optional[datetime] = None) -> SubscriptionPayment:
    now = now or utcnow()
    payment = await _claim(db, SubscriptionPayment, payment_id, PaymentStatus.COMPLETED, now)

    tenant = await get_tenant(db, payment.tenant_id)
    await _apply_renewal(db, tenant, payment.plan, now)
    await db.commit()

    logger.info(f"✅ Subscription payment #{payment.id} approved; tenant {tenant.id} active until {tenant.expiry_date}")
    return payment


async def reject_subscription_payment(db: AsyncSession, payment_id: Optional[int], now: Optional[datetime] = None) -> SubscriptionPayment:
    now = now or utcnow()
    payment = await _claim(db, SubscriptionPayment, payment_id, PaymentStatus.REJECTED, now)

    await add_notification_once(
        db, payment.tenant_id,
        f"Subscription payment #{payment.id} was rejected. Please contact support.",
        NotificationType.ERROR, now
    )
    await db.commit()

    logger.info(f"Subscription payment #{payment.id} rejected")
    return payment


async def list_subscription_payments(db: AsyncSession, status: Optional[PaymentStatus] = None) -> List[SubscriptionPayment]:
    query = select(SubscriptionPayment).order_by(SubscriptionPayment.created_at.desc(), SubscriptionPayment.id.desc())
    if status:
        query = query.where(SubscriptionPayment.status == PaymentStatus(status).value)
    result = await db.execute(query)
    return list(result.scalars().all())


# ==================== ONBOARDING ====================

async def register_tenant(db: AsyncSession, request: RegistrationRequest, now: Optional[datetime] = None) -> PendingPayment:
    """Record an onboarding payment; the tenant is created only on approval"""
    now = now or utcnow()
    pending = PendingPayment(
        business_name=request.name,
        email=request.email,
        plan=SubscriptionPlan(request.plan).value,
        amount=request.amount,
        status=PaymentStatus.PENDING.value,
        created_at=now
    )
    db.add(pending)
    await db.flush()

    await add_notification_once(
        db, None,
        f"New store registration #{pending.id}: {pending.business_name} ({pending.email}) on the {pending.plan} plan.",
        NotificationType.INFO, now
    )
    await db.commit()
    await db.refresh(pending)

    logger.info(f"Registration #{pending.id} submitted for '{pending.business_name}'")
    return pending


async def approve_registration(db: AsyncSession, payment_id: Optional[int], now: Optional[datetime] = None) -> PendingPayment:
    now = now or utcnow()
    pending = await _claim(db, PendingPayment, payment_id, PaymentStatus.APPROVED, now)

    tenant = Tenant(
        name=pending.business_name,
        email=pending.email,
        plan=pending.plan,
        expiry_date=now + subscription_gate.plan_duration(pending.plan),
        status="active",
        created_at=now
    )
    db.add(tenant)
    await db.flush()

    pending.tenant_id = tenant.id
    await add_notification_once(
        db, tenant.id,
        f"Welcome to Lucid Hub POS, {tenant.name}! Your {tenant.plan} plan is active until {tenant.expiry_date:%B %d, %Y}.",
        NotificationType.SUCCESS, now
    )
    await db.commit()
    await db.refresh(pending)

    logger.info(f"✅ Registration #{pending.id} approved; created tenant {tenant.id} '{tenant.name}'")
    return pending


async def reject_registration(db: AsyncSession, payment_id: Optional[int], now: Optional[datetime] = None) -> PendingPayment:
    now = now or utcnow()
    pending = await _claim(db, PendingPayment, payment_id, PaymentStatus.REJECTED, now)
    await db.commit()

    logger.info(f"Registration #{pending.id} rejected")
    return pending


async def list_registrations(db: AsyncSession, status: Optional[PaymentStatus] = None) -> List[PendingPayment]:
    query = select(PendingPayment).order_by(PendingPayment.created_at.desc(), PendingPayment.id.desc())
    if status:
        query = query.where(PendingPayment.status == PaymentStatus(status).value)
    result = await db.execute(query)
    return list(result.scalars().all())
