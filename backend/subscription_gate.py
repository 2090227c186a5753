"""
Subscription Gate

Pure functions of tenant state and the current instant. The gate only reports
state; notification insertion lives in the Notification Scheduler and the
"locked" account presentation lives in the client.
"""

import math
from datetime import datetime, timedelta
from typing import Optional

from models import Tenant, SubscriptionPlan, PLAN_DURATION_DAYS, NotificationType

SECONDS_PER_DAY = 86400

WARNING_DAYS = 7
CRITICAL_DAYS = 3


def is_active(tenant: Tenant, now: datetime) -> bool:
    """A tenant may check out iff its expiry date lies strictly in the future"""
    return tenant.expiry_date > now


def days_remaining(tenant: Tenant, now: datetime) -> int:
    """Whole days left, rounded up: 0.2 days -> 1, exactly 0 -> 0, -0.5 -> 0, -1.5 -> -1"""
    seconds = (tenant.expiry_date - now).total_seconds()
    return math.ceil(seconds / SECONDS_PER_DAY)


def expiry_alert_level(tenant: Tenant, now: datetime) -> Optional[NotificationType]:
    """
    Severity the scheduler should raise for this tenant today, if any.

    Returns:
        WARNING at exactly 7 days, CRITICAL at exactly 3 days,
        ERROR once expired (<= 0 days), otherwise None.
    """
    remaining = days_remaining(tenant, now)
    if remaining <= 0:
        return NotificationType.ERROR
    if remaining == CRITICAL_DAYS:
        return NotificationType.CRITICAL
    if remaining == WARNING_DAYS:
        return NotificationType.WARNING
    return None


def plan_duration(plan) -> timedelta:
    return timedelta(days=PLAN_DURATION_DAYS[SubscriptionPlan(plan)])


def renewed_expiry(tenant: Tenant, plan, now: datetime) -> datetime:
    """
    Expiry date after renewing on ``plan``.

    Unused time is kept: an active tenant extends from its current expiry,
    an expired one from now.
    """
    base = tenant.expiry_date if tenant.expiry_date > now else now
    return base + plan_duration(plan)
