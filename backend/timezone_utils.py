"""
Timezone utilities for server-local calendar handling.

Timestamps are stored as naive UTC. "Today" (daily stats, notification
de-duplication) is the calendar day in the configured server timezone, so a
sale at 1 AM local time is not counted against the previous UTC day.
"""
from datetime import datetime, date, timedelta
import pytz


def utcnow() -> datetime:
    """Current instant as a naive UTC datetime (the storage convention)."""
    return datetime.now(pytz.UTC).replace(tzinfo=None)


def get_timezone(timezone_name: str = "UTC"):
    """
    Get pytz timezone object.

    Args:
        timezone_name: Timezone string (e.g., "Africa/Nairobi")

    Returns:
        pytz timezone object
    """
    try:
        return pytz.timezone(timezone_name)
    except pytz.exceptions.UnknownTimeZoneError:
        # Fallback to UTC if invalid timezone
        return pytz.UTC


def local_date(utc_datetime: datetime, timezone_name: str = "UTC") -> date:
    """
    Convert UTC datetime to the calendar date in the given timezone.

    Args:
        utc_datetime: UTC datetime (naive or aware)
        timezone_name: Timezone string

    Returns:
        Date in the given timezone
    """
    tz = get_timezone(timezone_name)

    # Ensure datetime is timezone-aware
    if utc_datetime.tzinfo is None:
        utc_datetime = utc_datetime.replace(tzinfo=pytz.UTC)

    return utc_datetime.astimezone(tz).date()


def local_day_bounds(day: date, timezone_name: str = "UTC") -> tuple[datetime, datetime]:
    """
    Get the UTC range covering one local calendar day.

    Example:
        For Kenya (UTC+3), 2026-01-26 maps to
        2026-01-25 21:00 UTC (inclusive) .. 2026-01-26 21:00 UTC (exclusive)

    Returns:
        Tuple of naive UTC (start_inclusive, end_exclusive) for database queries
    """
    tz = get_timezone(timezone_name)
    local_start = tz.localize(datetime.combine(day, datetime.min.time()))
    local_end = tz.localize(datetime.combine(day + timedelta(days=1), datetime.min.time()))

    start_utc = local_start.astimezone(pytz.UTC).replace(tzinfo=None)
    end_utc = local_end.astimezone(pytz.UTC).replace(tzinfo=None)
    return start_utc, end_utc
