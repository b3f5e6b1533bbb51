"""
Date and datetime utilities for lifecycle arithmetic
"""
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

from dateutil.relativedelta import relativedelta


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_day(value: Union[date, datetime, str, None]) -> Optional[date]:
    """Truncate to day granularity, ignoring time-of-day"""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def add_months(day: date, months: int) -> date:
    """Calendar month arithmetic; the day is clamped to the target month's length"""
    return day + relativedelta(months=months)


def add_days(day: date, days: int) -> date:
    return day + timedelta(days=days)


def apply_uplift(value: Union[Decimal, float, int, None], uplift_percent: Union[Decimal, float, int, None]) -> Decimal:
    """value x (1 + uplift/100), rounded to cents"""
    base = Decimal(str(value or 0))
    uplift = Decimal(str(uplift_percent or 0))
    result = base * (Decimal(100) + uplift) / Decimal(100)
    return result.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def format_datetime_to_iso(dt: Optional[datetime]) -> Optional[str]:
    """
    Convert datetime to ISO format with UTC timezone indicator

    Args:
        dt: datetime object or None

    Returns:
        ISO string with 'Z' suffix (e.g., "2025-01-09T10:30:00Z") or None
    """
    if dt is None:
        return None

    # Format as ISO with 'Z' to indicate UTC
    return dt.strftime('%Y-%m-%dT%H:%M:%SZ')
