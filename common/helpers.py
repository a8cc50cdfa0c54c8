"""
CafePreorder - Shared Helpers
==============================
Pure utility functions with NO database or module dependencies.
"""

from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Tuple
from zoneinfo import ZoneInfo

CENT = Decimal("0.01")


def now_utc() -> datetime:
    """Returns current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC, convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_money(value) -> Decimal:
    """Quantize any numeric value to two decimal places."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal) -> int:
    """Rupees → paise (gateways take integer minor units)."""
    return int((to_money(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def day_bounds_utc(day: date, tz_name: str) -> Tuple[datetime, datetime]:
    """
    [day 00:00, day+1 00:00) in the given timezone, expressed in UTC.
    Both bounds come from the same zone so DST shifts can't open a gap.
    """
    tz = ZoneInfo(tz_name)
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def local_today(tz_name: str) -> date:
    return now_utc().astimezone(ZoneInfo(tz_name)).date()


def ceil_to_minutes(value: datetime, step: int) -> datetime:
    """Round a datetime up to the next multiple of `step` minutes."""
    value = value.replace(second=0, microsecond=0) + (
        timedelta(minutes=1) if value.second or value.microsecond else timedelta()
    )
    remainder = value.minute % step
    if remainder:
        value += timedelta(minutes=step - remainder)
    return value
