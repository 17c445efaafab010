"""
Day Boundary Resolver

Maps one wall-clock instant plus a browser-style timezone offset onto the
user's local calendar day. Offsets follow JavaScript's getTimezoneOffset():
minutes *behind* UTC, so UTC-6 (CST) arrives as 360 and UTC+2 as -120.

Resolve once per request and pass the result around; re-sampling the clock
between the idempotency check and the write can straddle midnight.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

MAX_TZ_OFFSET_MINUTES = 14 * 60


@dataclass(frozen=True)
class DayBoundary:
    today: str
    yesterday: str
    tz_offset_minutes: int


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def local_date(instant: datetime, tz_offset_minutes: Optional[int] = None):
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    offset = tz_offset_minutes or 0
    return (instant.astimezone(timezone.utc) - timedelta(minutes=offset)).date()


def resolve_day_boundary(
    tz_offset_minutes: Optional[int] = None,
    now: Optional[datetime] = None,
) -> DayBoundary:
    """
    Canonical YYYY-MM-DD strings for "today" and "yesterday" in local time.

    Args:
        tz_offset_minutes: browser offset (positive = behind UTC); None means UTC
        now: the instant to resolve; defaults to the current UTC time.
             Naive datetimes are taken as UTC.
    """
    instant = now if now is not None else utc_now()
    today = local_date(instant, tz_offset_minutes)
    return DayBoundary(
        today=today.isoformat(),
        yesterday=(today - timedelta(days=1)).isoformat(),
        tz_offset_minutes=tz_offset_minutes or 0,
    )
