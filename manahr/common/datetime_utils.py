"""Timezone helpers — UTC storage, organization-local calendar days."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from manahr.config import settings


def utcnow() -> datetime:
    """Current UTC time.

    Wrapped so tests can patch it.
    """
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Return *value* as an aware UTC datetime.

    Naive values are assumed to already be UTC (SQLite drops tzinfo on read).
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def get_zone(tz_name: Optional[str]) -> ZoneInfo:
    try:
        return ZoneInfo(tz_name or settings.DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo(settings.DEFAULT_TIMEZONE)


def to_local(value: datetime, tz_name: Optional[str]) -> datetime:
    return ensure_utc(value).astimezone(get_zone(tz_name))


def local_date(value: datetime, tz_name: Optional[str]) -> date:
    """Calendar day of *value* in the organization's timezone."""
    return to_local(value, tz_name).date()


def hours_between(start: datetime, end: datetime) -> float:
    """Elapsed hours from *start* to *end*, rounded to 2 decimals."""
    seconds = (ensure_utc(end) - ensure_utc(start)).total_seconds()
    return round(seconds / 3600, 2)
