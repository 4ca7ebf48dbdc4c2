"""Calendar-day bucketing.

Every day boundary in the engine comes from here and uses one timezone,
``Settings.day_timezone``. Naive timestamps are read as wall-clock time in
that zone; everything returned is timezone-aware UTC.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from productivity_accounting.config import get_settings


def _zone(tz: Optional[ZoneInfo]) -> ZoneInfo:
    return tz if tz is not None else get_settings().tz


def as_utc(ts: datetime, tz: Optional[ZoneInfo] = None) -> datetime:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=_zone(tz))
    return ts.astimezone(timezone.utc)


def parse_timestamp(value: str | datetime, tz: Optional[ZoneInfo] = None) -> datetime:
    """Parse an ISO-8601 timestamp (``Z`` suffix accepted) into aware UTC."""

    if isinstance(value, datetime):
        return as_utc(value, tz)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return as_utc(datetime.fromisoformat(text), tz)


def day_of(ts: datetime, tz: Optional[ZoneInfo] = None) -> date:
    """Calendar day a timestamp falls on in the bucketing timezone."""

    zone = _zone(tz)
    if ts.tzinfo is None:
        return ts.date()
    return ts.astimezone(zone).date()


def parse_day(value: str | date | datetime, tz: Optional[ZoneInfo] = None) -> date:
    """Accept ``YYYY-MM-DD`` or a full timestamp and truncate it to its day."""

    if isinstance(value, datetime):
        return day_of(value, tz)
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if len(text) == 10:
        return date.fromisoformat(text)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return day_of(datetime.fromisoformat(text), tz)


def day_bounds(day: date, tz: Optional[ZoneInfo] = None) -> tuple[datetime, datetime]:
    """Half-open ``[start, next day start)`` of ``day`` as aware UTC timestamps."""

    zone = _zone(tz)
    start = datetime.combine(day, time.min, tzinfo=zone)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=zone)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def week_window(day: date) -> tuple[date, date]:
    """Sunday through Saturday week containing ``day``."""

    start = day - timedelta(days=(day.weekday() + 1) % 7)
    return start, start + timedelta(days=6)


def month_window(day: date) -> tuple[date, date]:
    start = day.replace(day=1)
    next_month = (start + timedelta(days=32)).replace(day=1)
    return start, next_month - timedelta(days=1)


def iter_days(start: date, end: date):
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)
