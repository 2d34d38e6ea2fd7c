"""
Timezone utilities for the Study Room platform.

All instants are stored as timezone-aware UTC. Business-hour checks use the
configured scheduling zone, which callers pass explicitly.
"""

from datetime import date, datetime, timedelta
from typing import Optional, Union

import pytz
from pytz.tzinfo import BaseTzInfo

TimezoneLike = Union[str, BaseTzInfo]


def get_timezone(tz: TimezoneLike) -> BaseTzInfo:
    """Resolve a zone name (or pass through a pytz zone)."""
    if isinstance(tz, str):
        return pytz.timezone(tz)
    return tz


def ensure_utc(dt: datetime) -> datetime:
    """
    Normalize a datetime to aware UTC.

    Naive values are assumed to already be UTC (SQLite drops tzinfo on read).
    """
    if dt.tzinfo is None:
        return pytz.UTC.localize(dt)
    return dt.astimezone(pytz.UTC)


def to_local(dt: datetime, tz: TimezoneLike) -> datetime:
    """Convert an instant to wall-clock time in ``tz``."""
    return ensure_utc(dt).astimezone(get_timezone(tz))


def local_date(dt: datetime, tz: TimezoneLike) -> date:
    """Calendar date of an instant in ``tz``."""
    return to_local(dt, tz).date()


def shift_local_days(dt: datetime, days: int, tz: TimezoneLike) -> datetime:
    """
    Move an instant by whole calendar days keeping its wall-clock time in ``tz``.

    Returns aware UTC. Across a DST change the UTC offset of the result follows
    the target day, so 16:00 stays 16:00 local.
    """
    zone = get_timezone(tz)
    local = to_local(dt, zone)
    naive_target = local.replace(tzinfo=None) + timedelta(days=days)
    return zone.normalize(zone.localize(naive_target)).astimezone(pytz.UTC)


def parse_iso_instant(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 string into aware UTC, or None when unparseable.

    A trailing ``Z`` is accepted; naive strings are read as UTC.
    """
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return ensure_utc(parsed)
