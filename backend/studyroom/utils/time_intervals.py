"""
Interval arithmetic for scheduling.

Intervals are half-open ``[start, end)``: touching endpoints never overlap.
"""

from __future__ import annotations

from datetime import datetime, timedelta
import math
from typing import Tuple

from ..core.timezone_utils import TimezoneLike, to_local


def minutes_between(a: datetime, b: datetime) -> int:
    """Whole minutes from ``a`` to ``b``, rounded to the nearest minute (halves round up)."""
    return math.floor((b - a).total_seconds() / 60.0 + 0.5)


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """True iff the two half-open intervals intersect."""
    return a_start < b_end and b_start < a_end


def minutes_since_midnight(instant: datetime, tz: TimezoneLike) -> int:
    """Local wall-clock minutes since midnight in ``tz``."""
    local = to_local(instant, tz)
    return local.hour * 60 + local.minute


def seconds_since_midnight(instant: datetime, tz: TimezoneLike) -> float:
    """Local wall-clock seconds since midnight in ``tz``, keeping sub-minute precision."""
    local = to_local(instant, tz)
    return local.hour * 3600 + local.minute * 60 + local.second + local.microsecond / 1_000_000


def expand_by_buffer(
    start: datetime, end: datetime, buffer_minutes: int
) -> Tuple[datetime, datetime]:
    """Widen an interval by ``buffer_minutes`` on both ends."""
    buffer = timedelta(minutes=buffer_minutes)
    return start - buffer, end + buffer
