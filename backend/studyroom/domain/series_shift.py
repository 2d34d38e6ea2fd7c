"""
Recurring-series shift planning.

Editing one occurrence with "apply to future occurrences" moves the edited
occurrence and every later one to the new time of day and duration. Each
occurrence keeps its calendar-day distance from the edited occurrence, so a
Monday/Wednesday series stays Monday/Wednesday.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List, Protocol

from ..core.timezone_utils import TimezoneLike, ensure_utc, local_date, shift_local_days
from ..utils.time_intervals import minutes_between


class Occurrence(Protocol):
    id: str
    start_at: datetime


@dataclass(frozen=True)
class PlannedShift:
    session_id: str
    original_start: datetime
    new_start: datetime
    new_end: datetime
    duration_minutes: int
    day_offset: int


def plan_series_shift(
    *,
    edited_start: datetime,
    new_start: datetime,
    new_end: datetime,
    occurrences: Iterable[Occurrence],
    tz: TimezoneLike,
) -> List[PlannedShift]:
    """
    Plan new intervals for ``occurrences`` relative to the edited occurrence.

    Occurrences starting before ``edited_start`` are ignored. The day offset is
    measured between local calendar dates in ``tz`` and applied to ``new_start``
    keeping its wall-clock time; the duration is uniform for every occurrence.
    """
    edited_start = ensure_utc(edited_start)
    new_start = ensure_utc(new_start)
    duration_minutes = minutes_between(new_start, ensure_utc(new_end))
    anchor_day = local_date(edited_start, tz)

    plan: List[PlannedShift] = []
    for occurrence in occurrences:
        original_start = ensure_utc(occurrence.start_at)
        if original_start < edited_start:
            continue
        day_offset = (local_date(original_start, tz) - anchor_day).days
        shifted_start = shift_local_days(new_start, day_offset, tz)
        plan.append(
            PlannedShift(
                session_id=occurrence.id,
                original_start=original_start,
                new_start=shifted_start,
                new_end=shifted_start + timedelta(minutes=duration_minutes),
                duration_minutes=duration_minutes,
                day_offset=day_offset,
            )
        )
    plan.sort(key=lambda shift: shift.new_start)
    return plan
