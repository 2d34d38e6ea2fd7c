"""Static scheduling rules and the decision value returned by scheduling validation."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, Optional

from ..core.config import Settings, settings as default_settings
from ..core.constants import OVERLAP_ADMIN_OVERRIDE
from ..core.enums import SchedulingErrorCode
from ..core.exceptions import (
    DomainException,
    InvalidTimeRangeException,
    MaxDurationExceededException,
    OutsideTutoringWindowException,
    SessionOverlapException,
)
from ..core.timezone_utils import local_date
from ..utils.time_intervals import minutes_between, seconds_since_midnight


@dataclass(frozen=True)
class SchedulingRules:
    """Business rules a proposed session interval must satisfy."""

    buffer_minutes: int = 10
    allowed_start_hour: int = 7
    allowed_end_hour: int = 20
    max_duration_minutes: int = 120
    min_duration_minutes: int = 0
    timezone: str = "Australia/Sydney"

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None, **overrides: Any) -> "SchedulingRules":
        config = config or default_settings
        return cls(**config.scheduling_overrides(**overrides))

    def with_limits(
        self,
        *,
        max_duration_minutes: Optional[int] = None,
        min_duration_minutes: Optional[int] = None,
    ) -> "SchedulingRules":
        changes: Dict[str, int] = {}
        if max_duration_minutes is not None:
            changes["max_duration_minutes"] = max_duration_minutes
        if min_duration_minutes is not None:
            changes["min_duration_minutes"] = min_duration_minutes
        return replace(self, **changes)


@dataclass(frozen=True)
class SchedulingDecision:
    """
    Outcome of validating a proposed interval.

    ``ok`` with ``warning`` set means an admin may proceed through a conflict.
    """

    ok: bool
    code: Optional[SchedulingErrorCode] = None
    error: Optional[str] = None
    status_code: int = 200
    warning: Optional[str] = None
    conflict_session_id: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

    @classmethod
    def success(cls) -> "SchedulingDecision":
        return cls(ok=True)

    @classmethod
    def admin_override(cls, conflict_session_id: str) -> "SchedulingDecision":
        return cls(ok=True, warning=OVERLAP_ADMIN_OVERRIDE, conflict_session_id=conflict_session_id)

    @classmethod
    def from_exception(cls, exc: DomainException) -> "SchedulingDecision":
        return cls(
            ok=False,
            code=SchedulingErrorCode(exc.code),
            error=exc.message,
            status_code=exc.status_code,
            conflict_session_id=exc.details.get("conflict_session_id"),
            details=dict(exc.details),
        )

    def to_exception(self) -> DomainException:
        """Rebuild the domain exception for a failed decision."""
        details = self.details or {}
        if self.code is SchedulingErrorCode.SESSION_OVERLAP:
            return SessionOverlapException(self.conflict_session_id or "")
        if self.code is SchedulingErrorCode.MAX_DURATION_EXCEEDED:
            return MaxDurationExceededException(
                details.get("max_minutes", 0), details.get("duration_minutes", 0)
            )
        if self.code is SchedulingErrorCode.OUTSIDE_TUTORING_WINDOW:
            return OutsideTutoringWindowException(
                details.get("start_hour", 0), details.get("end_hour", 0)
            )
        return InvalidTimeRangeException(self.error or "Invalid time range.", **details)

    def raise_for_failure(self) -> None:
        if not self.ok:
            raise self.to_exception()


def validate_static_rules(
    start: Optional[datetime], end: Optional[datetime], rules: SchedulingRules
) -> SchedulingDecision:
    """
    Check a proposed interval against the fixed business rules.

    Order: well-formed interval, minimum and maximum duration, then the daily
    tutoring window in ``rules.timezone``. Pure: no I/O, no clock.
    """
    if start is None or end is None or end <= start:
        return SchedulingDecision.from_exception(InvalidTimeRangeException())

    duration = minutes_between(start, end)
    if duration < rules.min_duration_minutes:
        return SchedulingDecision.from_exception(
            InvalidTimeRangeException(
                f"Min duration is {rules.min_duration_minutes} minutes.",
                min_minutes=rules.min_duration_minutes,
                duration_minutes=duration,
            )
        )
    if duration > rules.max_duration_minutes:
        return SchedulingDecision.from_exception(
            MaxDurationExceededException(rules.max_duration_minutes, duration)
        )

    same_day = local_date(start, rules.timezone) == local_date(end, rules.timezone)
    window_start = rules.allowed_start_hour * 3600
    window_end = rules.allowed_end_hour * 3600
    if (
        not same_day
        or seconds_since_midnight(start, rules.timezone) < window_start
        or seconds_since_midnight(end, rules.timezone) > window_end
    ):
        return SchedulingDecision.from_exception(
            OutsideTutoringWindowException(rules.allowed_start_hour, rules.allowed_end_hour)
        )

    return SchedulingDecision.success()
