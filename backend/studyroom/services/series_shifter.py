# backend/studyroom/services/series_shifter.py
"""
Recurring-Series Shifter for the Study Room platform.

Moves an edited occurrence, and optionally every later occurrence of its
series, to a new time of day and duration. Every planned occurrence is
validated before anything is written and the whole batch is flushed in the
caller's transaction, so a series is either fully shifted or untouched.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
from typing import Callable, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from ..core.enums import is_cancelled_status
from ..core.exceptions import SeriesShiftRejectedException, SessionOverlapException
from ..domain.scheduling_rules import SchedulingRules, validate_static_rules
from ..domain.series_shift import PlannedShift, plan_series_shift
from ..models.session import TutoringSession
from ..principal import AuthorizationContext
from ..repositories import RepositoryFactory
from ..repositories.session_repository import SessionRepository
from ..utils.time_intervals import expand_by_buffer, overlaps
from .base import BaseService
from .scheduling_validator import SchedulingValidator

logger = logging.getLogger(__name__)


@dataclass
class SeriesShiftResult:
    updated: int
    session_ids: List[str]
    warnings: List[Dict[str, str]] = field(default_factory=list)


class RecurringSeriesShifter(BaseService):
    """Plans, validates and applies recurring-series shifts."""

    def __init__(
        self,
        db: Session,
        repository: Optional[SessionRepository] = None,
        validator: Optional[SchedulingValidator] = None,
        rules: Optional[SchedulingRules] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        super().__init__(db)
        self.repository = repository or RepositoryFactory.create_session_repository(db)
        self.rules = rules or SchedulingRules.from_settings()
        self.validator = validator or SchedulingValidator(db, rules=self.rules)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def occurrences(self, edited: TutoringSession, *, edit_future: bool) -> List[TutoringSession]:
        """
        The edited occurrence and, with ``edit_future``, every later one in its series.

        Occurrences are read with the edited session's current (pre-edit) start.
        Cancelled occurrences are included and move with the series.
        """
        if not edit_future or not edited.series_key:
            if edit_future:
                self.logger.info(
                    f"Session {edited.id} has no series key; updating the single occurrence"
                )
            return [edited]

        occurrences = self.repository.get_series_from(edited.series_key, edited.start_at)
        if all(occurrence.id != edited.id for occurrence in occurrences):
            occurrences.append(edited)
        return occurrences

    @BaseService.measure_operation("plan_series_shift")
    def plan(
        self,
        edited: TutoringSession,
        new_start: datetime,
        new_end: datetime,
        *,
        edit_future: bool,
        occurrences: Optional[List[TutoringSession]] = None,
    ) -> List[PlannedShift]:
        """New intervals for the edited occurrence and, with ``edit_future``, every later one."""
        if occurrences is None:
            occurrences = self.occurrences(edited, edit_future=edit_future)
        return plan_series_shift(
            edited_start=edited.start_at,
            new_start=new_start,
            new_end=new_end,
            occurrences=occurrences,
            tz=self.rules.timezone,
        )

    @BaseService.measure_operation("validate_series_shift")
    def validate_plan(
        self,
        plan: List[PlannedShift],
        tutor_id: str,
        authorization: AuthorizationContext,
        *,
        rules: Optional[SchedulingRules] = None,
        lock: bool = True,
        cancelled_ids: Iterable[str] = (),
    ) -> List[Dict[str, str]]:
        """
        Run scheduling validation for every planned occurrence.

        Occurrences being moved never conflict with their own old positions,
        but the new positions are checked against each other. Cancelled
        occurrences hold no time on the calendar, so they are held to the
        static rules only.

        Returns:
            Admin override warnings, one per occurrence that overlaps

        Raises:
            SeriesShiftRejectedException: first occurrence that fails; nothing is written
        """
        moving_ids = [shift.session_id for shift in plan]
        cancelled = set(cancelled_ids)
        warnings: List[Dict[str, str]] = []

        for shift in plan:
            if shift.session_id in cancelled:
                static = validate_static_rules(shift.new_start, shift.new_end, rules or self.rules)
                if not static.ok:
                    raise SeriesShiftRejectedException(shift.session_id, static.to_exception())
                continue
            decision = self.validator.validate(
                tutor_id=tutor_id,
                start=shift.new_start,
                end=shift.new_end,
                authorization=authorization,
                exclude_session_ids=moving_ids,
                rules=rules,
                lock=lock,
            )
            if not decision.ok:
                self.logger.info(
                    "Series shift rejected",
                    extra={"occurrence_id": shift.session_id, "code": decision.code},
                )
                raise SeriesShiftRejectedException(shift.session_id, decision.to_exception())
            if decision.warning and decision.conflict_session_id:
                warnings.append(
                    {
                        "session_id": shift.session_id,
                        "conflict_session_id": decision.conflict_session_id,
                    }
                )

        active = [shift for shift in plan if shift.session_id not in cancelled]
        for shift, other in self._colliding_pairs(active):
            if not authorization.can_override_conflicts:
                raise SeriesShiftRejectedException(
                    other.session_id, SessionOverlapException(shift.session_id)
                )
            warnings.append(
                {"session_id": other.session_id, "conflict_session_id": shift.session_id}
            )
        return warnings

    @BaseService.measure_operation("apply_series_shift")
    def apply(self, plan: List[PlannedShift]) -> int:
        """Write every planned interval with one flush; the caller owns the transaction."""
        now = self._clock()
        updates = [
            {
                "id": shift.session_id,
                "start_at": shift.new_start,
                "end_at": shift.new_end,
                "duration_minutes": shift.duration_minutes,
                "updated_at": now,
            }
            for shift in plan
        ]
        return self.repository.bulk_update(updates)

    def _colliding_pairs(self, plan: List[PlannedShift]) -> List[tuple[PlannedShift, PlannedShift]]:
        ordered = sorted(plan, key=lambda shift: shift.new_start)
        pairs = []
        for previous, current in zip(ordered, ordered[1:]):
            buffered_start, buffered_end = expand_by_buffer(
                current.new_start, current.new_end, self.rules.buffer_minutes
            )
            if overlaps(buffered_start, buffered_end, previous.new_start, previous.new_end):
                pairs.append((previous, current))
        return pairs

    def shift(
        self,
        edited: TutoringSession,
        new_start: datetime,
        new_end: datetime,
        *,
        edit_future: bool,
        authorization: AuthorizationContext,
        validate: bool = True,
        rules: Optional[SchedulingRules] = None,
    ) -> SeriesShiftResult:
        """Plan, optionally validate, and apply. Must run inside a transaction."""
        occurrences = self.occurrences(edited, edit_future=edit_future)
        plan = self.plan(
            edited, new_start, new_end, edit_future=edit_future, occurrences=occurrences
        )
        cancelled_ids = [
            occurrence.id
            for occurrence in occurrences
            if occurrence.id != edited.id and is_cancelled_status(occurrence.status)
        ]
        warnings: List[Dict[str, str]] = []
        if validate:
            warnings = self.validate_plan(
                plan, edited.tutor_id, authorization, rules=rules, cancelled_ids=cancelled_ids
            )
        updated = self.apply(plan)
        self.log_operation(
            "series_shift",
            session_id=edited.id,
            series_key=edited.series_key,
            updated=updated,
            edit_future=edit_future,
        )
        return SeriesShiftResult(
            updated=updated,
            session_ids=[shift.session_id for shift in plan],
            warnings=warnings,
        )
