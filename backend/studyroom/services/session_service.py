# backend/studyroom/services/session_service.py
"""
Session Service for the Study Room platform.

Entry point for every tutoring-session mutation: create, reschedule,
recurring-series update, cancellation and invoice bookkeeping.

Each scheduling mutation runs validation and write in one transaction,
holding the tutor's calendar lock and locking conflict candidates where the
database supports row locks, so two requests cannot both pass the conflict
check for the same window.
"""

from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
import logging
from typing import Callable, Dict, Iterator, List, Optional

from sqlalchemy.orm import Session

from ..core.config import Settings, settings as default_settings
from ..core.constants import MAX_CALENDAR_RANGE_DAYS
from ..core.enums import BillingStatus, CancellationReason, SessionStatus
from ..core.exceptions import (
    ConflictException,
    ForbiddenException,
    InvalidTimeRangeException,
    NotFoundException,
    SchedulingLockedException,
    ValidationException,
)
from ..core.scheduling_lock import tutor_calendar_lock
from ..domain.cancellation_policy import CancellationOutcome, resolve_cancellation
from ..domain.scheduling_rules import SchedulingRules
from ..models.session import TutoringSession
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..principal import AuthorizationContext
from ..repositories import RepositoryFactory
from ..repositories.session_repository import SessionRepository
from ..utils.time_intervals import minutes_between
from .base import BaseService
from .scheduling_validator import SchedulingValidator
from .series_shifter import RecurringSeriesShifter, SeriesShiftResult

logger = logging.getLogger(__name__)


@dataclass
class ScheduleResult:
    session: TutoringSession
    created: bool = False
    warning: Optional[str] = None
    conflict_session_id: Optional[str] = None


@dataclass
class CancellationResult:
    session: TutoringSession
    outcome: CancellationOutcome


@dataclass
class SeriesUpdateResult:
    updated: int
    session_ids: List[str] = field(default_factory=list)
    warnings: List[Dict[str, str]] = field(default_factory=list)


class SessionService(BaseService):
    """
    Service layer for tutoring sessions.

    Ownership: a tutor may act on their own sessions, an admin on any.
    """

    def __init__(
        self,
        db: Session,
        repository: Optional[SessionRepository] = None,
        validator: Optional[SchedulingValidator] = None,
        config: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        super().__init__(db)
        self.config = config or default_settings
        self.repository = repository or RepositoryFactory.create_session_repository(db)
        self.rules = SchedulingRules.from_settings(self.config)
        self.validator = validator or SchedulingValidator(db, rules=self.rules)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.series_shifter = RecurringSeriesShifter(
            db,
            repository=self.repository,
            validator=self.validator,
            rules=self.rules,
            clock=self._clock,
        )

    # Per-call-site duration limits

    @property
    def create_rules(self) -> SchedulingRules:
        return self.rules.with_limits(
            max_duration_minutes=self.config.max_session_minutes,
            min_duration_minutes=self.config.min_session_minutes,
        )

    @property
    def reschedule_rules(self) -> SchedulingRules:
        return self.rules.with_limits(
            max_duration_minutes=self.config.reschedule_max_session_minutes,
            min_duration_minutes=self.config.min_session_minutes,
        )

    @property
    def series_rules(self) -> SchedulingRules:
        return self.create_rules

    # Helpers

    def _now(self) -> datetime:
        return self._clock()

    def _require_session(self, session_id: str, *, for_update: bool = False) -> TutoringSession:
        session = (
            self.repository.get_for_update(session_id)
            if for_update
            else self.repository.get_by_id(session_id)
        )
        if not session:
            raise NotFoundException("Session not found", code="SESSION_NOT_FOUND")
        return session

    def _ensure_can_act(self, authorization: AuthorizationContext, tutor_id: str) -> None:
        if not authorization.can_act_for_tutor(tutor_id):
            self.logger.warning(
                "Calendar access denied",
                extra={"user_id": authorization.user_id, "tutor_id": tutor_id},
            )
            raise ForbiddenException("Not permitted", code="FORBIDDEN")

    @staticmethod
    def _ensure_not_cancelled(session: TutoringSession) -> None:
        if session.is_cancelled:
            raise ValidationException(
                "Cancelled sessions cannot be changed", code="SESSION_CANCELLED"
            )

    @contextmanager
    def _calendar_write(self, tutor_id: str) -> Iterator[Session]:
        """Tutor lock plus one transaction around check-and-write."""
        with tutor_calendar_lock(tutor_id) as acquired:
            if not acquired:
                raise SchedulingLockedException(tutor_id)
            with self.transaction() as db:
                yield db

    # Reads

    @BaseService.measure_operation("get_session")
    def get_session(self, authorization: AuthorizationContext, session_id: str) -> TutoringSession:
        session = self._require_session(session_id)
        self._ensure_can_act(authorization, session.tutor_id)
        return session

    @BaseService.measure_operation("list_tutor_sessions")
    def list_tutor_sessions(
        self,
        authorization: AuthorizationContext,
        tutor_id: str,
        range_start: datetime,
        range_end: datetime,
        *,
        include_cancelled: bool = True,
    ) -> List[TutoringSession]:
        """Calendar read for one tutor; the window is capped to keep reads bounded."""
        self._ensure_can_act(authorization, tutor_id)
        if range_end <= range_start:
            raise InvalidTimeRangeException("End must be after start.")
        if range_end - range_start > timedelta(days=MAX_CALENDAR_RANGE_DAYS):
            raise ValidationException(
                f"Calendar range cannot exceed {MAX_CALENDAR_RANGE_DAYS} days",
                code="RANGE_TOO_LARGE",
            )
        return self.repository.list_for_tutor(
            tutor_id, range_start, range_end, include_cancelled=include_cancelled
        )

    # Scheduling mutations

    @BaseService.measure_operation("create_session")
    def create_session(
        self,
        authorization: AuthorizationContext,
        *,
        tutor_id: str,
        start: Optional[datetime],
        end: Optional[datetime],
        client_id: Optional[str] = None,
        student_id: Optional[str] = None,
        series_key: Optional[str] = None,
    ) -> ScheduleResult:
        """
        Validate and persist a new session.

        Raises:
            ForbiddenException: caller may not act on this tutor's calendar
            ValidationException / SessionOverlapException: rejected by validation
        """
        self._ensure_can_act(authorization, tutor_id)

        with self._calendar_write(tutor_id):
            decision = self.validator.validate(
                tutor_id=tutor_id,
                start=start,
                end=end,
                authorization=authorization,
                rules=self.create_rules,
                lock=True,
            )
            decision.raise_for_failure()
            assert start is not None and end is not None

            now = self._now()
            session = self.repository.create(
                tutor_id=tutor_id,
                client_id=client_id,
                student_id=student_id,
                series_key=series_key,
                start_at=start,
                end_at=end,
                duration_minutes=minutes_between(start, end),
                status=SessionStatus.SCHEDULED.value,
                billing_status=BillingStatus.NOT_BILLED.value,
                created_at=now,
                updated_at=now,
            )

        self.log_operation("create_session", session_id=session.id, tutor_id=tutor_id)
        return ScheduleResult(
            session=session,
            created=True,
            warning=decision.warning,
            conflict_session_id=decision.conflict_session_id,
        )

    @BaseService.measure_operation("reschedule_session")
    def reschedule_session(
        self,
        authorization: AuthorizationContext,
        session_id: str,
        *,
        start: Optional[datetime],
        end: Optional[datetime],
    ) -> ScheduleResult:
        """Move one session to a new interval, excluding itself from conflict checks."""
        existing = self._require_session(session_id)
        self._ensure_can_act(authorization, existing.tutor_id)
        self._ensure_not_cancelled(existing)
        tutor_id = existing.tutor_id

        with self._calendar_write(tutor_id):
            decision = self.validator.validate(
                tutor_id=tutor_id,
                start=start,
                end=end,
                authorization=authorization,
                exclude_session_id=session_id,
                rules=self.reschedule_rules,
                lock=True,
            )
            decision.raise_for_failure()
            assert start is not None and end is not None

            session = self.repository.update(
                session_id,
                start_at=start,
                end_at=end,
                duration_minutes=minutes_between(start, end),
                updated_at=self._now(),
            )
            if session is None:
                raise NotFoundException("Session not found", code="SESSION_NOT_FOUND")

        self.log_operation(
            "reschedule_session",
            session_id=session_id,
            tutor_id=tutor_id,
            override=bool(decision.warning),
        )
        return ScheduleResult(
            session=session,
            warning=decision.warning,
            conflict_session_id=decision.conflict_session_id,
        )

    def schedule(
        self,
        authorization: AuthorizationContext,
        *,
        session_id: Optional[str],
        tutor_id: Optional[str],
        start: Optional[datetime],
        end: Optional[datetime],
    ) -> ScheduleResult:
        """Reschedule when ``session_id`` is given, otherwise create on ``tutor_id``."""
        if session_id:
            return self.reschedule_session(authorization, session_id, start=start, end=end)
        if not tutor_id:
            raise ValidationException("Missing fields", code="MISSING_FIELDS")
        return self.create_session(authorization, tutor_id=tutor_id, start=start, end=end)

    @BaseService.measure_operation("update_recurring")
    def update_recurring(
        self,
        authorization: AuthorizationContext,
        session_id: str,
        *,
        start: Optional[datetime],
        end: Optional[datetime],
        edit_future: bool,
    ) -> SeriesUpdateResult:
        """
        Move one occurrence, or it and every later occurrence of its series.

        With ``validate_series_shift`` enabled each moved occurrence is
        validated and the first failure rejects the whole update.
        """
        if start is None or end is None or end <= start:
            raise InvalidTimeRangeException()

        edited = self._require_session(session_id)
        self._ensure_can_act(authorization, edited.tutor_id)
        self._ensure_not_cancelled(edited)

        with self._calendar_write(edited.tutor_id):
            shift: SeriesShiftResult = self.series_shifter.shift(
                edited,
                start,
                end,
                edit_future=edit_future,
                authorization=authorization,
                validate=self.config.validate_series_shift,
                rules=self.series_rules,
            )

        return SeriesUpdateResult(
            updated=shift.updated, session_ids=shift.session_ids, warnings=shift.warnings
        )

    @BaseService.measure_operation("cancel_session")
    def cancel_session(
        self,
        authorization: AuthorizationContext,
        session_id: str,
        reason: CancellationReason,
        *,
        now: Optional[datetime] = None,
    ) -> CancellationResult:
        """Cancel a session and apply the billing consequence of the notice given."""
        now = now or self._now()
        with self.transaction():
            session = self._require_session(session_id, for_update=True)
            self._ensure_can_act(authorization, session.tutor_id)
            if session.is_cancelled:
                raise ValidationException(
                    "Session is already cancelled", code="SESSION_ALREADY_CANCELLED"
                )

            previous_billing = session.billing
            outcome = resolve_cancellation(
                start_at=session.start_at,
                billing_status=previous_billing,
                reason=reason,
                now=now,
                late_window_hours=self.config.late_cancellation_hours,
            )
            session.status = outcome.status.value
            session.billing_status = outcome.billing_status.value
            session.cancelled_at = outcome.cancelled_at
            session.cancel_reason = outcome.cancel_reason
            session.updated_at = outcome.cancelled_at
            self.db.flush()

        transition = (
            f"{previous_billing.value}->{outcome.billing_status.value}"
            if outcome.billing_status is not previous_billing
            else "unchanged"
        )
        prometheus_metrics.record_cancellation(reason.value, transition)
        self.log_operation(
            "cancel_session",
            session_id=session_id,
            within_window=outcome.within_window,
            billing_transition=transition,
        )
        return CancellationResult(session=session, outcome=outcome)

    # Invoice bookkeeping

    @BaseService.measure_operation("record_invoice")
    def record_invoice(
        self, authorization: AuthorizationContext, session_id: str, invoice_id: str
    ) -> TutoringSession:
        """Attach an accounting invoice to a session and mark it invoiced."""
        with self.transaction():
            session = self._require_session(session_id, for_update=True)
            self._ensure_can_act(authorization, session.tutor_id)
            if session.xero_invoice_id:
                raise ConflictException(
                    "Session already has an invoice",
                    code="INVOICE_ALREADY_EXISTS",
                    details={"invoice_id": session.xero_invoice_id},
                )
            session.xero_invoice_id = invoice_id
            session.billing_status = BillingStatus.INVOICED.value
            session.updated_at = self._now()
            self.db.flush()
        self.log_operation("record_invoice", session_id=session_id, invoice_id=invoice_id)
        return session

    @BaseService.measure_operation("void_invoice")
    def void_invoice(self, authorization: AuthorizationContext, session_id: str) -> TutoringSession:
        """Detach a voided invoice; the session becomes ready to invoice again."""
        with self.transaction():
            session = self._require_session(session_id, for_update=True)
            self._ensure_can_act(authorization, session.tutor_id)
            if not session.xero_invoice_id:
                raise ValidationException("Session has no invoice", code="NO_INVOICE")
            voided = session.xero_invoice_id
            session.xero_invoice_id = None
            session.billing_status = BillingStatus.READY_TO_INVOICE.value
            session.updated_at = self._now()
            self.db.flush()
        self.log_operation("void_invoice", session_id=session_id, invoice_id=voided)
        return session
