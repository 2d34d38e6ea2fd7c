# backend/studyroom/services/scheduling_validator.py
"""
Scheduling Validator for the Study Room platform.

Single decision point for every session mutation: static rules first, then
the tutor's calendar. Conflicts block tutors; admins get a warning and may
proceed. Who may act on which calendar is checked by the caller.
"""

from datetime import datetime
import logging
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from ..core.enums import SchedulingErrorCode
from ..core.exceptions import SessionOverlapException
from ..domain.scheduling_rules import SchedulingDecision, SchedulingRules, validate_static_rules
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..principal import AuthorizationContext
from .base import BaseService
from .conflict_checker import ConflictChecker

logger = logging.getLogger(__name__)


class SchedulingValidator(BaseService):
    """Combines static rule checks and conflict detection into one decision."""

    def __init__(
        self,
        db: Session,
        conflict_checker: Optional[ConflictChecker] = None,
        rules: Optional[SchedulingRules] = None,
    ):
        super().__init__(db)
        self.rules = rules or SchedulingRules.from_settings()
        self.conflict_checker = conflict_checker or ConflictChecker(db, rules=self.rules)

    @BaseService.measure_operation("validate_scheduling")
    def validate(
        self,
        *,
        tutor_id: str,
        start: Optional[datetime],
        end: Optional[datetime],
        authorization: AuthorizationContext,
        exclude_session_id: Optional[str] = None,
        exclude_session_ids: Iterable[str] = (),
        rules: Optional[SchedulingRules] = None,
        lock: bool = False,
    ) -> SchedulingDecision:
        """
        Decide whether ``[start, end)`` may be booked on ``tutor_id``'s calendar.

        Args:
            tutor_id: Calendar owner
            start: Proposed start (None when the input could not be parsed)
            end: Proposed end
            authorization: Caller; admins may override conflicts
            exclude_session_id: Session being edited
            exclude_session_ids: Further sessions to ignore (other moving occurrences)
            rules: Per-call-site rules (e.g. a different duration ceiling)
            lock: Lock conflict candidates for the rest of the transaction

        Returns:
            SchedulingDecision; never raises for validation failures
        """
        effective_rules = rules or self.rules
        static = validate_static_rules(start, end, effective_rules)
        if not static.ok:
            self.logger.info(
                "Scheduling rejected by static rules",
                extra={"tutor_id": tutor_id, "code": static.code.value if static.code else None},
            )
            prometheus_metrics.record_scheduling_decision(
                static.code.value if static.code else "error"
            )
            return static

        conflict_id = self.conflict_checker.find_conflict_session_id(
            tutor_id,
            start,
            end,
            exclude_session_id,
            exclude_session_ids=exclude_session_ids,
            lock=lock,
        )
        if conflict_id is None:
            prometheus_metrics.record_scheduling_decision("ok")
            return SchedulingDecision.success()

        if authorization.can_override_conflicts:
            self.logger.warning(
                "Admin override of session overlap",
                extra={
                    "tutor_id": tutor_id,
                    "conflict_session_id": conflict_id,
                    "admin_id": authorization.user_id,
                },
            )
            prometheus_metrics.record_scheduling_decision("admin_override")
            return SchedulingDecision.admin_override(conflict_id)

        decision = SchedulingDecision.from_exception(SessionOverlapException(conflict_id))
        prometheus_metrics.record_scheduling_decision(SchedulingErrorCode.SESSION_OVERLAP.value)
        return decision
