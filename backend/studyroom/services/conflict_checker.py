# backend/studyroom/services/conflict_checker.py
"""
Conflict Checker Service for the Study Room platform.

Finds an existing, non-cancelled session of the same tutor that collides
with a proposed interval once the turnaround buffer is applied to the
proposal.
"""

from datetime import datetime
import logging
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from ..core.enums import is_cancelled_status
from ..core.timezone_utils import ensure_utc
from ..domain.scheduling_rules import SchedulingRules
from ..models.session import TutoringSession
from ..repositories import RepositoryFactory
from ..repositories.session_repository import SessionRepository
from ..utils.time_intervals import expand_by_buffer, overlaps
from .base import BaseService

logger = logging.getLogger(__name__)


class ConflictChecker(BaseService):
    """
    Service for checking a tutor's calendar for collisions.

    The buffer is applied to the proposed interval only; each candidate is
    tested with its true stored interval.
    """

    def __init__(
        self,
        db: Session,
        repository: Optional[SessionRepository] = None,
        rules: Optional[SchedulingRules] = None,
    ):
        super().__init__(db)
        self.repository = repository or RepositoryFactory.create_session_repository(db)
        self.rules = rules or SchedulingRules.from_settings()

    @BaseService.measure_operation("find_conflicting_sessions")
    def find_conflicting_sessions(
        self,
        tutor_id: str,
        start: datetime,
        end: datetime,
        exclude_session_ids: Iterable[str] = (),
        *,
        buffer_minutes: Optional[int] = None,
        lock: bool = False,
    ) -> List[TutoringSession]:
        """
        All blocking sessions for a proposed interval, in store order.

        Args:
            tutor_id: Tutor whose calendar is checked
            start: Proposed start
            end: Proposed end
            exclude_session_ids: Sessions that never conflict (the one being edited)
            buffer_minutes: Override of the configured turnaround buffer
            lock: Lock candidate rows for the rest of the transaction

        Returns:
            Sessions that would collide with the buffered proposal
        """
        buffer = self.rules.buffer_minutes if buffer_minutes is None else buffer_minutes
        query_start, query_end = expand_by_buffer(ensure_utc(start), ensure_utc(end), buffer)
        excluded = {session_id for session_id in exclude_session_ids if session_id}

        candidates = self.repository.find_tutor_sessions_in_range(
            tutor_id, query_start, query_end, lock=lock
        )

        conflicts = [
            candidate
            for candidate in candidates
            if candidate.id not in excluded
            and not is_cancelled_status(candidate.status)
            and overlaps(
                query_start,
                query_end,
                ensure_utc(candidate.start_at),
                ensure_utc(candidate.end_at),
            )
        ]

        if conflicts:
            self.logger.warning(
                f"Found {len(conflicts)} session conflicts for tutor {tutor_id} "
                f"between {start.isoformat()} and {end.isoformat()}"
            )
        return conflicts

    def find_conflict_session_id(
        self,
        tutor_id: str,
        start: datetime,
        end: datetime,
        exclude_session_id: Optional[str] = None,
        *,
        exclude_session_ids: Iterable[str] = (),
        lock: bool = False,
    ) -> Optional[str]:
        """
        Id of the first conflicting session, or None.

        Which conflict is reported when several exist is unspecified.
        """
        excluded = set(exclude_session_ids)
        if exclude_session_id:
            excluded.add(exclude_session_id)
        conflicts = self.find_conflicting_sessions(
            tutor_id, start, end, excluded, lock=lock
        )
        return conflicts[0].id if conflicts else None
