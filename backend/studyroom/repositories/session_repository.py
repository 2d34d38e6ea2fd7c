# backend/studyroom/repositories/session_repository.py
"""
Session Repository for the Study Room platform.

Data access for tutoring sessions: tutor calendar range reads used by
conflict detection, series reads used by recurring updates, and plain
single-row access for the mutation flows.
"""

from datetime import datetime
import logging
from typing import List, Optional, cast

from sqlalchemy.orm import Session

from ..core.constants import DEFAULT_QUERY_LIMIT
from ..core.enums import CANCELLED_STATUSES
from ..database.session_utils import ROW_LOCKING_DIALECTS
from ..models.session import TutoringSession
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class SessionRepository(BaseRepository[TutoringSession]):
    """Repository for tutoring session data access."""

    def __init__(self, db: Session):
        super().__init__(db, TutoringSession)

    def find_tutor_sessions_in_range(
        self,
        tutor_id: str,
        range_start: datetime,
        range_end: datetime,
        *,
        lock: bool = False,
    ) -> List[TutoringSession]:
        """
        Get a tutor's sessions whose stored interval intersects ``[range_start, range_end)``.

        Cancelled sessions are included; callers decide what blocks. With
        ``lock=True`` matching rows are locked ``FOR UPDATE`` on dialects that
        support it, so a concurrent writer waits for this transaction.
        """
        query = (
            self._build_query()
            .filter(
                TutoringSession.tutor_id == tutor_id,
                TutoringSession.start_at < range_end,
                TutoringSession.end_at > range_start,
            )
            .order_by(TutoringSession.start_at)
        )
        if lock and self.dialect_name in ROW_LOCKING_DIALECTS:
            query = query.with_for_update()
        return cast(List[TutoringSession], self._execute_query(query))

    def get_series_from(self, series_key: str, from_start: datetime) -> List[TutoringSession]:
        """
        Get every occurrence of a series starting at or after ``from_start``.

        Ordered by start time.
        """
        query = (
            self._build_query()
            .filter(
                TutoringSession.series_key == series_key,
                TutoringSession.start_at >= from_start,
            )
            .order_by(TutoringSession.start_at)
        )
        if self.dialect_name in ROW_LOCKING_DIALECTS:
            query = query.with_for_update()
        return cast(List[TutoringSession], self._execute_query(query))

    def list_for_tutor(
        self,
        tutor_id: str,
        range_start: datetime,
        range_end: datetime,
        *,
        include_cancelled: bool = True,
        limit: int = DEFAULT_QUERY_LIMIT,
    ) -> List[TutoringSession]:
        """Calendar read: a tutor's sessions intersecting a window, ordered by start."""
        query = self._build_query().filter(
            TutoringSession.tutor_id == tutor_id,
            TutoringSession.start_at < range_end,
            TutoringSession.end_at > range_start,
        )
        if not include_cancelled:
            query = query.filter(
                TutoringSession.status.notin_([s.value for s in CANCELLED_STATUSES])
            )
        return cast(
            List[TutoringSession],
            self._execute_query(query.order_by(TutoringSession.start_at).limit(limit)),
        )

    def get_for_update(self, session_id: str) -> Optional[TutoringSession]:
        """Load one session, locking its row where the dialect supports it."""
        query = self._build_query().filter(TutoringSession.id == session_id)
        if self.dialect_name in ROW_LOCKING_DIALECTS:
            query = query.with_for_update()
        results = self._execute_query(query.limit(1))
        return results[0] if results else None
