# backend/studyroom/models/session.py
"""
Tutoring session model for the Study Room platform.

A session is one time interval assigned to exactly one tutor. Sessions are
never physically deleted: cancellation is a status change, and a cancelled
session never blocks a new booking.
"""

from datetime import datetime, timezone
import logging
from typing import Any

from sqlalchemy import CheckConstraint, Column, Index, Integer, String, Text

from ..core.enums import BillingStatus, SessionStatus, is_cancelled_status
from ..core.ulid_helper import generate_ulid
from ..database import Base
from .types import UTCDateTime

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TutoringSession(Base):
    """One scheduled tutoring session (or one occurrence of a recurring series)."""

    __tablename__ = "tutoring_sessions"

    id = Column(String(26), primary_key=True, index=True, default=generate_ulid)

    tutor_id = Column(String(128), nullable=False)
    client_id = Column(String(128), nullable=True)
    student_id = Column(String(128), nullable=True)

    start_at = Column(UTCDateTime, nullable=False)
    end_at = Column(UTCDateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False)

    status = Column(String(32), nullable=False, default=SessionStatus.SCHEDULED.value)
    billing_status = Column(String(32), nullable=False, default=BillingStatus.NOT_BILLED.value)

    # Occurrences of one recurring booking share a series key
    series_key = Column(String(128), nullable=True)

    xero_invoice_id = Column(String(128), nullable=True)

    # Audit
    created_at = Column(UTCDateTime, nullable=False, default=_utcnow)
    updated_at = Column(UTCDateTime, nullable=True, default=_utcnow)
    cancelled_at = Column(UTCDateTime, nullable=True)
    cancel_reason = Column(Text, nullable=True)

    __table_args__ = (
        Index("ix_tutoring_sessions_tutor_start", "tutor_id", "start_at"),
        Index("ix_tutoring_sessions_series_start", "series_key", "start_at"),
        CheckConstraint("end_at > start_at", name="ck_tutoring_sessions_time_order"),
        CheckConstraint("duration_minutes > 0", name="ck_tutoring_sessions_duration_positive"),
        CheckConstraint(
            "status IN ('SCHEDULED', 'CONFIRMED', 'COMPLETED', "
            "'CANCELLED_PARENT', 'CANCELLED_STUDYROOM', 'NO_SHOW')",
            name="ck_tutoring_sessions_status",
        ),
        CheckConstraint(
            "billing_status IN ('NOT_BILLED', 'READY_TO_INVOICE', 'INVOICED', 'CREDITED')",
            name="ck_tutoring_sessions_billing_status",
        ),
    )

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        if not self.status:
            self.status = SessionStatus.SCHEDULED.value
        if not self.billing_status:
            self.billing_status = BillingStatus.NOT_BILLED.value

    def __repr__(self) -> str:
        return (
            f"<TutoringSession {self.id}: tutor={self.tutor_id}, "
            f"{self.start_at}-{self.end_at}, status={self.status}>"
        )

    @property
    def is_cancelled(self) -> bool:
        return is_cancelled_status(self.status)

    @property
    def session_status(self) -> SessionStatus:
        return SessionStatus(self.status)

    @property
    def billing(self) -> BillingStatus:
        return BillingStatus(self.billing_status or BillingStatus.NOT_BILLED.value)
