# backend/studyroom/core/enums.py
"""
Core enums for the Study Room platform.

Values are persisted as plain strings so they stay readable in the
session store and in API payloads.
"""

from enum import Enum


class AppRole(str, Enum):
    """Roles allowed to mutate tutoring sessions."""

    ADMIN = "admin"
    TUTOR = "tutor"


class SessionStatus(str, Enum):
    """Tutoring session lifecycle statuses."""

    SCHEDULED = "SCHEDULED"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED_PARENT = "CANCELLED_PARENT"
    CANCELLED_STUDYROOM = "CANCELLED_STUDYROOM"
    NO_SHOW = "NO_SHOW"


CANCELLED_STATUSES = frozenset({SessionStatus.CANCELLED_PARENT, SessionStatus.CANCELLED_STUDYROOM})


def is_cancelled_status(status: object) -> bool:
    """Return True when a stored status value is one of the cancelled states."""
    if status is None:
        return False
    value = status.value if isinstance(status, Enum) else str(status)
    return value in {s.value for s in CANCELLED_STATUSES}


class BillingStatus(str, Enum):
    """Billing state of a session."""

    NOT_BILLED = "NOT_BILLED"
    READY_TO_INVOICE = "READY_TO_INVOICE"
    INVOICED = "INVOICED"
    CREDITED = "CREDITED"


class CancellationReason(str, Enum):
    """Who initiated a cancellation."""

    PARENT = "PARENT"
    STUDYROOM = "STUDYROOM"

    @property
    def cancelled_status(self) -> SessionStatus:
        if self is CancellationReason.STUDYROOM:
            return SessionStatus.CANCELLED_STUDYROOM
        return SessionStatus.CANCELLED_PARENT


class SchedulingErrorCode(str, Enum):
    """Machine-readable codes returned for rejected scheduling requests."""

    INVALID_TIME_RANGE = "INVALID_TIME_RANGE"
    MAX_DURATION_EXCEEDED = "MAX_DURATION_EXCEEDED"
    OUTSIDE_TUTORING_WINDOW = "OUTSIDE_TUTORING_WINDOW"
    SESSION_OVERLAP = "SESSION_OVERLAP"
