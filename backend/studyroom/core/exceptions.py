# backend/studyroom/core/exceptions.py
"""
Domain-specific exceptions for the Study Room platform.

These exceptions provide clear, business-focused error messages
that can be caught and handled appropriately at the API layer.
Every HTTP error payload carries a machine-readable ``code`` and a
human-readable ``error`` string.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

from .enums import SchedulingErrorCode


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"code": self.code, "error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload

    def to_http_exception(self) -> HTTPException:
        """Convert to an HTTPException using the class status code."""
        return HTTPException(status_code=self.status_code, detail=self.to_payload())


class ValidationException(DomainException):
    """Raised when business validation fails."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class UnauthorizedException(DomainException):
    """Raised when user is not authenticated."""

    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenException(DomainException):
    """Raised when user lacks permission for an action."""

    status_code = status.HTTP_403_FORBIDDEN


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


# Scheduling taxonomy


class InvalidTimeRangeException(ValidationException):
    """Malformed, inverted or too-short interval."""

    def __init__(self, message: str = "Invalid time range.", **details: Any) -> None:
        super().__init__(message, code=SchedulingErrorCode.INVALID_TIME_RANGE.value, details=details)


class MaxDurationExceededException(ValidationException):
    """Interval longer than the configured ceiling."""

    def __init__(self, max_minutes: int, duration_minutes: int) -> None:
        super().__init__(
            f"Session cannot exceed {max_minutes} minutes.",
            code=SchedulingErrorCode.MAX_DURATION_EXCEEDED.value,
            details={"max_minutes": max_minutes, "duration_minutes": duration_minutes},
        )


class OutsideTutoringWindowException(ValidationException):
    """Interval outside the allowed daily hours or spanning midnight."""

    def __init__(self, start_hour: int, end_hour: int) -> None:
        super().__init__(
            f"Sessions must be between {start_hour:02d}:00 and {end_hour:02d}:00.",
            code=SchedulingErrorCode.OUTSIDE_TUTORING_WINDOW.value,
            details={"start_hour": start_hour, "end_hour": end_hour},
        )


class SessionOverlapException(ConflictException):
    """Raised when a session overlaps another non-cancelled session of the same tutor."""

    def __init__(self, conflict_session_id: str, message: str = "Overlaps another session.") -> None:
        super().__init__(
            message,
            code=SchedulingErrorCode.SESSION_OVERLAP.value,
            details={"conflict_session_id": conflict_session_id},
        )
        self.conflict_session_id = conflict_session_id


class SeriesShiftRejectedException(DomainException):
    """Raised when one occurrence of a series shift fails validation; nothing is written."""

    def __init__(self, occurrence_id: str, cause: DomainException) -> None:
        super().__init__(
            f"Occurrence {occurrence_id} cannot be moved: {cause.message}",
            code=cause.code,
            details={"occurrence_id": occurrence_id, **cause.details},
        )
        self.status_code = cause.status_code
        self.occurrence_id = occurrence_id
        self.cause = cause


class SchedulingLockedException(ConflictException):
    """Raised when another request holds the tutor's scheduling lock."""

    def __init__(self, tutor_id: str) -> None:
        super().__init__(
            "Another change to this calendar is in progress. Please retry.",
            code="SCHEDULING_LOCKED",
            details={"tutor_id": tutor_id},
        )


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """
