# backend/studyroom/schemas/session.py
"""
Session request and response schemas.

Wire names are camelCase; Python attributes are snake_case. Instants arrive
as ISO-8601 strings and are parsed by the route so an unparseable value is
reported as an invalid time range rather than a schema error.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import Field, field_validator

from ..core.enums import BillingStatus, CancellationReason, SessionStatus
from ..models.session import TutoringSession
from ._strict_base import StrictModel, StrictRequestModel


class SessionCreateRequest(StrictRequestModel):
    tutor_id: str = Field(..., alias="tutorId", min_length=1)
    start_iso: str = Field(..., alias="startISO")
    end_iso: str = Field(..., alias="endISO")
    client_id: Optional[str] = Field(None, alias="clientId")
    student_id: Optional[str] = Field(None, alias="studentId")
    series_key: Optional[str] = Field(None, alias="seriesKey")


class RescheduleRequest(StrictRequestModel):
    """Reschedule ``sessionId``, or create on ``tutorId`` when no session is given."""

    session_id: Optional[str] = Field(None, alias="sessionId")
    start_iso: str = Field(..., alias="startISO")
    end_iso: str = Field(..., alias="endISO")
    tutor_id: Optional[str] = Field(None, alias="tutorId")


class RecurringUpdateRequest(StrictRequestModel):
    session_id: str = Field(..., alias="sessionId", min_length=1)
    start_iso: str = Field(..., alias="startISO")
    end_iso: str = Field(..., alias="endISO")
    edit_future: bool = Field(False, alias="editFuture")


class CancelRequest(StrictRequestModel):
    session_id: str = Field(..., alias="sessionId", min_length=1)
    reason: CancellationReason = CancellationReason.PARENT

    @field_validator("reason", mode="before")
    @classmethod
    def _normalize_reason(cls, v: object) -> object:
        if isinstance(v, str):
            return v.strip().upper()
        return v


class InvoiceRequest(StrictRequestModel):
    invoice_id: str = Field(..., alias="invoiceId", min_length=1, max_length=128)


class SessionResponse(StrictModel):
    """A tutoring session as returned to callers."""

    id: str
    tutor_id: str = Field(..., alias="tutorId")
    client_id: Optional[str] = Field(None, alias="clientId")
    student_id: Optional[str] = Field(None, alias="studentId")
    start_at: datetime = Field(..., alias="startAt")
    end_at: datetime = Field(..., alias="endAt")
    duration_minutes: int = Field(..., alias="durationMinutes")
    status: SessionStatus
    billing_status: BillingStatus = Field(..., alias="billingStatus")
    series_key: Optional[str] = Field(None, alias="seriesKey")
    xero_invoice_id: Optional[str] = Field(None, alias="xeroInvoiceId")
    cancelled_at: Optional[datetime] = Field(None, alias="cancelledAt")
    cancel_reason: Optional[str] = Field(None, alias="cancelReason")

    @classmethod
    def from_session(cls, session: TutoringSession) -> "SessionResponse":
        return cls(
            id=session.id,
            tutor_id=session.tutor_id,
            client_id=session.client_id,
            student_id=session.student_id,
            start_at=session.start_at,
            end_at=session.end_at,
            duration_minutes=session.duration_minutes,
            status=session.session_status,
            billing_status=session.billing,
            series_key=session.series_key,
            xero_invoice_id=session.xero_invoice_id,
            cancelled_at=session.cancelled_at,
            cancel_reason=session.cancel_reason,
        )


class SessionListResponse(StrictModel):
    sessions: List[SessionResponse]
    count: int


class ScheduleResponse(StrictModel):
    ok: bool = True
    session_id: Optional[str] = Field(None, alias="sessionId")
    warning: Optional[str] = None
    conflict_session_id: Optional[str] = Field(None, alias="conflictSessionId")


class RecurringUpdateResponse(StrictModel):
    ok: bool = True
    updated: int
    session_ids: List[str] = Field(default_factory=list, alias="sessionIds")
    warnings: List[Dict[str, str]] = Field(default_factory=list)


class CancelResponse(StrictModel):
    ok: bool = True
    within12: bool
    invoice_triggered: bool = Field(..., alias="invoiceTriggered")
    status: SessionStatus
    billing_status: BillingStatus = Field(..., alias="billingStatus")
