# backend/studyroom/routes/v1/sessions.py
"""
Tutoring session routes - API v1.

Versioned endpoints under /api/v1/sessions. Handlers are async and run the
synchronous service layer with ``asyncio.to_thread``.

Endpoints:
    POST   /                     -> Create a session
    GET    /                     -> List a tutor's sessions in a window
    POST   /reschedule           -> Reschedule (or create when no sessionId)
    POST   /recurring/update     -> Move an occurrence and optionally its future series
    POST   /cancel               -> Cancel and apply the billing policy
    GET    /{session_id}         -> Get one session
    POST   /{session_id}/invoice       -> Record an accounting invoice
    POST   /{session_id}/invoice/void  -> Void the recorded invoice
"""

import asyncio
from datetime import datetime
import logging
from typing import NoReturn

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status

from ...api.dependencies import get_authorization_context, get_session_service
from ...core.constants import ULID_PATH_PATTERN
from ...core.exceptions import DomainException, InvalidTimeRangeException
from ...core.timezone_utils import parse_iso_instant
from ...principal import AuthorizationContext
from ...schemas.session import (
    CancelRequest,
    CancelResponse,
    InvoiceRequest,
    RecurringUpdateRequest,
    RecurringUpdateResponse,
    RescheduleRequest,
    ScheduleResponse,
    SessionCreateRequest,
    SessionListResponse,
    SessionResponse,
)
from ...services.session_service import SessionService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["sessions-v1"])


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def _parse_window(start_iso: str, end_iso: str) -> tuple[datetime | None, datetime | None]:
    return parse_iso_instant(start_iso), parse_iso_instant(end_iso)


# ============================================================================
# SECTION 1: Static routes (no path parameters)
# ============================================================================


@router.post("", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def create_session(
    payload: SessionCreateRequest,
    authorization: AuthorizationContext = Depends(get_authorization_context),
    session_service: SessionService = Depends(get_session_service),
) -> SessionResponse:
    """Create a session after rule and conflict validation."""
    start, end = _parse_window(payload.start_iso, payload.end_iso)
    try:
        result = await asyncio.to_thread(
            session_service.create_session,
            authorization,
            tutor_id=payload.tutor_id,
            start=start,
            end=end,
            client_id=payload.client_id,
            student_id=payload.student_id,
            series_key=payload.series_key,
        )
        return SessionResponse.from_session(result.session)
    except DomainException as e:
        handle_domain_exception(e)


@router.get("", response_model=SessionListResponse)
async def list_sessions(
    tutor_id: str = Query(..., min_length=1),
    start: str = Query(..., description="ISO-8601 window start"),
    end: str = Query(..., description="ISO-8601 window end"),
    include_cancelled: bool = Query(True),
    authorization: AuthorizationContext = Depends(get_authorization_context),
    session_service: SessionService = Depends(get_session_service),
) -> SessionListResponse:
    """List a tutor's sessions overlapping ``[start, end)``."""
    try:
        range_start, range_end = _parse_window(start, end)
        if range_start is None or range_end is None:
            raise InvalidTimeRangeException()
        sessions = await asyncio.to_thread(
            session_service.list_tutor_sessions,
            authorization,
            tutor_id,
            range_start,
            range_end,
            include_cancelled=include_cancelled,
        )
        return SessionListResponse(
            sessions=[SessionResponse.from_session(s) for s in sessions], count=len(sessions)
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/reschedule", response_model=ScheduleResponse, response_model_exclude_none=True)
async def reschedule_session(
    payload: RescheduleRequest,
    authorization: AuthorizationContext = Depends(get_authorization_context),
    session_service: SessionService = Depends(get_session_service),
) -> ScheduleResponse:
    """
    Reschedule an existing session, or create one on ``tutorId``.

    Admins proceeding through an overlap get ``warning`` and ``conflictSessionId``.
    """
    start, end = _parse_window(payload.start_iso, payload.end_iso)
    try:
        result = await asyncio.to_thread(
            session_service.schedule,
            authorization,
            session_id=payload.session_id,
            tutor_id=payload.tutor_id,
            start=start,
            end=end,
        )
        return ScheduleResponse(
            ok=True,
            session_id=result.session.id,
            warning=result.warning,
            conflict_session_id=result.conflict_session_id,
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/recurring/update", response_model=RecurringUpdateResponse)
async def update_recurring(
    payload: RecurringUpdateRequest,
    authorization: AuthorizationContext = Depends(get_authorization_context),
    session_service: SessionService = Depends(get_session_service),
) -> RecurringUpdateResponse:
    """Move one occurrence, or it and all later occurrences when ``editFuture`` is set."""
    start, end = _parse_window(payload.start_iso, payload.end_iso)
    try:
        result = await asyncio.to_thread(
            session_service.update_recurring,
            authorization,
            payload.session_id,
            start=start,
            end=end,
            edit_future=payload.edit_future,
        )
        return RecurringUpdateResponse(
            ok=True,
            updated=result.updated,
            session_ids=result.session_ids,
            warnings=result.warnings,
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/cancel", response_model=CancelResponse)
async def cancel_session(
    payload: CancelRequest,
    authorization: AuthorizationContext = Depends(get_authorization_context),
    session_service: SessionService = Depends(get_session_service),
) -> CancelResponse:
    """Cancel a session; a late cancellation of an unbilled session becomes billable."""
    try:
        result = await asyncio.to_thread(
            session_service.cancel_session, authorization, payload.session_id, payload.reason
        )
        return CancelResponse(
            ok=True,
            within12=result.outcome.within_window,
            invoice_triggered=result.outcome.invoice_triggered,
            status=result.outcome.status,
            billing_status=result.outcome.billing_status,
        )
    except DomainException as e:
        handle_domain_exception(e)


# ============================================================================
# SECTION 2: Routes with path parameters
# ============================================================================


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(
    session_id: str = Path(..., description="Session ULID", pattern=ULID_PATH_PATTERN),
    authorization: AuthorizationContext = Depends(get_authorization_context),
    session_service: SessionService = Depends(get_session_service),
) -> SessionResponse:
    try:
        session = await asyncio.to_thread(session_service.get_session, authorization, session_id)
        return SessionResponse.from_session(session)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{session_id}/invoice", response_model=SessionResponse)
async def record_invoice(
    payload: InvoiceRequest,
    session_id: str = Path(..., description="Session ULID", pattern=ULID_PATH_PATTERN),
    authorization: AuthorizationContext = Depends(get_authorization_context),
    session_service: SessionService = Depends(get_session_service),
) -> SessionResponse:
    """Record the accounting invoice created for a session."""
    try:
        session = await asyncio.to_thread(
            session_service.record_invoice, authorization, session_id, payload.invoice_id
        )
        return SessionResponse.from_session(session)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{session_id}/invoice/void", response_model=SessionResponse)
async def void_invoice(
    session_id: str = Path(..., description="Session ULID", pattern=ULID_PATH_PATTERN),
    authorization: AuthorizationContext = Depends(get_authorization_context),
    session_service: SessionService = Depends(get_session_service),
) -> SessionResponse:
    """Clear a voided invoice; the session goes back to READY_TO_INVOICE."""
    try:
        session = await asyncio.to_thread(session_service.void_invoice, authorization, session_id)
        return SessionResponse.from_session(session)
    except DomainException as e:
        handle_domain_exception(e)
