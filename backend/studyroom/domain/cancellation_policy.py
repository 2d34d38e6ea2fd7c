"""
Cancellation billing policy.

A late cancellation (at or inside the notice window) of an unbilled session
makes it billable; an early cancellation of an invoiced session is flagged
for a manual credit. Every other combination leaves billing untouched.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from ..core.constants import EARLY_CANCELLATION_NOTE, LATE_CANCELLATION_NOTE
from ..core.enums import BillingStatus, CancellationReason, SessionStatus
from ..core.timezone_utils import ensure_utc


@dataclass(frozen=True)
class CancellationOutcome:
    status: SessionStatus
    billing_status: BillingStatus
    within_window: bool
    invoice_triggered: bool
    hours_until_start: float
    cancel_reason: str
    cancelled_at: datetime


def resolve_cancellation(
    *,
    start_at: datetime,
    billing_status: BillingStatus,
    reason: CancellationReason,
    now: datetime,
    late_window_hours: int = 12,
) -> CancellationOutcome:
    """Compute the new status, billing status and audit note for a cancellation."""
    hours_until_start = (ensure_utc(start_at) - ensure_utc(now)).total_seconds() / 3600
    within_window = hours_until_start <= late_window_hours

    new_billing = billing_status
    invoice_triggered = False
    if within_window and billing_status is BillingStatus.NOT_BILLED:
        new_billing = BillingStatus.READY_TO_INVOICE
        invoice_triggered = True
    elif not within_window and billing_status is BillingStatus.INVOICED:
        new_billing = BillingStatus.CREDITED

    note = LATE_CANCELLATION_NOTE if within_window else EARLY_CANCELLATION_NOTE
    return CancellationOutcome(
        status=reason.cancelled_status,
        billing_status=new_billing,
        within_window=within_window,
        invoice_triggered=invoice_triggered,
        hours_until_start=hours_until_start,
        cancel_reason=note.format(hours=late_window_hours),
        cancelled_at=ensure_utc(now),
    )
