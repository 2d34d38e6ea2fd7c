"""Application-wide constants for the Study Room platform."""

from __future__ import annotations

BRAND_NAME = "Study Room"

API_TITLE = f"{BRAND_NAME} API"
API_VERSION = "1.0.0"
API_DESCRIPTION = "Session scheduling, conflict validation and cancellation billing for tutors and admins."

# Human-readable cancellation policy notes persisted on cancelled sessions
LATE_CANCELLATION_NOTE = "Session fee - late cancellation within {hours} hours (as per policy)"
EARLY_CANCELLATION_NOTE = (
    "Cancelled outside {hours} hours - credit/refund handled manually if applicable"
)

# Warning surfaced to admins who proceed through an overlap
OVERLAP_ADMIN_OVERRIDE = "OVERLAP_ADMIN_OVERRIDE"

# Calendar reads
MAX_CALENDAR_RANGE_DAYS = 62
DEFAULT_QUERY_LIMIT = 500

ULID_PATH_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"
