"""Time and identity helpers shared by the test modules."""

from datetime import datetime

import pytz

SYDNEY = pytz.timezone("Australia/Sydney")
TUTOR_ID = "tutor-alice"
OTHER_TUTOR_ID = "tutor-bob"
ADMIN_ID = "admin-carol"


def sydney(year: int, month: int, day: int, hour: int, minute: int = 0) -> datetime:
    """Aware UTC instant for a Sydney wall-clock time."""
    return SYDNEY.localize(datetime(year, month, day, hour, minute)).astimezone(pytz.UTC)
