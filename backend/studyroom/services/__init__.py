# backend/studyroom/services/__init__.py
"""
Service layer for the Study Room platform.
"""

from .base import BaseService
from .conflict_checker import ConflictChecker
from .scheduling_validator import SchedulingValidator
from .series_shifter import RecurringSeriesShifter, SeriesShiftResult
from .session_service import SessionService

__all__ = [
    "BaseService",
    "ConflictChecker",
    "RecurringSeriesShifter",
    "SchedulingValidator",
    "SeriesShiftResult",
    "SessionService",
]
