"""
Database models for the Study Room platform.
"""

from .session import TutoringSession

__all__ = ["TutoringSession"]
