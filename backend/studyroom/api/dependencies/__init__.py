# backend/studyroom/api/dependencies/__init__.py
"""
FastAPI dependencies for the Study Room API.
"""

from .auth import get_admin_policy, get_authorization_context
from .database import get_db
from .services import get_session_service

__all__ = [
    "get_admin_policy",
    "get_authorization_context",
    "get_db",
    "get_session_service",
]
