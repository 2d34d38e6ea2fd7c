# backend/studyroom/routes/v1/__init__.py
"""
API v1 routers.
"""

from . import health, prometheus, sessions

__all__ = ["health", "prometheus", "sessions"]
