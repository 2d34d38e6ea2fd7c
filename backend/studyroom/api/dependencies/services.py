# backend/studyroom/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.
"""

from fastapi import Depends
from sqlalchemy.orm import Session

from ...services.session_service import SessionService
from .database import get_db


def get_session_service(db: Session = Depends(get_db)) -> SessionService:
    """
    Get session service instance.

    Args:
        db: Database session

    Returns:
        SessionService instance
    """
    return SessionService(db)
