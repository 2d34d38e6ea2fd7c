# backend/studyroom/repositories/factory.py
"""
Repository Factory for the Study Room platform.

Provides centralized creation of repository instances,
ensuring consistent initialization and dependency injection.
"""

from sqlalchemy.orm import Session

from .session_repository import SessionRepository


class RepositoryFactory:
    """
    Factory class for creating repository instances.

    Centralizes repository creation to ensure consistent initialization
    and makes it easy to swap implementations if needed.
    """

    @staticmethod
    def create_session_repository(db: Session) -> SessionRepository:
        """Create repository for tutoring session operations."""
        return SessionRepository(db)
