"""
Repository layer for the Study Room platform.
"""

from .base_repository import BaseRepository
from .factory import RepositoryFactory
from .session_repository import SessionRepository

__all__ = ["BaseRepository", "RepositoryFactory", "SessionRepository"]
