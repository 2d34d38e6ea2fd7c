# backend/studyroom/repositories/base_repository.py
"""
Generic data access shared by the Study Room repositories.

Repositories only flush. Commits and rollbacks belong to the service that
owns the transaction.
"""

import logging
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session

from ..core.exceptions import RepositoryException
from ..database.session_utils import get_dialect_name

T = TypeVar("T")


class BaseRepository(Generic[T]):
    """Lookup, insert and in-place updates for one model keyed by ``id``."""

    def __init__(self, db: Session, model: Type[T]):
        self.db = db
        self.model = model
        self.logger = logging.getLogger(f"{__name__}.{model.__name__}")

    @property
    def dialect_name(self) -> str:
        return get_dialect_name(self.db)

    def _fail(self, action: str, exc: SQLAlchemyError) -> RepositoryException:
        self.logger.error(f"Failed to {action} {self.model.__name__}: {exc}")
        return RepositoryException(f"Failed to {action} {self.model.__name__}: {exc}")

    def get_by_id(self, id: str) -> Optional[T]:
        try:
            return self._build_query().filter(self.model.id == id).first()
        except SQLAlchemyError as exc:
            raise self._fail("load", exc) from exc

    def create(self, **fields: Any) -> T:
        """Add a row and flush so its generated id is available."""
        entity = self.model(**fields)
        try:
            self.db.add(entity)
            self.db.flush()
        except SQLAlchemyError as exc:
            raise self._fail("create", exc) from exc
        return entity

    def update(self, id: str, **fields: Any) -> Optional[T]:
        """Set the given columns on one row; None when the row does not exist."""
        entity = self.get_by_id(id)
        if entity is None:
            return None
        for key, value in fields.items():
            setattr(entity, key, value)
        try:
            self.db.flush()
        except SQLAlchemyError as exc:
            raise self._fail("update", exc) from exc
        return entity

    def bulk_update(self, updates: List[Dict[str, Any]]) -> int:
        """
        Apply a batch of ``{"id": ..., column: value}`` changes with one load and one flush.

        Returns:
            Number of rows found and changed
        """
        changes = {item["id"]: {k: v for k, v in item.items() if k != "id"} for item in updates}
        if not changes:
            return 0
        try:
            entities = self._build_query().filter(self.model.id.in_(list(changes))).all()
            for entity in entities:
                for key, value in changes[entity.id].items():
                    setattr(entity, key, value)
            self.db.flush()
        except SQLAlchemyError as exc:
            raise self._fail("bulk update", exc) from exc
        return len(entities)

    def _build_query(self) -> Query:
        return self.db.query(self.model)

    def _execute_query(self, query: Query) -> List[T]:
        try:
            return query.all()
        except SQLAlchemyError as exc:
            raise self._fail("query", exc) from exc
