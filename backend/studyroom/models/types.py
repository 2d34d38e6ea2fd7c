# backend/studyroom/models/types.py
"""
Custom SQLAlchemy types that work across different database backends.
"""

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import DateTime, TypeDecorator

if TYPE_CHECKING:
    from sqlalchemy.sql.type_api import TypeDecorator as _TypeDecorator

    TypeDecoratorProtocol = _TypeDecorator[Any]
else:
    TypeDecoratorProtocol = TypeDecorator


class UTCDateTime(TypeDecoratorProtocol):
    """
    Timezone-aware UTC timestamps on every backend.

    PostgreSQL keeps the offset natively; SQLite stores naive UTC, so values
    are normalized on the way in and re-tagged as UTC on the way out.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect: Any) -> Optional[datetime]:
        if value is None:
            return value
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: Optional[datetime], dialect: Any) -> Optional[datetime]:
        if value is None:
            return value
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
