"""
Database engine, session factory, and metadata shared across the application.
"""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Any, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeMeta, Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from ..core.config import settings

logger = logging.getLogger(__name__)

_DEFAULT_POOL_KWARGS: dict[str, Any] = {
    "pool_size": 5,
    "max_overflow": 10,
    "pool_timeout": 5,
    "pool_recycle": 300,
    "pool_pre_ping": True,
}


def _build_engine_kwargs(db_url: str) -> dict[str, Any]:
    """Engine options per dialect: SQLite gets a thread-shareable connection, others a pool."""

    kwargs: dict[str, Any] = {"echo": settings.database_echo, "future": True}
    if db_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in db_url or db_url.rstrip("/") == "sqlite:":
            kwargs["poolclass"] = StaticPool
        return kwargs

    kwargs.update(_DEFAULT_POOL_KWARGS)
    return kwargs


db_url = settings.database_url
engine: Engine = create_engine(db_url, **_build_engine_kwargs(db_url))


@event.listens_for(engine, "connect")
def receive_connect(dbapi_connection: Any, connection_record: Any) -> None:
    connection_record.info["connect_time"] = datetime.now()
    logger.debug("Database connection established")


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)

Base: DeclarativeMeta = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """Get database session with proper cleanup."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db(bind: Engine | None = None) -> None:
    """Create tables for all registered models."""
    from .. import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database tables ensured")


__all__ = [
    "Base",
    "SessionLocal",
    "engine",
    "get_db",
    "init_db",
]
