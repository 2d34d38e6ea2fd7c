# backend/studyroom/services/base.py
"""
Shared plumbing for Study Room services: transactions, timing and logging.
"""

from contextlib import contextmanager
from functools import wraps
import logging
import time
from typing import Any, Callable, Iterator, TypeVar, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException, ServiceException
from ..monitoring.prometheus_metrics import prometheus_metrics

F = TypeVar("F", bound=Callable[..., Any])

SLOW_OPERATION_SECONDS = 1.0


class BaseService:
    """Owns the database session; repositories below it only flush."""

    def __init__(self, db: Session):
        self.db = db
        self.logger = logging.getLogger(self.__class__.__name__)

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        Commit when the block finishes, roll back on any error.

        Database failures surface as ``ServiceException``; domain errors
        raised inside the block propagate unchanged.
        """
        try:
            yield self.db
            self.db.commit()
        except (SQLAlchemyError, RepositoryException) as e:
            self.logger.error(f"Transaction failed: {e}")
            self.db.rollback()
            raise ServiceException(f"Database operation failed: {e}") from e
        except Exception:
            self.db.rollback()
            raise

    @staticmethod
    def measure_operation(operation_name: str) -> Callable[[F], F]:
        """Time a service method and record it in the Prometheus registry."""

        def decorator(func: F) -> F:
            @wraps(func)
            def wrapper(self: "BaseService", *args: Any, **kwargs: Any) -> Any:
                started = time.perf_counter()
                error_type = None
                try:
                    return func(self, *args, **kwargs)
                except Exception as e:
                    error_type = type(e).__name__
                    raise
                finally:
                    elapsed = time.perf_counter() - started
                    if elapsed > SLOW_OPERATION_SECONDS:
                        self.logger.warning(
                            f"Slow operation detected: {operation_name} took {elapsed:.2f}s"
                        )
                    prometheus_metrics.record_service_operation(
                        service=self.__class__.__name__,
                        operation=operation_name,
                        duration=elapsed,
                        status="error" if error_type else "success",
                        error_type=error_type,
                    )

            return cast(F, wrapper)

        return decorator

    def log_operation(self, operation: str, **context: Any) -> None:
        self.logger.info(f"Operation: {operation}", extra={"operation": operation, **context})
