"""
Per-tutor scheduling lock.

Serializes check-and-write on one tutor's calendar across API workers with a
Redis ``SET NX EX`` key. When Redis is unreachable the lock degrades to
pass-through; the in-transaction row locks still apply.
"""

from __future__ import annotations

from contextlib import contextmanager
import logging
import threading
import time
from typing import Iterator, Optional

from redis import Redis
from redis.exceptions import RedisError

from ..monitoring.prometheus_metrics import prometheus_metrics
from .config import settings

logger = logging.getLogger(__name__)

_SYNC_REDIS: Optional[Redis] = None
_SYNC_REDIS_LOCK = threading.Lock()


def _lock_key(tutor_id: str) -> str:
    return f"{settings.lock_namespace}:lock:tutor:{tutor_id}:calendar"


def _get_sync_redis() -> Optional[Redis]:
    global _SYNC_REDIS
    if _SYNC_REDIS is not None:
        return _SYNC_REDIS
    with _SYNC_REDIS_LOCK:
        if _SYNC_REDIS is not None:
            return _SYNC_REDIS
        try:
            client = Redis.from_url(
                settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=1,
            )
            client.ping()
        except RedisError as exc:
            logger.warning("scheduling_lock_redis_unavailable: %s", exc)
            return None
        _SYNC_REDIS = client
        return _SYNC_REDIS


def acquire_tutor_lock(tutor_id: str, ttl_s: Optional[int] = None) -> bool:
    """Try to take the tutor's calendar lock. True when acquired or when locking is unavailable."""
    if not settings.scheduling_lock_enabled:
        return True
    client = _get_sync_redis()
    if client is None:
        prometheus_metrics.record_scheduling_lock("acquire", "redis_unavailable")
        return True
    ttl = ttl_s or settings.scheduling_lock_ttl_seconds
    try:
        acquired = bool(client.set(_lock_key(tutor_id), str(time.time()), nx=True, ex=ttl))
    except RedisError as exc:
        prometheus_metrics.record_scheduling_lock("acquire", "error")
        logger.warning(
            "scheduling_lock_acquire_failed",
            extra={"tutor_id": tutor_id, "error": str(exc), "error_type": type(exc).__name__},
        )
        return True
    prometheus_metrics.record_scheduling_lock("acquire", "success" if acquired else "blocked")
    return acquired


def release_tutor_lock(tutor_id: str) -> None:
    if not settings.scheduling_lock_enabled:
        return
    client = _get_sync_redis()
    if client is None:
        return
    try:
        deleted = client.delete(_lock_key(tutor_id))
        prometheus_metrics.record_scheduling_lock("release", "success" if deleted else "not_found")
    except RedisError as exc:
        prometheus_metrics.record_scheduling_lock("release", "error")
        logger.warning(
            "scheduling_lock_release_failed",
            extra={"tutor_id": tutor_id, "error": str(exc), "error_type": type(exc).__name__},
        )


@contextmanager
def tutor_calendar_lock(tutor_id: str, ttl_s: Optional[int] = None) -> Iterator[bool]:
    """Hold the tutor's calendar lock for the body; yields whether it was acquired."""
    acquired = acquire_tutor_lock(tutor_id, ttl_s=ttl_s)
    try:
        yield acquired
    finally:
        if acquired:
            release_tutor_lock(tutor_id)
