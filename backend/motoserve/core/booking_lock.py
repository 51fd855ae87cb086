from __future__ import annotations

from contextlib import contextmanager
import logging
import threading
import time
from typing import Iterator, Optional, Set

from redis import Redis

from ..monitoring.prometheus_metrics import prometheus_metrics
from .config import settings

logger = logging.getLogger(__name__)

_SYNC_REDIS: Optional[Redis] = None
_SYNC_REDIS_LOCK = threading.Lock()

# In-process fallback used when no Redis is configured or it cannot be reached.
# Holds only the booking ids currently locked; entries leave on release.
_LOCAL_HELD: Set[str] = set()
_LOCAL_HELD_GUARD = threading.Lock()


def _lock_key(booking_id: str) -> str:
    return f"booking:{booking_id}:mutex"


def _namespaced_key(key: str) -> str:
    return f"{settings.lock_namespace}:lock:{key}"


def _get_sync_redis() -> Optional[Redis]:
    global _SYNC_REDIS
    if not settings.redis_url:
        return None
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
            )
            client.ping()
        except Exception as exc:
            logger.warning("booking_lock_sync_redis_unavailable: %s", exc)
            return None
        _SYNC_REDIS = client
        return _SYNC_REDIS


def _acquire_local(booking_id: str) -> bool:
    with _LOCAL_HELD_GUARD:
        acquired = booking_id not in _LOCAL_HELD
        if acquired:
            _LOCAL_HELD.add(booking_id)
    prometheus_metrics.record_booking_lock("acquire", "success" if acquired else "blocked")
    return acquired


def _release_local(booking_id: str) -> None:
    with _LOCAL_HELD_GUARD:
        held = booking_id in _LOCAL_HELD
        _LOCAL_HELD.discard(booking_id)
    if held:
        prometheus_metrics.record_booking_lock("release", "success")
    else:
        prometheus_metrics.record_booking_lock("release", "not_found")


def _acquire(booking_id: str, ttl_s: Optional[int]) -> Optional[str]:
    """Acquire the lock and return the backend that holds it, or None when blocked."""
    ttl = ttl_s or settings.booking_lock_ttl_seconds
    client = _get_sync_redis()
    if client is None:
        return "local" if _acquire_local(booking_id) else None
    try:
        acquired = bool(
            client.set(_namespaced_key(_lock_key(booking_id)), str(time.time()), nx=True, ex=ttl)
        )
    except Exception as exc:
        prometheus_metrics.record_booking_lock("acquire", "error")
        logger.warning(
            "booking_lock_sync_failed",
            extra={
                "booking_id": booking_id,
                "error": str(exc),
                "error_type": type(exc).__name__,
            },
        )
        return "local" if _acquire_local(booking_id) else None
    prometheus_metrics.record_booking_lock("acquire", "success" if acquired else "blocked")
    return "redis" if acquired else None


def _release(booking_id: str, backend: str) -> None:
    if backend == "local":
        _release_local(booking_id)
        return
    client = _get_sync_redis()
    if client is None:
        prometheus_metrics.record_booking_lock("release", "redis_unavailable")
        return
    try:
        deleted = client.delete(_namespaced_key(_lock_key(booking_id)))
        prometheus_metrics.record_booking_lock("release", "success" if deleted else "not_found")
    except Exception as exc:
        prometheus_metrics.record_booking_lock("release", "error")
        logger.warning(
            "booking_lock_sync_release_failed",
            extra={
                "booking_id": booking_id,
                "error": str(exc),
                "error_type": type(exc).__name__,
            },
        )


@contextmanager
def booking_lock_sync(booking_id: str, ttl_s: Optional[int] = None) -> Iterator[bool]:
    """Hold the per-booking mutex for the duration of the block; yields False when blocked."""
    backend = _acquire(booking_id, ttl_s)
    try:
        yield backend is not None
    finally:
        if backend is not None:
            _release(booking_id, backend)
