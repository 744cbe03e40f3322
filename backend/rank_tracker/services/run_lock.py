from __future__ import annotations

import threading
from typing import Protocol

from rank_tracker.core.config import get_settings


class RunLock(Protocol):
    def acquire(self, *, ttl_seconds: int) -> bool:
        ...

    def release(self) -> None:
        ...


class RedisRunLock:
    """Non-blocking Redis lock; ``RedisError`` propagates to the caller."""

    def __init__(self, client, *, key: str) -> None:
        self.client = client
        self.key = key
        self._lock = None

    def acquire(self, *, ttl_seconds: int) -> bool:
        # Acquire and release may run on different threads (FastAPI threadpool).
        lock = self.client.lock(self.key, timeout=ttl_seconds, blocking=False, thread_local=False)
        if not lock.acquire(blocking=False):
            return False
        self._lock = lock
        return True

    def release(self) -> None:
        lock, self._lock = self._lock, None
        if lock is None:
            return
        lock.release()


class LocalRunLock:
    def __init__(self, lock: threading.Lock | None = None) -> None:
        self._mutex = lock or threading.Lock()
        self._held = False

    def acquire(self, *, ttl_seconds: int) -> bool:  # noqa: ARG002
        acquired = self._mutex.acquire(blocking=False)
        self._held = acquired
        return acquired

    def release(self) -> None:
        if not self._held:
            return
        self._held = False
        self._mutex.release()


_process_mutex = threading.Lock()


def lock_ttl_seconds(batch_size: int) -> int:
    settings = get_settings()
    return int(batch_size * settings.rank_provider_timeout_seconds) + int(settings.scheduler_lock_grace_seconds)


def build_run_lock() -> RunLock:
    from rank_tracker.db.redis_client import get_scheduler_redis_client

    client = get_scheduler_redis_client()
    if client is None:
        return LocalRunLock(_process_mutex)
    return RedisRunLock(client, key=get_settings().scheduler_lock_key)
