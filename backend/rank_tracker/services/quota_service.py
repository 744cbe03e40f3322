from __future__ import annotations

import logging
import threading
from datetime import UTC, datetime
from typing import Protocol

from redis.exceptions import RedisError

from rank_tracker.core.config import get_settings
from rank_tracker.services.tracker_settings_service import TrackerSettings

logger = logging.getLogger(__name__)

QUOTA_COUNTER_TTL_SECONDS = 86400


class CounterStore(Protocol):
    def get(self, key: str) -> int:
        ...

    def incr_by(self, key: str, amount: int, *, ttl_seconds: int) -> int:
        ...


class RedisCounterStore:
    def __init__(self, client) -> None:
        self.client = client

    def get(self, key: str) -> int:
        raw = self.client.get(key)
        if raw is None:
            return 0
        return int(raw)

    def incr_by(self, key: str, amount: int, *, ttl_seconds: int) -> int:
        pipeline = self.client.pipeline()
        pipeline.incrby(key, amount)
        pipeline.expire(key, ttl_seconds)
        count, _ = pipeline.execute()
        return int(count)


class InMemoryCounterStore:
    """Process-local counters for tests and single-process local runs."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._values: dict[str, int] = {}

    def get(self, key: str) -> int:
        with self._lock:
            return self._values.get(key, 0)

    def incr_by(self, key: str, amount: int, *, ttl_seconds: int) -> int:  # noqa: ARG002
        with self._lock:
            if key not in self._values:
                self._drop_other_days(key)
            self._values[key] = self._values.get(key, 0) + amount
            return self._values[key]

    def _drop_other_days(self, key: str) -> None:
        # Keys are "<prefix>:<YYYYMMDD>"; a new day retires the previous ones.
        prefix = key.rsplit(":", 1)[0] + ":"
        for stale in [name for name in self._values if name.startswith(prefix)]:
            del self._values[stale]

    def set(self, key: str, value: int) -> None:
        with self._lock:
            self._values[key] = int(value)


def quota_key(now: datetime | None = None) -> str:
    current = now or datetime.now(UTC)
    if current.tzinfo is not None:
        current = current.astimezone(UTC)
    return f"{get_settings().quota_key_prefix}:{current.strftime('%Y%m%d')}"


class QuotaTracker:
    """Daily provider call budget keyed by UTC date.

    Reads fail open: an unreadable counter counts as zero used. Writes that
    fail are logged and dropped.
    """

    def __init__(self, store: CounterStore, *, now: datetime | None = None) -> None:
        self.store = store
        self.now = now

    @property
    def key(self) -> str:
        return quota_key(self.now)

    def used_today(self) -> int:
        try:
            return max(0, int(self.store.get(self.key)))
        except (RedisError, ValueError) as exc:
            logger.warning(
                "Quota counter unreadable; treating as zero used",
                extra={"reason_code": "quota_read_failed", "error_code": exc.__class__.__name__},
            )
            return 0

    def remaining(self, settings: TrackerSettings) -> int:
        return max(0, int(settings.daily_limit) - self.used_today())

    def consume(self, amount: int) -> None:
        if amount <= 0:
            return
        try:
            self.store.incr_by(self.key, int(amount), ttl_seconds=QUOTA_COUNTER_TTL_SECONDS)
        except RedisError as exc:
            logger.error(
                "Quota counter update failed",
                extra={"reason_code": "quota_write_failed", "error_code": exc.__class__.__name__, "consumed": amount},
            )

    def describe(self, settings: TrackerSettings) -> dict:
        used = self.used_today()
        return {
            "day": self.key.rsplit(":", 1)[-1],
            "used_today": used,
            "remaining": max(0, int(settings.daily_limit) - used),
            "daily_limit": int(settings.daily_limit),
        }


_local_counter_store = InMemoryCounterStore()


def build_counter_store() -> CounterStore:
    from rank_tracker.db.redis_client import get_scheduler_redis_client

    client = get_scheduler_redis_client()
    if client is None:
        return _local_counter_store
    return RedisCounterStore(client)
