from datetime import UTC, datetime, timedelta

from redis.exceptions import ConnectionError as RedisConnectionError

from rank_tracker.services.quota_service import (
    QUOTA_COUNTER_TTL_SECONDS,
    InMemoryCounterStore,
    QuotaTracker,
    RedisCounterStore,
    quota_key,
)
from rank_tracker.services.tracker_settings_service import TrackerSettings

NOW = datetime(2026, 10, 17, 9, 30, tzinfo=UTC)


class _BrokenStore:
    def get(self, key: str) -> int:
        raise RedisConnectionError("redis down")

    def incr_by(self, key: str, amount: int, *, ttl_seconds: int) -> int:
        raise RedisConnectionError("redis down")


class _FakePipeline:
    def __init__(self, calls: list):
        self.calls = calls

    def incrby(self, key, amount):
        self.calls.append(("incrby", key, amount))

    def expire(self, key, ttl):
        self.calls.append(("expire", key, ttl))

    def execute(self):
        return [7, True]


class _FakeRedis:
    def __init__(self):
        self.calls = []

    def get(self, key):
        return b"4"

    def pipeline(self):
        return _FakePipeline(self.calls)


def test_quota_key_uses_utc_day():
    assert quota_key(NOW) == "rank_tracker:quota:used:20261017"


def test_remaining_subtracts_used_today():
    store = InMemoryCounterStore()
    tracker = QuotaTracker(store, now=NOW)
    tracker.consume(3)
    tracker.consume(2)

    assert tracker.used_today() == 5
    assert tracker.remaining(TrackerSettings(daily_limit=8)) == 3
    assert tracker.remaining(TrackerSettings(daily_limit=4)) == 0


def test_consume_zero_or_negative_is_noop():
    store = InMemoryCounterStore()
    tracker = QuotaTracker(store, now=NOW)
    tracker.consume(0)
    tracker.consume(-2)
    assert tracker.used_today() == 0


def test_unreadable_counter_fails_open(caplog):
    tracker = QuotaTracker(_BrokenStore(), now=NOW)

    assert tracker.used_today() == 0
    assert tracker.remaining(TrackerSettings(daily_limit=10)) == 10
    tracker.consume(2)
    assert "Quota counter unreadable" in caplog.text
    assert "Quota counter update failed" in caplog.text


def test_redis_counter_store_increments_and_refreshes_expiry():
    client = _FakeRedis()
    store = RedisCounterStore(client)

    assert store.get("k") == 4
    assert store.incr_by("k", 3, ttl_seconds=QUOTA_COUNTER_TTL_SECONDS) == 7
    assert client.calls == [("incrby", "k", 3), ("expire", "k", 86400)]


def test_describe_reports_used_remaining_and_limit():
    store = InMemoryCounterStore()
    store.set(quota_key(NOW), 40)

    payload = QuotaTracker(store, now=NOW).describe(TrackerSettings(daily_limit=100))

    assert payload == {"day": "20261017", "used_today": 40, "remaining": 60, "daily_limit": 100}


def test_in_memory_store_forgets_previous_days():
    store = InMemoryCounterStore()
    QuotaTracker(store, now=NOW - timedelta(days=2)).consume(7)
    QuotaTracker(store, now=NOW - timedelta(days=1)).consume(4)
    today = QuotaTracker(store, now=NOW)
    today.consume(1)
    today.consume(2)

    assert store.get(quota_key(NOW - timedelta(days=1))) == 0
    assert store._values == {quota_key(NOW): 3}
