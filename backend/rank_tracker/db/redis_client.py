from __future__ import annotations

import logging

import redis
from redis.exceptions import RedisError

from rank_tracker.core.config import get_settings

logger = logging.getLogger(__name__)


def get_redis_client() -> redis.Redis | None:
    settings = get_settings()
    if settings.app_env.lower() == "test" or not settings.redis_url.strip():
        return None
    client = redis.Redis.from_url(settings.redis_url)
    try:
        client.ping()
    except RedisError as exc:
        raise RuntimeError(f"Redis unavailable at {settings.redis_url}") from exc
    return client


def get_scheduler_redis_client() -> redis.Redis | None:
    """Client for quota counters and the run lock.

    Never pings: an unreachable Redis surfaces as ``RedisError`` on first use,
    where the quota tracker fails open and the run lock refuses the run.
    """
    settings = get_settings()
    if settings.app_env.lower() == "test":
        return None
    if not settings.redis_url.strip():
        logger.warning(
            "REDIS_URL is not set; quota counter and scheduler lock are local to this process",
            extra={"reason_code": "redis_not_configured"},
        )
        return None
    return redis.Redis.from_url(
        settings.redis_url,
        socket_connect_timeout=5,
        socket_timeout=5,
    )
