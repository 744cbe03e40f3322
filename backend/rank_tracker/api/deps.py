import hmac
import logging
from collections.abc import Iterator

from fastapi import Header, HTTPException, status
from redis.exceptions import RedisError

from rank_tracker.core.config import get_settings
from rank_tracker.services.run_lock import build_run_lock

logger = logging.getLogger(__name__)


def require_admin_token(x_admin_token: str | None = Header(default=None, alias="X-Admin-Token")) -> None:
    expected = get_settings().admin_api_token.strip()
    if not expected:
        return
    if not x_admin_token or not hmac.compare_digest(x_admin_token, expected):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"message": "Forbidden", "reason_code": "admin_token_invalid"},
        )


# Long enough for a single keyword write.
KEYWORD_WRITE_LOCK_TTL_SECONDS = 30


def hold_scheduler_lock() -> Iterator[None]:
    """Serialize keyword edits with scheduler runs; refuse while a run is active."""
    lock = build_run_lock()
    try:
        acquired = lock.acquire(ttl_seconds=KEYWORD_WRITE_LOCK_TTL_SECONDS)
    except RedisError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"message": "Scheduler lock unavailable", "reason_code": "lock_unavailable"},
        ) from exc
    if not acquired:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"message": "A rank scheduler run is in progress; retry shortly.", "reason_code": "scheduler_running"},
        )
    try:
        yield
    finally:
        try:
            lock.release()
        except RedisError:
            logger.warning("Keyword write lock release failed", extra={"reason_code": "lock_release_failed"})
