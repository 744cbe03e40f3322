from __future__ import annotations

import logging
import time
from datetime import UTC, datetime

from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from rank_tracker.core.config import get_settings
from rank_tracker.core.crypto import CredentialCryptoError
from rank_tracker.core.metrics import (
    history_rows_pruned_total,
    provider_calls_total,
    scheduler_run_duration_seconds,
    scheduler_runs_total,
)
from rank_tracker.models.keyword import TrackedKeyword
from rank_tracker.providers.errors import ProviderError, ProviderNotConfiguredError
from rank_tracker.providers.rank import fetch_keyword_position, get_rank_provider
from rank_tracker.services import history_service, keyword_service
from rank_tracker.services.quota_service import CounterStore, QuotaTracker
from rank_tracker.services.run_lock import RunLock, lock_ttl_seconds
from rank_tracker.services.tracker_settings_service import load_tracker_settings

logger = logging.getLogger(__name__)

STATUS_DISABLED = "disabled"
STATUS_MISCONFIGURED = "misconfigured"
STATUS_LOCK_UNAVAILABLE = "lock_unavailable"
STATUS_LOCKED = "locked"
STATUS_QUOTA_EXHAUSTED = "quota_exhausted"
STATUS_IDLE = "idle"
STATUS_COMPLETED = "completed"

# Per-keyword failures kept in a run summary.
MAX_REPORTED_ERRORS = 20


def _summary(status: str, **counts) -> dict:
    payload = {
        "status": status,
        "selected": 0,
        "processed": 0,
        "succeeded": 0,
        "failed": 0,
        "persistence_failed": 0,
        "consumed": 0,
        "pruned": 0,
    }
    payload.update(counts)
    return payload


def _finish(summary: dict, started: float) -> dict:
    scheduler_runs_total.labels(status=summary["status"]).inc()
    scheduler_run_duration_seconds.observe(time.perf_counter() - started)
    logger.info(
        "Rank scheduler run finished",
        extra={"run_status": summary["status"], "consumed": summary["consumed"]},
    )
    return summary


def run_scheduler(db: Session, *, counter_store: CounterStore, run_lock: RunLock, now: datetime | None = None) -> dict:
    """Check the most overdue active keywords against the configured provider.

    One pass per call: bounded by the batch size and the remaining daily
    quota, one provider call per keyword, one commit per keyword. Returns a
    summary dict whose ``status`` says how the run ended.
    """
    started = time.perf_counter()
    now = now or datetime.now(UTC)
    today = now.astimezone(UTC).date() if now.tzinfo is not None else now.date()
    app_settings = get_settings()

    try:
        tracker_settings = load_tracker_settings(db)
    except CredentialCryptoError as exc:
        logger.error("Stored provider credential is unusable", extra={"reason_code": exc.reason_code})
        return _finish(_summary(STATUS_MISCONFIGURED, reason_code=exc.reason_code), started)

    if not tracker_settings.enabled:
        return _finish(_summary(STATUS_DISABLED), started)
    if not tracker_settings.has_credential:
        logger.warning("Rank provider enabled without a credential", extra={"reason_code": "credential_missing"})
        return _finish(_summary(STATUS_MISCONFIGURED, reason_code="credential_missing"), started)
    try:
        provider = get_rank_provider(tracker_settings)
    except ProviderNotConfiguredError as exc:
        logger.warning(str(exc), extra={"reason_code": exc.reason_code, "error_code": exc.error_code})
        return _finish(_summary(STATUS_MISCONFIGURED, reason_code=exc.reason_code), started)

    batch_size = tracker_settings.effective_batch_size
    try:
        acquired = run_lock.acquire(ttl_seconds=lock_ttl_seconds(batch_size))
    except RedisError as exc:
        logger.error("Scheduler lock unavailable", extra={"reason_code": "lock_unavailable", "error_code": exc.__class__.__name__})
        return _finish(_summary(STATUS_LOCK_UNAVAILABLE), started)
    if not acquired:
        logger.info("Another scheduler run holds the lock", extra={"run_status": STATUS_LOCKED})
        return _finish(_summary(STATUS_LOCKED), started)

    try:
        summary = _run_locked(
            db,
            provider=provider,
            tracker_settings=tracker_settings,
            quota=QuotaTracker(counter_store, now=now),
            batch_size=batch_size,
            now=now,
            today=today,
            fallback_host=app_settings.site_host or None,
            retention_months=app_settings.history_retention_months,
        )
    finally:
        try:
            run_lock.release()
        except RedisError as exc:
            logger.warning("Scheduler lock release failed", extra={"error_code": exc.__class__.__name__})
    return _finish(summary, started)


def _run_locked(
    db: Session,
    *,
    provider,
    tracker_settings,
    quota: QuotaTracker,
    batch_size: int,
    now: datetime,
    today,
    fallback_host: str | None,
    retention_months: int,
) -> dict:
    daily_limit = int(tracker_settings.daily_limit)
    used_before = quota.used_today()
    limit = min(batch_size, max(0, daily_limit - used_before))
    if limit <= 0:
        return _summary(STATUS_QUOTA_EXHAUSTED)

    keywords = keyword_service.select_due_keywords(db, limit)
    if not keywords:
        return _summary(STATUS_IDLE)

    counts = {"selected": len(keywords), "processed": 0, "succeeded": 0, "failed": 0, "persistence_failed": 0}
    consumed = 0
    errors: list[dict] = []
    try:
        for item in keywords:
            counts["processed"] += 1
            try:
                result = fetch_keyword_position(
                    provider,
                    tracker_settings,
                    item.keyword,
                    item.target_url,
                    item.search_engine,
                    fallback_host,
                )
            except ProviderError as exc:
                counts["failed"] += 1
                if len(errors) < MAX_REPORTED_ERRORS:
                    errors.append({"keyword_id": item.id, **exc.as_payload()})
                if exc.remote_call_made:
                    consumed += 1
                provider_calls_total.labels(provider=provider.name, outcome=exc.reason_code).inc()
                logger.warning(
                    "Rank lookup failed",
                    extra={"keyword_id": item.id, "error_code": exc.error_code, "reason_code": exc.reason_code},
                )
                if used_before + consumed >= daily_limit:
                    break
                continue

            consumed += 1
            provider_calls_total.labels(provider=provider.name, outcome="success").inc()
            if _persist_result(db, item.id, result, today=today, now=now):
                counts["succeeded"] += 1
            else:
                counts["persistence_failed"] += 1
            if used_before + consumed >= daily_limit:
                break
    finally:
        quota.consume(consumed)

    pruned = 0
    try:
        pruned = history_service.prune_history(db, today, retention_months)
        history_rows_pruned_total.inc(pruned)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Rank history pruning failed", extra={"reason_code": exc.__class__.__name__})

    return _summary(STATUS_COMPLETED, consumed=consumed, pruned=pruned, errors=errors, **counts)


def _persist_result(db: Session, keyword_id: int, result, *, today, now: datetime) -> bool:
    """Record one lookup and fold it into its keyword. False when nothing was written."""
    try:
        keyword = db.get(TrackedKeyword, keyword_id)
        if keyword is None:
            logger.warning("Keyword removed during the run", extra={"keyword_id": keyword_id, "reason_code": "keyword_deleted"})
            return False
        history_service.append_observation(db, keyword_id, today, result.position, result.url_found)
        keyword_service.apply_observation(keyword, result.position, now)
        db.commit()
        return True
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(
            "Rank observation could not be persisted",
            extra={"keyword_id": keyword_id, "error_code": "PersistenceError", "reason_code": exc.__class__.__name__},
        )
        return False
