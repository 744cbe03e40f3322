import json
import logging
from datetime import UTC, datetime

import httpx
from celery import Task
from kombu.exceptions import KombuError
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from rank_tracker.db.session import SessionLocal
from rank_tracker.models.task_execution import TaskExecution
from rank_tracker.services import scheduler_service
from rank_tracker.services.quota_service import build_counter_store
from rank_tracker.services.run_lock import build_run_lock
from rank_tracker.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)

SCHEDULER_TASK_NAME = "rank.scheduler_run"

_RETRYABLE_ERRORS = (httpx.HTTPError, TimeoutError, ConnectionError, OSError, KombuError, RedisError)
_REASON_CODES = (
    (SQLAlchemyError, "database_error"),
    (RedisError, "redis_error"),
    (KombuError, "queue_broker_error"),
    (TimeoutError, "timeout"),
    (ConnectionError, "connection_error"),
)


class ExecutionRecorder:
    """Writes a ``TaskExecution`` row when a task starts and again when it ends."""

    def __init__(self, db: Session, task_name: str, trigger: str) -> None:
        self.db = db
        self.row = TaskExecution(task_name=task_name, trigger=trigger, status="running", result_json="{}")
        db.add(self.row)
        db.commit()

    def succeed(self, result: dict) -> None:
        self._close("success", result)

    def fail(self, task: Task, exc: Exception) -> None:
        self.db.rollback()
        self._close("failed", failure_payload(task, exc))

    def _close(self, status: str, result: dict) -> None:
        self.row.status = status
        self.row.result_json = json.dumps(result, default=str)
        self.row.finished_at = datetime.now(UTC)
        self.db.commit()


def _reason_code(exc: Exception) -> str:
    for exc_type, code in _REASON_CODES:
        if isinstance(exc, exc_type):
            return code
    return "internal_error"


def failure_payload(task: Task, exc: Exception) -> dict:
    current_retry = int(getattr(getattr(task, "request", None), "retries", 0) or 0)
    max_retries = getattr(task, "max_retries", None)
    return {
        "error": str(exc),
        "error_type": exc.__class__.__name__,
        "reason_code": _reason_code(exc),
        "retryable": isinstance(exc, _RETRYABLE_ERRORS),
        "current_retry": current_retry,
        "max_retries": max_retries,
        "dead_letter": bool(max_retries is not None and current_retry >= int(max_retries)),
    }


@celery_app.task(name=SCHEDULER_TASK_NAME, bind=True, max_retries=0)
def rank_scheduler_run(self, trigger: str = "beat") -> dict:
    db = SessionLocal()
    try:
        recorder = ExecutionRecorder(db, SCHEDULER_TASK_NAME, trigger)
        try:
            summary = scheduler_service.run_scheduler(
                db,
                counter_store=build_counter_store(),
                run_lock=build_run_lock(),
            )
        except Exception as exc:
            logger.exception("Rank scheduler task failed", extra={"reason_code": _reason_code(exc)})
            recorder.fail(self, exc)
            raise
        recorder.succeed(summary)
        return summary
    finally:
        db.close()
