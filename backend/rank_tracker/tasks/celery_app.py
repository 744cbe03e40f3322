from __future__ import annotations

import threading
import time

from celery import Celery
from celery.schedules import crontab
from celery.signals import task_postrun, task_prerun
from kombu import Queue

from rank_tracker.core.config import Settings, get_settings
from rank_tracker.core.metrics import celery_task_duration_seconds

RANK_QUEUE = "rank_queue"
DEFAULT_QUEUE = "default_queue"


class _TaskTimer:
    """Start times of in-flight tasks, keyed by Celery task id."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._started: dict[str, float] = {}

    def start(self, task_id: str) -> None:
        with self._lock:
            self._started[task_id] = time.perf_counter()

    def stop(self, task_id: str) -> float | None:
        with self._lock:
            started = self._started.pop(task_id, None)
        if started is None:
            return None
        return time.perf_counter() - started


_timer = _TaskTimer()


def queue_for_task(task_name: str | None) -> str:
    return RANK_QUEUE if (task_name or "").startswith("rank.") else DEFAULT_QUEUE


@task_prerun.connect
def _on_task_prerun(task_id=None, **_kwargs) -> None:
    if task_id:
        _timer.start(task_id)


@task_postrun.connect
def _on_task_postrun(task_id=None, task=None, **_kwargs) -> None:
    if not task_id:
        return
    elapsed = _timer.stop(task_id)
    if elapsed is None:
        return
    task_name = getattr(task, "name", None) or "unknown"
    celery_task_duration_seconds.labels(task_name=task_name, queue_name=queue_for_task(task_name)).observe(elapsed)


def _transport_config(settings: Settings) -> dict:
    if settings.app_env.lower() == "test":
        return {
            "broker_url": "memory://",
            "result_backend": "cache+memory://",
            "task_always_eager": True,
            "task_eager_propagates": True,
        }
    return {
        "broker_url": settings.celery_broker_url,
        "result_backend": settings.celery_result_backend,
        "task_always_eager": settings.celery_task_always_eager,
        "task_eager_propagates": settings.celery_task_eager_propagates,
    }


def create_celery_app(settings: Settings | None = None) -> Celery:
    settings = settings or get_settings()
    celery = Celery("rank_tracker")
    celery.conf.update(
        _transport_config(settings),
        worker_prefetch_multiplier=max(1, int(settings.celery_worker_prefetch_multiplier)),
        task_default_queue=DEFAULT_QUEUE,
        task_queues=(Queue(RANK_QUEUE), Queue(DEFAULT_QUEUE)),
        task_routes={"rank.*": {"queue": RANK_QUEUE}},
        # A run outliving the next beat tick is refused by the run lock.
        beat_schedule={
            "rank-scheduler-hourly": {
                "task": "rank.scheduler_run",
                "schedule": crontab(minute=settings.scheduler_beat_minute),
                "options": {"queue": RANK_QUEUE},
            },
        },
        timezone="UTC",
    )
    celery.autodiscover_tasks(["rank_tracker.tasks"])
    return celery


celery_app = create_celery_app()
