import json

import pytest
from sqlalchemy.exc import OperationalError

import rank_tracker.tasks.tasks as tasks_module
from rank_tracker.models.task_execution import TaskExecution
from rank_tracker.tasks.celery_app import celery_app


def test_beat_schedule_runs_scheduler_hourly_on_rank_queue():
    entry = celery_app.conf.beat_schedule["rank-scheduler-hourly"]
    assert entry["task"] == "rank.scheduler_run"
    assert entry["schedule"].minute == {0}
    assert celery_app.conf.task_routes["rank.*"] == {"queue": "rank_queue"}


def test_scheduler_task_records_success(db_session):
    result = tasks_module.rank_scheduler_run.delay()

    assert result.get()["status"] == "disabled"
    row = db_session.query(TaskExecution).one()
    assert row.task_name == "rank.scheduler_run"
    assert row.status == "success"
    assert row.trigger == "beat"
    assert row.finished_at is not None
    assert json.loads(row.result_json)["status"] == "disabled"


def test_scheduler_task_records_failure_payload(db_session, monkeypatch):
    def _boom(*_args, **_kwargs):
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    monkeypatch.setattr(tasks_module.scheduler_service, "run_scheduler", _boom)

    with pytest.raises(OperationalError):
        tasks_module.rank_scheduler_run.delay(trigger="manual")

    row = db_session.query(TaskExecution).one()
    payload = json.loads(row.result_json)
    assert row.status == "failed"
    assert row.trigger == "manual"
    assert payload["reason_code"] == "database_error"
    assert payload["retryable"] is False
    assert payload["error_type"] == "OperationalError"
    assert payload["dead_letter"] is True
