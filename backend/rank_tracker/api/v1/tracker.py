import json

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from rank_tracker.api.deps import require_admin_token
from rank_tracker.api.response import envelope
from rank_tracker.core.crypto import CredentialCryptoError
from rank_tracker.db.session import get_db
from rank_tracker.models.task_execution import TaskExecution
from rank_tracker.schemas.tracker import TrackerSettingsIn
from rank_tracker.services.quota_service import QuotaTracker, build_counter_store
from rank_tracker.services.tracker_settings_service import (
    TrackerSettingsError,
    describe_tracker_settings,
    load_tracker_settings,
    update_tracker_settings,
)
from rank_tracker.tasks.tasks import SCHEDULER_TASK_NAME, rank_scheduler_run

router = APIRouter(prefix="/tracker", tags=["tracker"])


def _load_settings_or_409(db: Session):
    try:
        return load_tracker_settings(db)
    except CredentialCryptoError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"message": str(exc), "reason_code": exc.reason_code},
        ) from exc


@router.get("/settings", dependencies=[Depends(require_admin_token)])
def get_tracker_settings(request: Request, db: Session = Depends(get_db)) -> dict:
    return envelope(request, describe_tracker_settings(_load_settings_or_409(db)))


@router.put("/settings", dependencies=[Depends(require_admin_token)])
def put_tracker_settings(request: Request, body: TrackerSettingsIn, db: Session = Depends(get_db)) -> dict:
    try:
        saved = update_tracker_settings(
            db,
            provider=body.provider,
            api_key=body.api_key,
            clear_api_key=body.clear_api_key,
            custom_url=body.custom_url,
            location=body.location,
            language=body.language,
            daily_limit=body.daily_limit,
            batch_size=body.batch_size,
        )
    except TrackerSettingsError as exc:
        raise HTTPException(
            status_code=exc.status_code,
            detail={"message": str(exc), "reason_code": exc.reason_code},
        ) from exc
    except CredentialCryptoError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"message": str(exc), "reason_code": exc.reason_code},
        ) from exc
    return envelope(request, describe_tracker_settings(saved))


@router.get("/quota")
def get_quota(request: Request, db: Session = Depends(get_db)) -> dict:
    tracker_settings = _load_settings_or_409(db)
    return envelope(request, QuotaTracker(build_counter_store()).describe(tracker_settings))


@router.post("/run", dependencies=[Depends(require_admin_token)])
def trigger_run(request: Request) -> dict:
    result = rank_scheduler_run.delay(trigger="manual")
    payload: dict = {"task_id": result.id, "status": "queued"}
    if result.ready():
        payload = {"task_id": result.id, **result.get()}
    return envelope(request, payload)


@router.get("/runs")
def list_runs(request: Request, limit: int = Query(default=20, ge=1, le=100), db: Session = Depends(get_db)) -> dict:
    rows = db.execute(
        select(TaskExecution)
        .where(TaskExecution.task_name == SCHEDULER_TASK_NAME)
        .order_by(TaskExecution.started_at.desc())
        .limit(limit)
    ).scalars()
    return envelope(
        request,
        {
            "items": [
                {
                    "id": row.id,
                    "trigger": row.trigger,
                    "status": row.status,
                    "result": json.loads(row.result_json or "{}"),
                    "started_at": row.started_at.isoformat() if row.started_at else None,
                    "finished_at": row.finished_at.isoformat() if row.finished_at else None,
                }
                for row in rows
            ]
        },
    )
