from fastapi import APIRouter, Request
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from rank_tracker.api.response import envelope
from rank_tracker.db.redis_client import get_scheduler_redis_client
from rank_tracker.db.session import SessionLocal

router = APIRouter(tags=['ops'])


def _db_connected() -> bool:
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError:
        return False
    finally:
        db.close()


def _redis_status() -> str:
    client = get_scheduler_redis_client()
    if client is None:
        return 'not_configured'
    try:
        return 'ok' if client.ping() else 'unavailable'
    except RedisError:
        return 'unavailable'


@router.get('/health')
def health(request: Request) -> dict:
    return envelope(request, {'status': 'ok'})


@router.get('/health/readiness')
def readiness(request: Request) -> dict:
    db_ok = _db_connected()
    redis_status = _redis_status()
    overall_ok = db_ok and redis_status != 'unavailable'
    return envelope(
        request,
        {
            'status': 'ready' if overall_ok else 'degraded',
            'dependencies': {
                'database': db_ok,
                'redis': redis_status,
            },
        },
    )
