from fastapi import APIRouter

from rank_tracker.api.v1 import health, keywords, tracker


def build_api_router() -> APIRouter:
    api_router = APIRouter()
    api_router.include_router(health.router)
    api_router.include_router(keywords.router)
    api_router.include_router(tracker.router)
    return api_router
