from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from rank_tracker.api.deps import hold_scheduler_lock, require_admin_token
from rank_tracker.api.response import envelope
from rank_tracker.db.session import get_db
from rank_tracker.schemas.keywords import KeywordBulkIn, KeywordPatchIn, RankObservationOut, TrackedKeywordOut
from rank_tracker.services import history_service, keyword_service

router = APIRouter(prefix="/keywords", tags=["keywords"])


def _keyword_out(row) -> dict:
    return TrackedKeywordOut.model_validate(row).model_dump(mode="json")


@router.post("/bulk", dependencies=[Depends(require_admin_token)])
def add_keywords(request: Request, body: KeywordBulkIn, db: Session = Depends(get_db)) -> dict:
    inserted = keyword_service.add_keywords(
        db,
        body.keywords,
        target_url=body.target_url,
        search_engine=body.search_engine,
    )
    return envelope(request, {"inserted": inserted})


@router.get("")
def list_keywords(request: Request, page: int = Query(default=1, ge=1), db: Session = Depends(get_db)) -> dict:
    listing = keyword_service.list_keywords(db, page=page)
    return envelope(
        request,
        {
            "items": [_keyword_out(row) for row in listing["items"]],
            "page": listing["page"],
            "per_page": listing["per_page"],
            "total": listing["total"],
            "total_pages": listing["total_pages"],
        },
    )


@router.get("/{keyword_id}/history")
def keyword_history(request: Request, keyword_id: int, db: Session = Depends(get_db)) -> dict:
    keyword = keyword_service.get_keyword_or_404(db, keyword_id)
    rows = history_service.list_history(db, keyword.id)
    return envelope(
        request,
        {
            "keyword": _keyword_out(keyword),
            "items": [RankObservationOut.model_validate(row).model_dump(mode="json") for row in rows],
        },
    )


@router.patch("/{keyword_id}", dependencies=[Depends(require_admin_token), Depends(hold_scheduler_lock)])
def update_keyword(request: Request, keyword_id: int, body: KeywordPatchIn, db: Session = Depends(get_db)) -> dict:
    keyword = keyword_service.set_active(db, keyword_id, body.active)
    return envelope(request, _keyword_out(keyword))


@router.delete("/{keyword_id}", dependencies=[Depends(require_admin_token), Depends(hold_scheduler_lock)])
def delete_keyword(request: Request, keyword_id: int, db: Session = Depends(get_db)) -> dict:
    keyword_service.delete_keyword(db, keyword_id)
    return envelope(request, {"id": keyword_id, "deleted": True})
