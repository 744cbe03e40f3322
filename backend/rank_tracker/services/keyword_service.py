from __future__ import annotations

import math
import re
from datetime import UTC, datetime
from typing import NamedTuple

from fastapi import HTTPException, status
from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from rank_tracker.models.keyword import RankObservation, TrackedKeyword

KEYWORDS_PER_PAGE = 100
DEFAULT_SEARCH_ENGINE = "google.com"

_LINE_SPLIT_RE = re.compile(r"\r\n|\r|\n")
_TAG_RE = re.compile(r"<[^>]*>")


def parse_keyword_lines(raw_text: str) -> list[str]:
    keywords = []
    for line in _LINE_SPLIT_RE.split(raw_text or ""):
        cleaned = _TAG_RE.sub("", line).strip()
        if cleaned:
            keywords.append(cleaned)
    return keywords


def add_keywords(db: Session, raw_text: str, target_url: str | None = None, search_engine: str | None = None) -> int:
    """Insert one tracked keyword per non-blank line and return the inserted count."""
    keywords = parse_keyword_lines(raw_text)
    if not keywords:
        return 0
    target = (target_url or "").strip() or None
    engine = (search_engine or "").strip() or DEFAULT_SEARCH_ENGINE
    now = datetime.now(UTC)
    db.add_all(
        [
            TrackedKeyword(
                keyword=keyword,
                target_url=target,
                search_engine=engine,
                active=True,
                created_at=now,
            )
            for keyword in keywords
        ]
    )
    db.commit()
    return len(keywords)


class DueKeyword(NamedTuple):
    """Detached view of a keyword picked for a run."""

    id: int
    keyword: str
    target_url: str | None
    search_engine: str


def select_due_keywords(db: Session, limit: int) -> list[DueKeyword]:
    if limit <= 0:
        return []
    rows = db.execute(
        select(TrackedKeyword.id, TrackedKeyword.keyword, TrackedKeyword.target_url, TrackedKeyword.search_engine)
        .where(TrackedKeyword.active.is_(True))
        .order_by(
            TrackedKeyword.last_checked_at.is_(None).desc(),
            TrackedKeyword.last_checked_at.asc(),
            TrackedKeyword.id.asc(),
        )
        .limit(limit)
    )
    return [DueKeyword(*row) for row in rows]


def list_keywords(db: Session, page: int = 1, per_page: int = KEYWORDS_PER_PAGE) -> dict:
    page = max(1, int(page))
    total = int(db.execute(select(func.count()).select_from(TrackedKeyword)).scalar_one())
    rows = list(
        db.execute(
            select(TrackedKeyword)
            .order_by(TrackedKeyword.created_at.desc(), TrackedKeyword.id.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        ).scalars()
    )
    return {
        "items": rows,
        "page": page,
        "per_page": per_page,
        "total": total,
        "total_pages": math.ceil(total / per_page) if total else 0,
    }


def get_keyword_or_404(db: Session, keyword_id: int) -> TrackedKeyword:
    keyword = db.get(TrackedKeyword, keyword_id)
    if keyword is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Keyword not found")
    return keyword


def set_active(db: Session, keyword_id: int, active: bool) -> TrackedKeyword:
    keyword = get_keyword_or_404(db, keyword_id)
    keyword.active = bool(active)
    db.commit()
    db.refresh(keyword)
    return keyword


def delete_keyword(db: Session, keyword_id: int) -> None:
    keyword = get_keyword_or_404(db, keyword_id)
    db.execute(delete(RankObservation).where(RankObservation.keyword_id == keyword.id))
    db.delete(keyword)
    db.commit()


def apply_observation(keyword: TrackedKeyword, position: int | None, checked_at: datetime) -> None:
    """Fold a lookup into the keyword summary.

    ``last_position`` always follows the latest lookup, null included.
    ``best_position`` only moves to a positive position that beats it.
    """
    keyword.last_position = position
    if position is not None and position > 0:
        if keyword.best_position is None or position < keyword.best_position:
            keyword.best_position = position
    keyword.last_checked_at = checked_at
