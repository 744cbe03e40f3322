from __future__ import annotations

import calendar
from datetime import date

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from rank_tracker.models.keyword import RankObservation


def append_observation(db: Session, keyword_id: int, checked_date: date, position: int | None, url_found: str) -> RankObservation:
    row = RankObservation(
        keyword_id=keyword_id,
        checked_date=checked_date,
        position=position,
        url_found=url_found or "",
    )
    db.add(row)
    return row


def retention_cutoff(today: date, months: int) -> date:
    """Same day ``months`` calendar months earlier, clamped to the month length."""
    month_index = today.year * 12 + (today.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(today.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def prune_history(db: Session, today: date, months: int) -> int:
    cutoff = retention_cutoff(today, months)
    result = db.execute(delete(RankObservation).where(RankObservation.checked_date < cutoff))
    db.commit()
    return int(result.rowcount or 0)


def list_history(db: Session, keyword_id: int) -> list[RankObservation]:
    return list(
        db.execute(
            select(RankObservation)
            .where(RankObservation.keyword_id == keyword_id)
            .order_by(RankObservation.checked_date.desc(), RankObservation.id.desc())
        ).scalars()
    )
