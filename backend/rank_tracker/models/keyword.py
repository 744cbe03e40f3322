from datetime import UTC, date, datetime

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from rank_tracker.db.base import Base


class TrackedKeyword(Base):
    __tablename__ = "tracked_keywords"
    __table_args__ = (
        Index("ix_tracked_keywords_active_last_checked_at", "active", "last_checked_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    keyword: Mapped[str] = mapped_column(Text, nullable=False)
    target_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    search_engine: Mapped[str] = mapped_column(String(50), nullable=False, default="google.com")
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_position: Mapped[int | None] = mapped_column(Integer, nullable=True)
    best_position: Mapped[int | None] = mapped_column(Integer, nullable=True)
    last_checked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC), index=True)


class RankObservation(Base):
    __tablename__ = "keyword_rank_observations"
    __table_args__ = (
        Index("ix_keyword_rank_observations_keyword_id_checked_date", "keyword_id", "checked_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    keyword_id: Mapped[int] = mapped_column(Integer, ForeignKey("tracked_keywords.id", ondelete="CASCADE"), nullable=False)
    checked_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    position: Mapped[int | None] = mapped_column(Integer, nullable=True)
    url_found: Mapped[str] = mapped_column(Text, nullable=False, default="")
