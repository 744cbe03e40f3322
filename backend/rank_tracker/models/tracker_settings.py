from datetime import UTC, datetime

from sqlalchemy import CheckConstraint, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from rank_tracker.db.base import Base

TRACKER_SETTINGS_ROW_ID = 1


class TrackerSettingsRecord(Base):
    __tablename__ = "tracker_settings"
    __table_args__ = (
        CheckConstraint("daily_limit >= 1", name="ck_tracker_settings_daily_limit_positive"),
        CheckConstraint("batch_size >= 1 AND batch_size <= 500", name="ck_tracker_settings_batch_size_range"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=TRACKER_SETTINGS_ROW_ID)
    provider: Mapped[str] = mapped_column(String(20), nullable=False, default="none")
    encrypted_api_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    custom_url: Mapped[str] = mapped_column(Text, nullable=False, default="")
    location: Mapped[str] = mapped_column(String(191), nullable=False, default="")
    language: Mapped[str] = mapped_column(String(20), nullable=False, default="en")
    daily_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=1000)
    batch_size: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))
