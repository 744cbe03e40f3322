from datetime import date, datetime
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator


class KeywordBulkIn(BaseModel):
    keywords: str = Field(..., description="One keyword per line.")
    target_url: str | None = None
    search_engine: str = Field(default="google.com", min_length=1, max_length=50)

    @field_validator("target_url")
    @classmethod
    def validate_target_url(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        value = value.strip()
        try:
            parsed = urlparse(value)
            host = parsed.hostname
        except ValueError as exc:
            raise ValueError("target_url is not a valid URL.") from exc
        if parsed.scheme not in {"http", "https"} or not host:
            raise ValueError("target_url must be an absolute http(s) URL.")
        return value


class KeywordPatchIn(BaseModel):
    active: bool


class TrackedKeywordOut(BaseModel):
    id: int
    keyword: str
    target_url: str | None
    search_engine: str
    active: bool
    last_position: int | None
    best_position: int | None
    last_checked_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


class RankObservationOut(BaseModel):
    id: int
    keyword_id: int
    checked_date: date
    position: int | None
    url_found: str

    model_config = {"from_attributes": True}
