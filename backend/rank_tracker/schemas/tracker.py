from typing import Literal

from pydantic import BaseModel, Field


class TrackerSettingsIn(BaseModel):
    provider: Literal["none", "serpapi", "custom"]
    api_key: str | None = Field(default=None, description="Blank keeps the stored key.")
    clear_api_key: bool = False
    custom_url: str = ""
    location: str = ""
    language: str = "en"
    daily_limit: int = Field(default=1000, ge=1)
    batch_size: int = Field(default=100, ge=1, le=500)
