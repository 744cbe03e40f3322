from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy.orm import Session

from rank_tracker.core.crypto import decrypt_secret, encrypt_secret
from rank_tracker.models.tracker_settings import TRACKER_SETTINGS_ROW_ID, TrackerSettingsRecord

PROVIDER_DISABLED = "none"
PROVIDER_SERPAPI = "serpapi"
PROVIDER_CUSTOM = "custom"
PROVIDER_CHOICES = (PROVIDER_DISABLED, PROVIDER_SERPAPI, PROVIDER_CUSTOM)
MAX_BATCH_SIZE = 500


class TrackerSettingsError(RuntimeError):
    def __init__(self, message: str, *, reason_code: str, status_code: int = 422) -> None:
        super().__init__(message)
        self.reason_code = reason_code
        self.status_code = status_code


@dataclass(frozen=True)
class TrackerSettings:
    provider: str = PROVIDER_DISABLED
    api_key: str = ""
    custom_url: str = ""
    location: str = ""
    language: str = "en"
    daily_limit: int = 1000
    batch_size: int = 100

    @property
    def enabled(self) -> bool:
        return self.provider != PROVIDER_DISABLED

    @property
    def has_credential(self) -> bool:
        return bool(self.api_key.strip())

    @property
    def effective_batch_size(self) -> int:
        return min(MAX_BATCH_SIZE, max(1, int(self.batch_size)))


def load_tracker_settings(db: Session) -> TrackerSettings:
    """Return the stored tracker settings, or the defaults when none were saved.

    Raises ``CredentialCryptoError`` when the stored credential cannot be
    decrypted with the configured master key.
    """
    row = db.get(TrackerSettingsRecord, TRACKER_SETTINGS_ROW_ID)
    if row is None:
        return TrackerSettings()
    api_key = ""
    if row.encrypted_api_key:
        api_key = decrypt_secret(row.encrypted_api_key)
    return TrackerSettings(
        provider=row.provider,
        api_key=api_key,
        custom_url=row.custom_url or "",
        location=row.location or "",
        language=row.language or "",
        daily_limit=int(row.daily_limit),
        batch_size=int(row.batch_size),
    )


def update_tracker_settings(
    db: Session,
    *,
    provider: str,
    api_key: str | None = None,
    clear_api_key: bool = False,
    custom_url: str = "",
    location: str = "",
    language: str = "en",
    daily_limit: int = 1000,
    batch_size: int = 100,
) -> TrackerSettings:
    provider = provider.strip().lower()
    if provider not in PROVIDER_CHOICES:
        raise TrackerSettingsError(
            f"Unsupported rank provider '{provider}'.",
            reason_code="invalid_provider",
        )
    if int(daily_limit) < 1:
        raise TrackerSettingsError("daily_limit must be a positive integer.", reason_code="invalid_daily_limit")
    if not 1 <= int(batch_size) <= MAX_BATCH_SIZE:
        raise TrackerSettingsError(
            f"batch_size must be between 1 and {MAX_BATCH_SIZE}.",
            reason_code="invalid_batch_size",
        )

    row = db.get(TrackerSettingsRecord, TRACKER_SETTINGS_ROW_ID)
    if row is None:
        row = TrackerSettingsRecord(id=TRACKER_SETTINGS_ROW_ID)
        db.add(row)
    row.provider = provider
    if clear_api_key:
        row.encrypted_api_key = None
    elif api_key is not None and api_key.strip():
        row.encrypted_api_key = encrypt_secret(api_key.strip())
    row.custom_url = custom_url.strip()
    row.location = location.strip()
    row.language = language.strip()
    row.daily_limit = int(daily_limit)
    row.batch_size = int(batch_size)
    row.updated_at = datetime.now(UTC)
    db.commit()
    return load_tracker_settings(db)


def describe_tracker_settings(settings: TrackerSettings) -> dict:
    return {
        "provider": settings.provider,
        "has_api_key": settings.has_credential,
        "custom_url": settings.custom_url,
        "location": settings.location,
        "language": settings.language,
        "daily_limit": settings.daily_limit,
        "batch_size": settings.batch_size,
    }
