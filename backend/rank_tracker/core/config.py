import os
import sys
from functools import lru_cache
from urllib.parse import urlparse

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Rank Tracker API"
    app_env: str = "local"
    api_v1_prefix: str = "/api/v1"
    site_base_url: str = ""

    admin_api_token: str = ""
    platform_master_key: str = ""

    postgres_dsn: str = "sqlite:///./rank_tracker.db"
    redis_url: str = "redis://localhost:6379/0"
    celery_broker_url: str = "redis://localhost:6379/0"
    celery_result_backend: str = "redis://localhost:6379/1"
    celery_task_always_eager: bool = False
    celery_task_eager_propagates: bool = False
    celery_worker_prefetch_multiplier: int = 1

    rank_provider_timeout_seconds: float = 30.0
    rank_provider_serpapi_endpoint: str = "https://serpapi.com/search.json"
    rank_provider_serpapi_engine: str = "google"
    rank_provider_custom_token_header: str = "X-Rank-Tracker-Token"

    history_retention_months: int = 12
    scheduler_lock_key: str = "rank_tracker:scheduler:lock"
    scheduler_lock_grace_seconds: int = 300
    scheduler_beat_minute: str = "0"
    quota_key_prefix: str = "rank_tracker:quota:used"

    log_level: str = "INFO"
    metrics_enabled: bool = False
    metrics_token: str = ""

    @model_validator(mode="after")
    def validate_production_guardrails(self) -> "Settings":
        if self.history_retention_months < 1:
            raise ValueError("HISTORY_RETENTION_MONTHS must be at least 1.")
        if self.rank_provider_timeout_seconds <= 0:
            raise ValueError("RANK_PROVIDER_TIMEOUT_SECONDS must be positive.")

        if self.app_env.lower() != "production":
            return self

        if self.postgres_dsn.startswith("sqlite"):
            raise ValueError("Production requires POSTGRES_DSN backed by PostgreSQL.")
        if not self.redis_url.strip():
            raise ValueError("Production requires REDIS_URL for the shared quota counter and scheduler lock.")
        if not self.platform_master_key.strip():
            raise ValueError("Production requires PLATFORM_MASTER_KEY for credential encryption.")
        if not self.admin_api_token.strip() or len(self.admin_api_token) < 24:
            raise ValueError("Production requires ADMIN_API_TOKEN with at least 24 characters.")
        if self.site_base_url.strip():
            parsed = urlparse(self.site_base_url)
            if not parsed.scheme or not parsed.hostname:
                raise ValueError("SITE_BASE_URL must be an absolute URL.")
        return self

    @property
    def site_host(self) -> str:
        if not self.site_base_url.strip():
            return ""
        return (urlparse(self.site_base_url.strip()).hostname or "").lower()


@lru_cache
def get_settings() -> Settings:
    app_env = os.getenv("APP_ENV", "").lower()
    is_pytest_runtime = "pytest" in sys.modules
    if app_env == "test" or (not app_env and is_pytest_runtime):
        def _env_or_default(name: str, default: str) -> str:
            value = os.getenv(name)
            if value is None:
                return default
            stripped = value.strip()
            return stripped if stripped else default

        return Settings(
            app_env="test",
            site_base_url=_env_or_default("SITE_BASE_URL", ""),
            platform_master_key=_env_or_default("PLATFORM_MASTER_KEY", "AAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA="),
            admin_api_token=_env_or_default("ADMIN_API_TOKEN", ""),
            celery_task_always_eager=True,
            celery_task_eager_propagates=True,
            celery_broker_url="memory://",
            celery_result_backend="cache+memory://",
        )
    return Settings()
