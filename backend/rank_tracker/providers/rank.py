from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol
from urllib.parse import urlparse

import httpx

from rank_tracker.core.config import get_settings
from rank_tracker.providers.errors import (
    ProviderBadResponseError,
    ProviderError,
    ProviderNotConfiguredError,
    ProviderReportedError,
    classify_provider_error,
)
from rank_tracker.services.tracker_settings_service import (
    PROVIDER_CUSTOM,
    PROVIDER_DISABLED,
    PROVIDER_SERPAPI,
    TrackerSettings,
)

logger = logging.getLogger(__name__)

SERP_RESULT_COUNT = 100
DEFAULT_SEARCH_ENGINE = "google.com"


@dataclass(frozen=True)
class RankLookupResult:
    position: int | None
    url_found: str = ""

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "RankLookupResult":
        return cls(
            position=_parse_position(payload.get("position")),
            url_found=_parse_url_found(payload.get("url_found")),
        )


class RankProvider(Protocol):
    name: str

    def fetch_position(
        self,
        settings: TrackerSettings,
        keyword: str,
        target_url: str | None,
        search_engine: str,
        fallback_host: str | None,
    ) -> RankLookupResult:
        ...


PositionOverride = Callable[
    [TrackerSettings, str, str | None, str, str | None],
    RankLookupResult | Mapping[str, Any] | None,
]

_position_overrides: list[PositionOverride] = []


def register_position_override(hook: PositionOverride) -> None:
    """Install a hook consulted before any provider performs HTTP.

    The first hook returning a non-None result wins and the provider is not
    called. Hooks may return a ``RankLookupResult`` or a mapping with
    ``position`` and ``url_found`` keys.
    """
    _position_overrides.append(hook)


def clear_position_overrides() -> None:
    _position_overrides.clear()


def fetch_keyword_position(
    provider: RankProvider,
    settings: TrackerSettings,
    keyword: str,
    target_url: str | None,
    search_engine: str,
    fallback_host: str | None,
) -> RankLookupResult:
    """Look up one keyword, through the override hooks first.

    Anything raised on the way surfaces as a ``ProviderError`` so a caller
    iterating a batch only has one exception family to handle.
    """
    try:
        for hook in list(_position_overrides):
            override = hook(settings, keyword, target_url, search_engine, fallback_host)
            if override is None:
                continue
            logger.debug("rank position override applied", extra={"provider": provider.name})
            return _coerce_override(override)
        return provider.fetch_position(settings, keyword, target_url, search_engine, fallback_host)
    except ProviderError:
        raise
    except Exception as exc:
        raise classify_provider_error(exc) from exc


def _coerce_override(override: Any) -> RankLookupResult:
    if isinstance(override, RankLookupResult):
        return override
    if isinstance(override, Mapping):
        try:
            return RankLookupResult.from_payload(override)
        except ValueError as exc:
            raise ProviderBadResponseError(f"Position override returned an invalid result: {exc}") from exc
    raise ProviderBadResponseError("Position override must return a RankLookupResult or a mapping.")


def host_of(url: str | None) -> str:
    if not url:
        return ""
    candidate = url.strip()
    if not candidate:
        return ""
    try:
        return (urlparse(candidate).hostname or "").lower()
    except ValueError:
        # Unbalanced IPv6 brackets and similar.
        return ""


def match_organic_results(results: list[Any], target_host: str) -> RankLookupResult:
    """Pick the tracked position out of ordered organic results.

    With a target host, the first result whose link host contains it wins.
    Without one, the first usable result wins.
    """
    for item in results:
        if not isinstance(item, Mapping):
            continue
        raw_position = item.get("position")
        link = item.get("link")
        if not raw_position or not link:
            continue
        try:
            position = int(raw_position)
        except (TypeError, ValueError):
            continue
        link = str(link)
        if not target_host:
            return RankLookupResult(position=position, url_found=link)
        link_host = host_of(link)
        if link_host and target_host in link_host:
            return RankLookupResult(position=position, url_found=link)
    return RankLookupResult(position=None, url_found="")


def _parse_position(value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError("position must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return None
        return int(stripped)
    raise ValueError("position must be an integer")


def _parse_url_found(value: Any) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError("url_found must be a string")
    return value


def _decode_json_object(response: httpx.Response, provider_label: str) -> dict:
    status_code = response.status_code
    if status_code < 200 or status_code >= 300:
        raise ProviderBadResponseError(
            f"{provider_label} returned HTTP {status_code}.",
            status_code=status_code,
        )
    try:
        body = response.json()
    except ValueError as exc:
        raise ProviderBadResponseError(
            f"{provider_label} returned a body that is not valid JSON.",
            status_code=status_code,
        ) from exc
    if not isinstance(body, dict):
        raise ProviderBadResponseError(
            f"{provider_label} response must be a JSON object.",
            status_code=status_code,
        )
    return body


class DisabledRankProvider:
    name = PROVIDER_DISABLED

    def fetch_position(
        self,
        settings: TrackerSettings,
        keyword: str,
        target_url: str | None,
        search_engine: str,
        fallback_host: str | None,
    ) -> RankLookupResult:
        raise ProviderNotConfiguredError("Rank provider is disabled.")


class SerpApiRankProvider:
    name = PROVIDER_SERPAPI

    def __init__(
        self,
        *,
        endpoint: str = "https://serpapi.com/search.json",
        timeout_seconds: float = 30.0,
        engine: str = "google",
    ) -> None:
        self.endpoint = endpoint
        self.timeout_seconds = timeout_seconds
        self.engine = engine

    def build_params(self, settings: TrackerSettings, keyword: str, search_engine: str) -> dict:
        params = {
            "engine": self.engine,
            "q": keyword,
            "num": SERP_RESULT_COUNT,
            "api_key": settings.api_key,
            "google_domain": search_engine or DEFAULT_SEARCH_ENGINE,
        }
        if settings.location:
            params["location"] = settings.location
        if settings.language:
            params["hl"] = settings.language
        return params

    def fetch_position(
        self,
        settings: TrackerSettings,
        keyword: str,
        target_url: str | None,
        search_engine: str,
        fallback_host: str | None,
    ) -> RankLookupResult:
        if not settings.has_credential:
            raise ProviderNotConfiguredError("SerpAPI API key is missing.")
        params = self.build_params(settings, keyword, search_engine)
        try:
            with httpx.Client() as client:
                response = client.get(self.endpoint, params=params, timeout=self.timeout_seconds)
        except (httpx.HTTPError, TimeoutError, ConnectionError) as exc:
            raise classify_provider_error(exc) from exc

        body = _decode_json_object(response, "SerpAPI")
        error = body.get("error")
        if isinstance(error, str):
            raise ProviderReportedError(error or "SerpAPI reported an error.", upstream_payload={"error": error})

        organic = body.get("organic_results")
        if not isinstance(organic, list) or not organic:
            return RankLookupResult(position=None, url_found="")

        target_host = host_of(target_url) or (fallback_host or "").strip().lower()
        return match_organic_results(organic, target_host)


class CustomEndpointRankProvider:
    name = PROVIDER_CUSTOM

    def __init__(
        self,
        *,
        endpoint: str,
        timeout_seconds: float = 30.0,
        token_header: str = "X-Rank-Tracker-Token",
    ) -> None:
        self.endpoint = endpoint
        self.timeout_seconds = timeout_seconds
        self.token_header = token_header

    def fetch_position(
        self,
        settings: TrackerSettings,
        keyword: str,
        target_url: str | None,
        search_engine: str,
        fallback_host: str | None,
    ) -> RankLookupResult:
        payload = {
            "keyword": keyword,
            "target_url": target_url or "",
            "search_engine": search_engine,
            "host": fallback_host or "",
        }
        headers = {
            "Content-Type": "application/json",
            self.token_header: settings.api_key,
        }
        try:
            with httpx.Client() as client:
                response = client.post(
                    self.endpoint,
                    json=payload,
                    headers=headers,
                    timeout=self.timeout_seconds,
                )
        except (httpx.HTTPError, TimeoutError, ConnectionError) as exc:
            raise classify_provider_error(exc) from exc

        body = _decode_json_object(response, "Custom rank endpoint")
        try:
            return RankLookupResult.from_payload(body)
        except ValueError as exc:
            raise ProviderBadResponseError(
                f"Custom rank endpoint returned an invalid result: {exc}",
                status_code=response.status_code,
                upstream_payload=body,
            ) from exc


def get_rank_provider(tracker_settings: TrackerSettings) -> RankProvider:
    settings = get_settings()
    backend = tracker_settings.provider.strip().lower()
    timeout_seconds = float(settings.rank_provider_timeout_seconds)
    if backend == PROVIDER_DISABLED:
        return DisabledRankProvider()
    if backend == PROVIDER_SERPAPI:
        return SerpApiRankProvider(
            endpoint=settings.rank_provider_serpapi_endpoint.strip(),
            timeout_seconds=timeout_seconds,
            engine=settings.rank_provider_serpapi_engine.strip(),
        )
    if backend == PROVIDER_CUSTOM:
        endpoint = tracker_settings.custom_url.strip()
        if not endpoint:
            raise ProviderNotConfiguredError("Custom rank endpoint URL is not configured.")
        return CustomEndpointRankProvider(
            endpoint=endpoint,
            timeout_seconds=timeout_seconds,
            token_header=settings.rank_provider_custom_token_header.strip(),
        )
    raise ProviderNotConfiguredError(f"Unsupported rank provider backend: {backend}")
