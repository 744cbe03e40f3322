from __future__ import annotations

from typing import Any

import httpx

from rank_tracker.core.logging_config import redact_secrets


class ProviderError(Exception):
    """Base class for a failed rank lookup.

    Subclasses pin ``error_code``, ``reason_code``, ``retryable`` and
    ``severity``. Every provider error is non-fatal to a scheduler run.
    """

    error_code = "provider_internal_error"
    reason_code = "internal_error"
    retryable = False
    severity = "critical"
    remote_call_made = True

    def __init__(self, message: str = "", *, reason_code: str | None = None, upstream_payload: dict[str, Any] | None = None) -> None:
        super().__init__(message or self.__class__.__name__)
        if reason_code is not None:
            self.reason_code = reason_code
        self.upstream_payload = upstream_payload

    def as_payload(self) -> dict[str, Any]:
        return {
            "error_code": self.error_code,
            "reason_code": self.reason_code,
            "retryable": self.retryable,
            "severity": self.severity,
            "message": redact_secrets(str(self)),
        }


class ProviderNotConfiguredError(ProviderError):
    error_code = "provider_not_configured"
    reason_code = "not_configured"
    remote_call_made = False


class ProviderTransportError(ProviderError):
    error_code = "provider_transport"
    reason_code = "transport_error"
    retryable = True
    severity = "error"


class ProviderBadResponseError(ProviderError):
    error_code = "provider_bad_response"
    reason_code = "bad_response"
    severity = "error"

    def __init__(
        self,
        message: str = "",
        *,
        status_code: int | None = None,
        upstream_payload: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, upstream_payload=upstream_payload)
        self.status_code = status_code
        self.retryable = status_code is not None and (status_code == 429 or status_code >= 500)


class ProviderReportedError(ProviderError):
    error_code = "provider_reported_error"
    reason_code = "provider_reported"
    severity = "warning"


def classify_provider_error(exc: Exception) -> ProviderError:
    """Map a raw transport or parsing failure into the provider taxonomy."""
    if isinstance(exc, ProviderError):
        return exc
    message = str(exc)
    if isinstance(exc, (httpx.TimeoutException, TimeoutError)):
        return ProviderTransportError(message, reason_code="timeout")
    if isinstance(exc, (httpx.TransportError, ConnectionError)):
        return ProviderTransportError(message)
    if isinstance(exc, httpx.HTTPStatusError):
        return ProviderBadResponseError(message, status_code=exc.response.status_code)
    if isinstance(exc, ValueError):
        return ProviderBadResponseError(message)
    return ProviderError(message)
