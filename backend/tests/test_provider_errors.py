import httpx

from rank_tracker.providers.errors import (
    ProviderBadResponseError,
    ProviderError,
    ProviderNotConfiguredError,
    ProviderReportedError,
    ProviderTransportError,
    classify_provider_error,
)


def test_classify_maps_timeout_to_retryable_transport() -> None:
    err = classify_provider_error(TimeoutError("timeout"))
    assert isinstance(err, ProviderTransportError)
    assert err.reason_code == "timeout"
    assert err.retryable is True


def test_classify_maps_http_429_to_retryable_bad_response() -> None:
    req = httpx.Request("GET", "https://example.test")
    resp = httpx.Response(429, request=req)
    err = classify_provider_error(httpx.HTTPStatusError("rate", request=req, response=resp))
    assert isinstance(err, ProviderBadResponseError)
    assert err.status_code == 429
    assert err.retryable is True


def test_classify_returns_existing_provider_error() -> None:
    err = ProviderReportedError("quota used up")
    assert classify_provider_error(err) is err


def test_classify_maps_connect_error_to_transport() -> None:
    req = httpx.Request("GET", "https://example.test")
    err = classify_provider_error(httpx.ConnectError("refused", request=req))
    assert isinstance(err, ProviderTransportError)
    assert err.reason_code == "transport_error"


def test_classify_maps_value_error_to_bad_response() -> None:
    err = classify_provider_error(ValueError("Expecting value"))
    assert isinstance(err, ProviderBadResponseError)
    assert err.retryable is False


def test_classify_falls_back_to_internal_error() -> None:
    err = classify_provider_error(KeyError("organic_results"))
    assert type(err) is ProviderError
    assert err.error_code == "provider_internal_error"
    assert err.severity == "critical"


def test_not_configured_error_makes_no_remote_call() -> None:
    assert ProviderNotConfiguredError().remote_call_made is False
    assert ProviderBadResponseError(status_code=400).remote_call_made is True
    assert ProviderBadResponseError(status_code=400).retryable is False


def test_error_payload_carries_taxonomy_fields() -> None:
    payload = ProviderReportedError("Invalid API key.").as_payload()
    assert payload == {
        "error_code": "provider_reported_error",
        "reason_code": "provider_reported",
        "retryable": False,
        "severity": "warning",
        "message": "Invalid API key.",
    }


def test_error_payload_masks_credentials_in_message() -> None:
    err = classify_provider_error(httpx.ConnectError("failed for https://serpapi.com/search.json?api_key=s3cret&q=x"))
    assert "s3cret" not in err.as_payload()["message"]
