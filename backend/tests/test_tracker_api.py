from rank_tracker.models.keyword import RankObservation, TrackedKeyword
from rank_tracker.providers import rank
from rank_tracker.services import quota_service
from rank_tracker.services.quota_service import quota_key


def _put_settings(client, **overrides):
    body = {
        "provider": "serpapi",
        "api_key": "serp-secret",
        "location": "Austin, Texas",
        "language": "en",
        "daily_limit": 25,
        "batch_size": 10,
    }
    body.update(overrides)
    return client.put("/api/v1/tracker/settings", json=body)


def test_settings_defaults_and_masked_credential(client):
    defaults = client.get("/api/v1/tracker/settings")
    assert defaults.status_code == 200
    assert defaults.json()["data"]["provider"] == "none"
    assert defaults.json()["data"]["has_api_key"] is False

    saved = _put_settings(client)
    assert saved.status_code == 200
    data = saved.json()["data"]
    assert data["has_api_key"] is True
    assert data["daily_limit"] == 25
    assert "serp-secret" not in saved.text

    kept = _put_settings(client, api_key="", daily_limit=30)
    assert kept.json()["data"]["has_api_key"] is True
    assert kept.json()["data"]["daily_limit"] == 30


def test_settings_validation_errors(client):
    assert _put_settings(client, provider="bing").status_code == 422
    assert _put_settings(client, batch_size=501).status_code == 422
    response = _put_settings(client, daily_limit=0)
    assert response.status_code == 422
    assert response.json()["errors"][0]["code"] == "validation_error"


def test_quota_endpoint_reports_usage(client):
    _put_settings(client, daily_limit=25)
    quota_service._local_counter_store.set(quota_key(), 7)

    response = client.get("/api/v1/tracker/quota")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["used_today"] == 7
    assert data["remaining"] == 18
    assert data["daily_limit"] == 25


def test_manual_run_checks_keywords_and_records_execution(client, db_session):
    _put_settings(client)
    client.post("/api/v1/keywords/bulk", json={"keywords": "widget\ngadget"})
    rank.register_position_override(lambda *_args: rank.RankLookupResult(position=2, url_found="https://mysite.com/"))

    response = client.post("/api/v1/tracker/run")

    assert response.status_code == 200
    summary = response.json()["data"]
    assert summary["status"] == "completed"
    assert summary["succeeded"] == 2
    assert summary["consumed"] == 2

    db_session.expire_all()
    assert {row.last_position for row in db_session.query(TrackedKeyword).all()} == {2}
    assert db_session.query(RankObservation).count() == 2

    runs = client.get("/api/v1/tracker/runs").json()["data"]["items"]
    assert runs[0]["status"] == "success"
    assert runs[0]["trigger"] == "manual"
    assert runs[0]["finished_at"] is not None
    assert runs[0]["result"]["status"] == "completed"


def test_manual_run_with_disabled_provider(client):
    response = client.post("/api/v1/tracker/run")
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "disabled"


def test_settings_refused_when_stored_key_belongs_to_another_master_key(client, monkeypatch):
    assert _put_settings(client).status_code == 200
    monkeypatch.setenv("PLATFORM_MASTER_KEY", "AQEBAQEBAQEBAQEBAQEBAQEBAQEBAQEBAQEBAQEBAQE=")

    response = client.get("/api/v1/tracker/settings")

    assert response.status_code == 409
    assert response.json()["errors"][0]["details"]["reason_code"] == "credential_key_mismatch"
