import pytest
from fastapi.testclient import TestClient

from loandesk.core import health as health_module
from loandesk.main import app

client = TestClient(app)


async def _ok():
    return {"status": "ok"}


@pytest.fixture(autouse=True)
def _mock_env(monkeypatch, tmp_path):
    monkeypatch.setattr(health_module.settings, "environment", "test")
    monkeypatch.setattr(health_module.settings, "storage_provider", "local")
    monkeypatch.setattr(health_module.settings, "local_upload_dir", str(tmp_path / "uploads"))
    yield


def test_health_live_returns_ok() -> None:
    response = client.get("/api/v1/health/live")
    assert response.status_code == 200
    payload = response.json()["data"]
    assert payload.get("status") == "ok"
    assert "timestamp" in payload


def test_health_ready_ok(monkeypatch) -> None:
    monkeypatch.setattr(health_module, "_check_db", _ok)
    monkeypatch.setattr(health_module, "_check_redis", _ok)

    response = client.get("/api/v1/health/ready")
    assert response.status_code == 200
    payload = response.json()["data"]
    assert payload.get("ready") is True
    assert payload["checks"]["database"]["status"] == "ok"
    assert payload["checks"]["storage"]["provider"] == health_module.settings.storage_provider


def test_health_ready_degraded_when_redis_is_down(monkeypatch) -> None:
    async def bad_redis():
        return {"status": "error", "error": "connection refused"}

    monkeypatch.setattr(health_module, "_check_db", _ok)
    monkeypatch.setattr(health_module, "_check_redis", bad_redis)

    response = client.get("/api/v1/health/ready")
    assert response.status_code == 503
    payload = response.json()["data"]
    assert payload.get("status") == "degraded"
    assert payload.get("ready") is False
    assert response.json()["details"] == {"redis": "connection refused"}


def test_health_overview(monkeypatch) -> None:
    monkeypatch.setattr(health_module, "_check_db", _ok)
    monkeypatch.setattr(health_module, "_check_redis", _ok)

    response = client.get("/api/v1/health")
    assert response.status_code == 200
    payload = response.json()["data"]
    assert payload["status"] == "ok"
    assert set(payload["checks"]) == {"api", "database", "redis", "storage"}


def test_status_summary(monkeypatch) -> None:
    monkeypatch.setattr(health_module, "_check_db", _ok)
    monkeypatch.setattr(health_module, "_check_redis", _ok)

    response = client.get("/api/v1/status/summary")
    assert response.status_code == 200
    payload = response.json()["data"]
    assert payload.get("version") == health_module.APP_VERSION


def test_responses_carry_request_id() -> None:
    response = client.get("/api/v1/health/live", headers={"X-Request-ID": "req-123"})
    assert response.headers.get("X-Request-ID") == "req-123"
    assert response.headers.get("X-Content-Type-Options") == "nosniff"


def test_health_ready_creates_local_upload_dir(monkeypatch, tmp_path) -> None:
    monkeypatch.setattr(health_module, "_check_db", _ok)
    monkeypatch.setattr(health_module, "_check_redis", _ok)

    response = client.get("/api/v1/health/ready")
    assert response.status_code == 200
    assert (tmp_path / "uploads").is_dir()


def test_health_ready_fails_when_upload_dir_cannot_be_created(monkeypatch, tmp_path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    monkeypatch.setattr(health_module.settings, "local_upload_dir", str(blocker / "uploads"))
    monkeypatch.setattr(health_module, "_check_db", _ok)
    monkeypatch.setattr(health_module, "_check_redis", _ok)

    response = client.get("/api/v1/health/ready")
    assert response.status_code == 503
    body = response.json()
    assert body["code"] == "service_unavailable"
    assert body["data"]["checks"]["storage"]["status"] == "error"
    assert set(body["details"]) == {"storage"}


def test_health_ready_fails_for_gcs_without_bucket(monkeypatch) -> None:
    monkeypatch.setattr(health_module.settings, "storage_provider", "gcs")
    monkeypatch.setattr(health_module.settings, "gcs_bucket", None)
    monkeypatch.setattr(health_module, "_check_db", _ok)
    monkeypatch.setattr(health_module, "_check_redis", _ok)

    response = client.get("/api/v1/health/ready")
    assert response.status_code == 503
    assert response.json()["details"] == {"storage": "GCS_BUCKET is not configured"}
