from datetime import datetime, timedelta, timezone

import pytest
from fastapi import Depends, FastAPI, HTTPException
from fastapi.testclient import TestClient

from loandesk.api import deps
from loandesk.api.v1.routers import auth as auth_router
from loandesk.core.errors import register_exception_handlers
from loandesk.core.permissions import Role
from loandesk.core.response_envelope import register_response_envelope
from loandesk.core.security import create_refresh_token, decode_token, get_password_hash
from loandesk.core.settings import settings
from loandesk.models.user import User

from tests.conftest import FakeResult, entity_handler, make_user

PASSWORD = "CorrectHorse42!"


@pytest.fixture
def login_user(fake_db):
    user = make_user(
        role=Role.LOAN_OFFICER, email="officer@example.com", hashed_password=get_password_hash(PASSWORD)
    )
    fake_db.on_execute(entity_handler(User, FakeResult(scalar=user)))
    return user


@pytest.fixture
def attempts(monkeypatch):
    """Record login bookkeeping instead of talking to Redis."""
    calls = {"attempts": [], "used": set()}

    async def enforce(ip, email):
        return None

    async def register(email, success):
        calls["attempts"].append((email, success))

    async def is_used(jti):
        return jti in calls["used"]

    async def mark_used(jti, expires_at):
        calls["used"].add(jti)

    monkeypatch.setattr(auth_router, "enforce_login_limits", enforce)
    monkeypatch.setattr(auth_router, "register_login_attempt", register)
    monkeypatch.setattr(auth_router, "is_refresh_used", is_used)
    monkeypatch.setattr(auth_router, "mark_refresh_used", mark_used)
    return calls


def test_login_issues_role_bearing_tokens(anonymous_client, login_user, attempts, patch_jwt_keys):
    response = anonymous_client.post(
        "/api/v1/auth/login", json={"email": "Officer@Example.com", "password": PASSWORD}
    )

    assert response.status_code == 200
    tokens = response.json()["data"]
    claims = decode_token(tokens["access_token"], expected_type="access")
    assert claims["sub"] == str(login_user.id)
    assert claims["role"] == "LOAN_OFFICER"
    assert login_user.last_active_at is not None
    assert attempts["attempts"] == [("officer@example.com", True)]


def test_login_with_wrong_password(anonymous_client, login_user, attempts, patch_jwt_keys):
    response = anonymous_client.post(
        "/api/v1/auth/login", json={"email": "officer@example.com", "password": "nope-nope"}
    )

    assert response.status_code == 401
    assert response.json()["code"] == "unauthorized"
    assert attempts["attempts"] == [("officer@example.com", False)]


def test_login_with_unknown_email_is_unauthorized(anonymous_client, attempts, patch_jwt_keys):
    response = anonymous_client.post(
        "/api/v1/auth/login", json={"email": "nobody@example.com", "password": PASSWORD}
    )

    assert response.status_code == 401
    assert response.json()["code"] == "unauthorized"
    assert attempts["attempts"] == [("nobody@example.com", False)]


def test_inactive_user_cannot_log_in(anonymous_client, login_user, attempts, patch_jwt_keys):
    login_user.is_active = False

    credentials = {"email": "officer@example.com", "password": PASSWORD}
    response = anonymous_client.post("/api/v1/auth/login", json=credentials)

    assert response.status_code == 401


def test_refresh_rotates_and_detects_reuse(anonymous_client, login_user, attempts, patch_jwt_keys):
    refresh = create_refresh_token(str(login_user.id), token_version=login_user.token_version)

    first = anonymous_client.post("/api/v1/auth/refresh", json={"refresh_token": refresh})
    assert first.status_code == 200
    assert first.json()["data"]["refresh_token"] != refresh

    replay = anonymous_client.post("/api/v1/auth/refresh", json={"refresh_token": refresh})
    assert replay.status_code == 401
    assert login_user.token_version == 1


def test_refresh_with_revoked_version(anonymous_client, login_user, attempts, patch_jwt_keys):
    refresh = create_refresh_token(str(login_user.id), token_version=login_user.token_version)
    login_user.token_version = 7

    response = anonymous_client.post("/api/v1/auth/refresh", json={"refresh_token": refresh})

    assert response.status_code == 401


def test_logout_revokes_tokens(as_user, applicant):
    applicant.token_version = 2

    response = as_user(applicant).post("/api/v1/auth/logout")

    assert response.status_code == 200
    assert applicant.token_version == 3


def test_me_returns_current_user(as_user, approver):
    response = as_user(approver).get("/api/v1/auth/me")

    assert response.status_code == 200
    assert response.json()["data"]["role"] == "APPROVER"


def test_enforce_inactivity_allows_recent_activity(monkeypatch):
    monkeypatch.setattr(settings, "session_timeout_minutes", 30)
    now = datetime.now(timezone.utc)
    deps.enforce_inactivity(now - timedelta(minutes=10), now)


def test_enforce_inactivity_raises_when_expired(monkeypatch):
    monkeypatch.setattr(settings, "session_timeout_minutes", 30)
    now = datetime.now(timezone.utc)
    with pytest.raises(HTTPException) as exc:
        deps.enforce_inactivity(now - timedelta(minutes=45), now)
    assert exc.value.status_code == 401
    assert "Session expired" in exc.value.detail


def _build_app() -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app)
    register_response_envelope(app)

    @app.get("/protected")
    async def protected_route(principal=Depends(deps.require_roles(Role.APPROVER))):
        return {"user": str(principal.user_id)}

    return app


def test_role_gate_requires_auth():
    client = TestClient(_build_app())
    assert client.get("/protected").status_code == 401


def test_role_gate_rejects_other_roles():
    app = _build_app()
    user = make_user(role=Role.APPLICANT)

    async def fake_user():
        return user

    app.dependency_overrides[deps.get_current_user] = fake_user
    resp = TestClient(app).get("/protected", headers={"Authorization": "Bearer test"})
    assert resp.status_code == 403
    assert resp.json()["details"] == {"role": "APPLICANT"}


def test_role_gate_allows_matching_role():
    app = _build_app()
    user = make_user(role=Role.APPROVER)

    async def fake_user():
        return user

    app.dependency_overrides[deps.get_current_user] = fake_user
    resp = TestClient(app).get("/protected", headers={"Authorization": "Bearer test"})
    assert resp.status_code == 200
    assert resp.json()["data"]["user"] == str(user.id)
