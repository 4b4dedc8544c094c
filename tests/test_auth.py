"""Tests for admin sessions and the route guard."""

import time

import jwt
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from dailyido_admin.auth import ALGORITHM, AdminGuardMiddleware, SessionManager
from dailyido_admin.configuration import AuthConfig

SECRET = "test-session-secret-0123456789abcdef"


@pytest.fixture
def sessions():
    return SessionManager(AuthConfig(admin_password="hunter2", session_secret=SECRET))


@pytest.fixture
def guarded_client(sessions):
    app = FastAPI()
    app.add_middleware(AdminGuardMiddleware, sessions=sessions)

    @app.get("/admin")
    async def admin():
        return {"ok": True}

    @app.get("/admin/login")
    async def login_page():
        return {"login": True}

    @app.get("/admin/api/summary")
    async def api():
        return {"api": True}

    @app.get("/admin-tools")
    async def lookalike():
        return {"public": True}

    return TestClient(app, follow_redirects=False)


def test_verify_password(sessions):
    assert sessions.verify_password("hunter2")
    assert not sessions.verify_password("hunter3")
    assert not sessions.verify_password(None)
    assert not sessions.verify_password(12345)


def test_login_disabled_without_password():
    sessions = SessionManager(AuthConfig(session_secret="unused-session-secret-0123456789abcd"))

    assert not sessions.login_enabled
    assert not sessions.verify_password("")


def test_issued_token_round_trips(sessions):
    claims = sessions.decode_token(sessions.issue_token())

    assert claims["sub"] == "admin"
    assert claims["exp"] - claims["iat"] == sessions.config.session_max_age_seconds
    assert claims["jti"]


def test_tokens_are_unique(sessions):
    assert sessions.issue_token(now=1000) != sessions.issue_token(now=1000)


def test_expired_token_is_rejected(sessions):
    stale = sessions.issue_token(now=time.time() - sessions.config.session_max_age_seconds - 60)

    assert sessions.decode_token(stale) is None


def test_token_signed_with_other_secret_is_rejected(sessions):
    other = SessionManager(AuthConfig(admin_password="hunter2", session_secret="another-session-secret-0123456789abcd"))

    assert sessions.decode_token(other.issue_token()) is None
    assert sessions.decode_token("not-a-token") is None
    assert sessions.decode_token(None) is None


def test_token_for_other_subject_is_rejected(sessions):
    now = int(time.time())
    forged = jwt.encode({"sub": "viewer", "iat": now, "exp": now + 60}, SECRET, algorithm=ALGORITHM)

    assert sessions.decode_token(forged) is None


def test_missing_secret_generates_one(caplog):
    first = SessionManager(AuthConfig(admin_password="x"))
    second = SessionManager(AuthConfig(admin_password="x"))

    assert second.decode_token(first.issue_token()) is None
    assert any("ADMIN_SESSION_SECRET" in record.getMessage() for record in caplog.records)


@pytest.mark.parametrize(
    "path, guarded",
    [
        ("/admin", True),
        ("/admin/", True),
        ("/admin/dashboard/funnel", True),
        ("/admin/login", False),
        ("/admin/api", False),
        ("/admin/api/login", False),
        ("/admin-tools", False),
        ("/api/submissions", False),
        ("/", False),
    ],
)
def test_is_guarded(sessions, path, guarded):
    assert sessions.is_guarded(path) is guarded


def test_guard_redirects_without_session(guarded_client):
    response = guarded_client.get("/admin")

    assert response.status_code == 307
    assert response.headers["location"] == "/admin/login"


def test_guard_lets_unprotected_paths_through(guarded_client):
    assert guarded_client.get("/admin/login").json() == {"login": True}
    assert guarded_client.get("/admin/api/summary").json() == {"api": True}
    assert guarded_client.get("/admin-tools").json() == {"public": True}


def test_guard_accepts_valid_session(guarded_client, sessions):
    guarded_client.cookies.set("admin_session", sessions.issue_token())

    response = guarded_client.get("/admin")

    assert response.status_code == 200
    assert response.json() == {"ok": True}


def test_guard_rejects_tampered_session(guarded_client, sessions):
    guarded_client.cookies.set("admin_session", sessions.issue_token() + "x")

    assert guarded_client.get("/admin").status_code == 307
