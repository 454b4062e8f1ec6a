# pyright: reportMissingImports=false

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta
from typing import cast

from fastapi.testclient import TestClient

from eduai.core.config import settings
from eduai.core.security import encode_access_token
from eduai.db.session import pool
from eduai.main import app
from eduai.services.auth_rate_limit import auth_rate_limit_key


def _random_email(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex}@example.com"


def _register(client: TestClient, *, email: str, password: str = "heslo1234", **extra: object) -> dict[str, object]:
    resp = client.post(
        "/api/auth/register",
        json={"email": email, "password": password, "first_name": "Jan", "last_name": "Novák", **extra},
    )
    assert resp.status_code == 201, resp.text
    return cast(dict[str, object], resp.json()["data"])


def _set_rate_limit(*, enabled: bool, max_failures: int, window_seconds: int):
    old = (
        settings.auth_rate_limit_enabled,
        settings.auth_rate_limit_max_failures,
        settings.auth_rate_limit_window_seconds,
    )
    settings.auth_rate_limit_enabled = enabled
    settings.auth_rate_limit_max_failures = max_failures
    settings.auth_rate_limit_window_seconds = window_seconds
    return old


def _restore_rate_limit(old: tuple[bool, int, int]) -> None:
    settings.auth_rate_limit_enabled = old[0]
    settings.auth_rate_limit_max_failures = old[1]
    settings.auth_rate_limit_window_seconds = old[2]


def _expire_key(key: str) -> None:
    past = (datetime.now(UTC).replace(tzinfo=None) - timedelta(seconds=1)).isoformat(sep=" ", timespec="seconds")
    result = pool.query("UPDATE auth_rate_limits SET reset_at = $1 WHERE key = $2", [past, key])
    assert result.row_count == 1


def _key_exists(key: str) -> bool:
    return bool(pool.query("SELECT key FROM auth_rate_limits WHERE key = $1", [key]).rows)


def test_register_login_and_me() -> None:
    email = _random_email("ucitel")
    with TestClient(app) as client:
        reg = _register(client, email=email.upper())
        assert reg["token_type"] == "bearer"
        user = cast(dict[str, object], reg["user"])
        assert user["email"] == email
        assert user["role"] == "teacher_individual"
        assert user["is_active"] is True
        assert "password_hash" not in user

        login = client.post("/api/auth/login", json={"email": email, "password": "heslo1234"})
        assert login.status_code == 200, login.text
        token = cast(str, login.json()["data"]["token"])

        me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200, me.text
        profile = cast(dict[str, object], me.json()["data"])
        assert profile["email"] == email
        assert profile["last_login_at"] is not None
        assert profile["school_name"] is None

        users_me = client.get("/api/users/me", headers={"Authorization": f"Bearer {token}"})
        assert users_me.status_code == 200, users_me.text
        assert users_me.json()["data"]["id"] == profile["id"]


def test_register_rejects_duplicates_weak_passwords_and_admin_roles() -> None:
    email = _random_email("dup")
    with TestClient(app) as client:
        _ = _register(client, email=email)

        dup = client.post(
            "/api/auth/register",
            json={"email": email, "password": "heslo1234", "first_name": "A", "last_name": "B"},
        )
        assert dup.status_code == 409, dup.text
        assert dup.json()["success"] is False

        weak = client.post(
            "/api/auth/register",
            json={"email": _random_email("weak"), "password": "onlyletters", "first_name": "A", "last_name": "B"},
        )
        assert weak.status_code == 400, weak.text

        admin = client.post(
            "/api/auth/register",
            json={
                "email": _random_email("admin"),
                "password": "heslo1234",
                "first_name": "A",
                "last_name": "B",
                "role": "platform_admin",
            },
        )
        assert admin.status_code == 400, admin.text
        assert admin.json()["error"] == "Neplatná role"


def test_invalid_body_is_400_with_details() -> None:
    with TestClient(app) as client:
        resp = client.post("/api/auth/register", json={"email": "x@example.com"})
    assert resp.status_code == 400, resp.text
    body = cast(dict[str, object], resp.json())
    assert body["success"] is False
    assert body["error"] == "Neplatná vstupní data"
    fields = {d["field"] for d in cast(list[dict[str, str]], body["details"])}
    assert {"password", "first_name", "last_name"} <= fields


def test_bad_credentials_and_tokens() -> None:
    email = _random_email("login")
    with TestClient(app) as client:
        _ = _register(client, email=email)

        bad = client.post("/api/auth/login", json={"email": email, "password": "wrong-password1"})
        assert bad.status_code == 401, bad.text
        assert bad.json() == {"success": False, "error": "Neplatný e-mail nebo heslo"}

        garbage = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-token"})
        assert garbage.status_code == 401

        ghost = encode_access_token({"sub": "missing"}, secret=settings.jwt_secret, expires_in_seconds=60)
        gone = client.get("/api/auth/me", headers={"Authorization": f"Bearer {ghost}"})
        assert gone.status_code == 401


def test_inactive_user_cannot_use_token() -> None:
    email = _random_email("inactive")
    with TestClient(app) as client:
        reg = _register(client, email=email)
        user_id = cast(dict[str, object], reg["user"])["id"]
        _ = pool.query("UPDATE users SET is_active = $1 WHERE id = $2", [False, user_id])

        me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {reg['token']}"})
        assert me.status_code == 401

        login = client.post("/api/auth/login", json={"email": email, "password": "heslo1234"})
        assert login.status_code == 401
        assert login.json()["error"] == "Účet je deaktivován"


def test_login_rate_limit_lockout_expiry_and_success_resets() -> None:
    old = _set_rate_limit(enabled=True, max_failures=3, window_seconds=300)
    try:
        email = _random_email("user")
        pw = "heslo1234"

        with TestClient(app) as client:
            _ = _register(client, email=email, password=pw)

            for _ in range(3):
                bad = client.post("/api/auth/login", json={"email": email, "password": "wrong-password1"})
                assert bad.status_code == 401, bad.text

            blocked = client.post("/api/auth/login", json={"email": email, "password": "wrong-password1"})
            assert blocked.status_code == 429, blocked.text
            assert int(blocked.headers["Retry-After"]) > 0
            assert blocked.json()["success"] is False

            blocked2 = client.post("/api/auth/login", json={"email": email, "password": pw})
            assert blocked2.status_code == 429, blocked2.text

            key = auth_rate_limit_key(scope="auth_login", ip="testclient", identifier=email)
            _expire_key(key)

            ok = client.post("/api/auth/login", json={"email": email, "password": pw})
            assert ok.status_code == 200, ok.text
            assert not _key_exists(key)

            after = client.post("/api/auth/login", json={"email": email, "password": "wrong-password1"})
            assert after.status_code == 401, after.text
    finally:
        _restore_rate_limit(old)


def test_expired_window_restarts_failure_count() -> None:
    old = _set_rate_limit(enabled=True, max_failures=2, window_seconds=300)
    try:
        email = _random_email("window")
        with TestClient(app) as client:
            for _ in range(2):
                _ = client.post("/api/auth/login", json={"email": email, "password": "wrong-password1"})

            key = auth_rate_limit_key(scope="auth_login", ip="testclient", identifier=email)
            _expire_key(key)

            again = client.post("/api/auth/login", json={"email": email, "password": "wrong-password1"})
            assert again.status_code == 401, again.text
            row = pool.query("SELECT failures FROM auth_rate_limits WHERE key = $1", [key]).rows[0]
            assert row["failures"] == 1
    finally:
        _restore_rate_limit(old)


def test_rate_limit_disabled() -> None:
    old = _set_rate_limit(enabled=False, max_failures=1, window_seconds=300)
    try:
        email = _random_email("off")
        with TestClient(app) as client:
            for _ in range(3):
                bad = client.post("/api/auth/login", json={"email": email, "password": "wrong-password1"})
                assert bad.status_code == 401, bad.text
    finally:
        _restore_rate_limit(old)
