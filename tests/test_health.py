# pyright: reportUnknownMemberType=false
# pyright: reportUnknownVariableType=false
# pyright: reportUnknownArgumentType=false

from __future__ import annotations

import uuid
from typing import cast

from _pytest.monkeypatch import MonkeyPatch
from fastapi.testclient import TestClient

from eduai.core.config import settings
from eduai.core.security import encode_access_token
from eduai.core.version import get_app_version
from eduai.db.pool import OptimizedPool, QueryResult
from eduai.db.session import get_pool, pool
from eduai.db.users import create_user
from eduai.main import app


def _auth_for(role: str) -> dict[str, str]:
    user = create_user(
        pool,
        email=f"{role}-{uuid.uuid4().hex}@example.com",
        password_hash="x",
        first_name="A",
        last_name="B",
        role=role,
    )
    token = encode_access_token({"sub": str(user["id"])}, secret=settings.jwt_secret, expires_in_seconds=600)
    return {"Authorization": f"Bearer {token}"}


def test_health_ok() -> None:
    client = TestClient(app)
    resp = client.get("/api/health")
    assert resp.status_code == 200, resp.text
    body = cast(dict[str, object], resp.json())
    assert body["status"] == "ok"
    assert body["version"] == get_app_version()
    db = cast(dict[str, object], body["db"])
    assert db["status"] == "ok"
    assert db["detail"] is None

    assert resp.headers.get("X-Request-Id")
    assert resp.headers.get("X-EduAI-Version") == get_app_version()
    assert resp.headers.get("X-Content-Type-Options") == "nosniff"


def test_health_degraded_when_db_fails() -> None:
    class _BrokenPool:
        def query(self, *_args: object, **_kwargs: object) -> QueryResult:
            raise ConnectionError("password=hunter2 refused")

    app.dependency_overrides[get_pool] = lambda: cast(OptimizedPool, _BrokenPool())
    try:
        resp = TestClient(app).get("/api/health")
    finally:
        _ = app.dependency_overrides.pop(get_pool, None)

    assert resp.status_code == 503
    body = cast(dict[str, object], resp.json())
    assert body["status"] == "degraded"
    db = cast(dict[str, object], body["db"])
    assert db["status"] == "error"
    assert db["detail"] == "ConnectionError"
    assert "hunter2" not in resp.text


def test_request_id_is_echoed() -> None:
    resp = TestClient(app).get("/api/health", headers={"X-Request-Id": "req-123"})
    assert resp.headers["X-Request-Id"] == "req-123"


def test_version_from_env(monkeypatch: MonkeyPatch) -> None:
    monkeypatch.setenv("EDUAI_VERSION", "9.8.7")
    assert get_app_version() == "9.8.7"
    monkeypatch.setenv("EDUAI_VERSION", "not-semver")
    assert get_app_version() != "not-semver"


def test_unknown_route_uses_error_envelope() -> None:
    resp = TestClient(app).get("/api/does-not-exist")
    assert resp.status_code == 404
    assert resp.json()["success"] is False


def test_unhandled_errors_are_500_envelopes() -> None:
    def _boom() -> OptimizedPool:
        raise RuntimeError("secret internals")

    app.dependency_overrides[get_pool] = _boom
    try:
        resp = TestClient(app, raise_server_exceptions=False).get("/api/credits/balance", headers=_auth_for("teacher"))
    finally:
        _ = app.dependency_overrides.pop(get_pool, None)

    assert resp.status_code == 500
    assert resp.json() == {"success": False, "error": "Interní chyba serveru"}


def test_admin_performance_reports_and_resets() -> None:
    headers = _auth_for("platform_admin")
    client = TestClient(app)

    _ = client.get("/api/health")
    resp = client.get("/api/admin/performance", headers=headers)
    assert resp.status_code == 200, resp.text
    data = cast(dict[str, object], resp.json()["data"])
    assert set(data) == {"queries", "slow_queries", "slow_query_threshold_ms", "pool", "cache"}
    assert "health.db" in cast(dict[str, object], data["queries"])
    pool_metrics = cast(dict[str, int], data["pool"])
    assert {"total_connections", "active_connections", "idle_connections", "pool_size"} <= set(pool_metrics)
    assert data["slow_query_threshold_ms"] == settings.slow_query_threshold_ms

    reset = client.post("/api/admin/performance/reset", headers=headers)
    assert reset.status_code == 200, reset.text
    after = cast(dict[str, object], client.get("/api/admin/performance", headers=headers).json()["data"])
    assert "health.db" not in cast(dict[str, object], after["queries"])

    denied = client.get("/api/admin/performance", headers=_auth_for("teacher"))
    assert denied.status_code == 403


def test_metrics_endpoint_exposes_prometheus_text() -> None:
    client = TestClient(app)
    _ = client.get("/api/health")
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/plain")
    assert "eduai_db_query_duration_seconds" in resp.text
