# pyright: reportMissingImports=false

from __future__ import annotations

import uuid
from typing import cast

import pytest
from fastapi.testclient import TestClient

from eduai.core.config import settings
from eduai.core.security import encode_access_token
from eduai.db.notifications import (
    count_unread_for_user,
    create_notification,
    list_notifications_for_user,
    mark_notification_read,
)
from eduai.db.pool import Row
from eduai.db.session import pool
from eduai.db.users import create_school, create_user
from eduai.main import app


def _user(*, school_id: str | None = None, role: str = "teacher") -> Row:
    return create_user(
        pool,
        email=f"notif-{uuid.uuid4().hex}@example.com",
        password_hash="x",
        first_name="Eva",
        last_name="Svobodová",
        role=role,
        school_id=school_id,
    )


def _auth(user: Row) -> dict[str, str]:
    token = encode_access_token({"sub": str(user["id"])}, secret=settings.jwt_secret, expires_in_seconds=600)
    return {"Authorization": f"Bearer {token}"}


def _set_created_at(notification_id: str, ts: str) -> None:
    _ = pool.query("UPDATE notifications SET created_at = $1 WHERE id = $2", [ts, notification_id])


def test_exactly_one_recipient_is_required() -> None:
    school = create_school(pool, name="ZŠ Komenského")
    user = _user()
    with pytest.raises(ValueError):
        _ = create_notification(pool, type="system", title="t", message="m")
    with pytest.raises(ValueError):
        _ = create_notification(
            pool, type="system", title="t", message="m", user_id=str(user["id"]), school_id=str(school["id"])
        )


def test_invalid_severity_is_rejected() -> None:
    user = _user()
    with pytest.raises(ValueError):
        _ = create_notification(pool, type="system", title="t", message="m", user_id=str(user["id"]), severity="fatal")


def test_user_sees_own_and_school_notifications_newest_first() -> None:
    school = create_school(pool, name="Gymnázium Brno")
    other_school = create_school(pool, name="SŠ Plzeň")
    user = _user(school_id=str(school["id"]))
    stranger = _user()

    direct = create_notification(
        pool, type="credits", title="Kredity", message="Dobito", user_id=str(user["id"]), meta={"amount": 50}
    )
    broadcast = create_notification(
        pool, type="school", title="Porada", message="Ve středu", school_id=str(school["id"]), severity="warning"
    )
    _ = create_notification(pool, type="school", title="Jinde", message="x", school_id=str(other_school["id"]))
    _ = create_notification(pool, type="credits", title="Cizí", message="x", user_id=str(stranger["id"]))

    _set_created_at(str(direct["id"]), "2024-01-01 10:00:00")
    _set_created_at(str(broadcast["id"]), "2024-01-02 10:00:00")

    rows = list_notifications_for_user(pool, str(user["id"]))
    assert [r["id"] for r in rows] == [broadcast["id"], direct["id"]]
    assert rows[1]["meta"] == {"amount": 50}

    assert [r["id"] for r in list_notifications_for_user(pool, str(user["id"]), limit=1, offset=1)] == [direct["id"]]


def test_mark_read_only_for_visible_notifications() -> None:
    school = create_school(pool, name="ZŠ Olomouc")
    user = _user(school_id=str(school["id"]))
    outsider = _user()
    n = create_notification(pool, type="school", title="t", message="m", school_id=str(school["id"]))
    nid = str(n["id"])

    assert count_unread_for_user(pool, str(user["id"])) == 1
    assert mark_notification_read(pool, nid, str(outsider["id"])) is False
    assert mark_notification_read(pool, nid, str(user["id"])) is True
    assert count_unread_for_user(pool, str(user["id"])) == 0

    # already read: still owned, read_at kept
    assert mark_notification_read(pool, nid, str(user["id"])) is True
    assert mark_notification_read(pool, "missing", str(user["id"])) is False


def test_notification_routes() -> None:
    admin = _user(role="platform_admin")
    teacher = _user()

    with TestClient(app) as client:
        created = client.post(
            "/api/admin/notifications",
            headers=_auth(admin),
            json={"user_id": teacher["id"], "type": "system", "title": "Vítejte", "message": "Ahoj"},
        )
        assert created.status_code == 201, created.text
        nid = cast(dict[str, object], created.json()["data"])["id"]

        both = client.post(
            "/api/admin/notifications",
            headers=_auth(admin),
            json={"type": "system", "title": "x", "message": "y"},
        )
        assert both.status_code == 400, both.text
        assert both.json()["success"] is False

        forbidden = client.post(
            "/api/admin/notifications",
            headers=_auth(teacher),
            json={"user_id": teacher["id"], "type": "system", "title": "x", "message": "y"},
        )
        assert forbidden.status_code == 403, forbidden.text

        listed = client.get("/api/notifications", headers=_auth(teacher))
        assert listed.status_code == 200, listed.text
        assert [n["id"] for n in listed.json()["data"]] == [nid]

        unread = client.get("/api/notifications/unread-count", headers=_auth(teacher))
        assert unread.json()["data"] == {"unread": 1}

        read = client.put(f"/api/notifications/{nid}/read", headers=_auth(teacher))
        assert read.status_code == 200, read.text

        missing = client.put("/api/notifications/nope/read", headers=_auth(teacher))
        assert missing.status_code == 404
        assert missing.json() == {"success": False, "error": "Notifikace nenalezena"}

        unread = client.get("/api/notifications/unread-count", headers=_auth(teacher))
        assert unread.json()["data"] == {"unread": 0}
