# pyright: reportMissingImports=false

from __future__ import annotations

from pathlib import Path

import pytest
from sqlalchemy import inspect

from eduai.core.security import verify_password
from eduai.db.pool import OptimizedPool
from eduai.db.schema import metadata
from eduai.db.users import get_user_by_email
from eduai.scripts import init_db
from eduai.scripts.init_db import bootstrap_platform_admin, main, upgrade_schema, validate_admin_password


def _pool(tmp_path: Path) -> OptimizedPool:
    return OptimizedPool(f"sqlite:///{tmp_path / 'init.db'}")


def test_migrations_are_idempotent(tmp_path: Path) -> None:
    pool = _pool(tmp_path)
    try:
        assert upgrade_schema(pool) == "3f9a1c7d2b6e"
        assert upgrade_schema(pool) == "3f9a1c7d2b6e"
    finally:
        pool.end()


def test_migrated_schema_matches_table_declarations(tmp_path: Path) -> None:
    pool = _pool(tmp_path)
    try:
        _ = upgrade_schema(pool)
        inspector = inspect(pool.engine)
        assert set(inspector.get_table_names()) == {t.name for t in metadata.sorted_tables} | {"alembic_version"}
        for table in metadata.sorted_tables:
            migrated = {c["name"] for c in inspector.get_columns(table.name)}
            assert migrated == {c.name for c in table.columns}, table.name
            indexes = {ix["name"] for ix in inspector.get_indexes(table.name)}
            assert {str(ix.name) for ix in table.indexes} <= indexes, table.name
    finally:
        pool.end()


def test_bootstrap_creates_then_promotes(tmp_path: Path) -> None:
    pool = _pool(tmp_path)
    try:
        _ = upgrade_schema(pool)
        user, action = bootstrap_platform_admin(pool, email="  Admin@EduAI.cz ", password="SuperTajne123")
        assert action == "created"
        assert user["email"] == "admin@eduai.cz"
        assert user["role"] == "platform_admin"
        assert verify_password("SuperTajne123", str(user["password_hash"]))

        _, again = bootstrap_platform_admin(pool, email="admin@eduai.cz", password="ignored")
        assert again == "unchanged"

        _ = pool.query("UPDATE users SET role = 'teacher' WHERE email = $1", ["admin@eduai.cz"])
        promoted, action = bootstrap_platform_admin(pool, email="admin@eduai.cz", password="ignored")
        assert action == "promoted"
        assert promoted["role"] == "platform_admin"
    finally:
        pool.end()


@pytest.mark.parametrize("password", ["short1", "alllettersnodigits", "with space 123456"])
def test_admin_password_policy(password: str) -> None:
    with pytest.raises(ValueError):
        validate_admin_password(password)


def test_main_creates_schema_and_admin(
    tmp_path: Path, capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(init_db, "configure_logging", lambda _level: None)
    url = f"sqlite:///{tmp_path / 'cli.db'}"
    rc = main(["--database-url", url, "--admin-email", "root@eduai.cz", "--admin-password", "RootHeslo12345"])
    assert rc == 0
    assert "root@eduai.cz: created" in capsys.readouterr().out

    pool = OptimizedPool(url)
    try:
        user = get_user_by_email(pool, "root@eduai.cz")
        assert user is not None and user["role"] == "platform_admin"
    finally:
        pool.end()

    rc = main(["--database-url", url, "--admin-email", "other@eduai.cz", "--admin-password", "weak"])
    assert rc == 2
    assert "error:" in capsys.readouterr().err
