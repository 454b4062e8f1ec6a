from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext

from eduai.core.config import settings
from eduai.core.logging import configure_logging
from eduai.core.security import hash_password, validate_password_policy
from eduai.db.pool import OptimizedPool, Row
from eduai.db.users import create_user, get_user_by_email, normalize_email


logger = logging.getLogger(__name__)

PASSWORD_ENV_VAR = "EDUAI_ADMIN_PASSWORD"
ADMIN_MIN_PASSWORD_LEN = 12
MIGRATIONS_DIR = Path(__file__).resolve().parents[1] / "migrations"


def validate_admin_password(password: str) -> None:
    if len(password) < ADMIN_MIN_PASSWORD_LEN:
        raise ValueError(f"password must be at least {ADMIN_MIN_PASSWORD_LEN} characters")
    validate_password_policy(password)


def alembic_config(database_url: str) -> Config:
    cfg = Config()
    cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
    cfg.set_main_option("sqlalchemy.url", database_url.replace("%", "%%"))
    return cfg


def upgrade_schema(pool: OptimizedPool) -> str | None:
    """Apply pending migrations and return the revision the database ends at."""
    command.upgrade(alembic_config(pool.engine.url.render_as_string(hide_password=False)), "head")
    with pool.engine.connect() as conn:
        return MigrationContext.configure(conn).get_current_revision()


def bootstrap_platform_admin(
    pool: OptimizedPool,
    *,
    email: str,
    password: str,
    first_name: str = "Platform",
    last_name: str = "Admin",
) -> tuple[Row, str]:
    """Create the platform admin, or promote an existing account with that email."""
    existing = get_user_by_email(pool, email)
    if existing is None:
        validate_admin_password(password)
        user = create_user(
            pool,
            email=email,
            password_hash=hash_password(password),
            first_name=first_name,
            last_name=last_name,
            role="platform_admin",
        )
        return user, "created"

    if existing["role"] == "platform_admin":
        return existing, "unchanged"

    row = pool.query(
        """
        UPDATE users SET role = 'platform_admin', updated_at = CURRENT_TIMESTAMP
        WHERE id = $1
        RETURNING *
        """,
        [existing["id"]],
        query_name="init_db.promote_admin",
    ).rows[0]
    return row, "promoted"


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Migrate the EduAI schema to the latest revision and optionally create a platform admin.")
    _ = parser.add_argument("--database-url", default=None, help="defaults to DATABASE_URL")
    _ = parser.add_argument("--admin-email", default=None)
    _ = parser.add_argument(
        "--admin-password",
        default=None,
        help=f"falls back to ${PASSWORD_ENV_VAR}",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    configure_logging(settings.log_level)

    database_url = str(args.database_url or settings.sqlalchemy_database_uri)
    pool = OptimizedPool(database_url)
    try:
        revision = upgrade_schema(pool)
        logger.info("schema at revision %s", revision)

        if args.admin_email:
            password = args.admin_password or os.getenv(PASSWORD_ENV_VAR) or ""
            try:
                user, action = bootstrap_platform_admin(pool, email=str(args.admin_email), password=password)
            except ValueError as e:
                print(f"error: {e}", file=sys.stderr)
                return 2
            print(f"platform admin {normalize_email(str(args.admin_email))}: {action} (id={user['id']})")
    finally:
        pool.end()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
