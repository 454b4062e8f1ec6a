from __future__ import annotations

import json
import uuid
from dataclasses import dataclass
from typing import Any

from eduai.db.cache import QueryCache
from eduai.db.pool import OptimizedPool, Row
from eduai.db.query_builder import OptimizedUserQueryBuilder


USERS_CACHE_PREFIX = "users:"
USERS_LIST_CACHE_PREFIX = "users:list:"

# Columns an admin may change through batch updates.
UPDATABLE_FIELDS = frozenset(
    {"first_name", "last_name", "role", "school_id", "is_active", "status", "email_verified"}
)

_BOOL_COLUMNS = ("is_active", "email_verified")
_PRIVATE_COLUMNS = ("password_hash",)


def new_id() -> str:
    return str(uuid.uuid4())


def normalize_email(email: str) -> str:
    return email.strip().lower()


def public_user(row: Row) -> Row:
    """Strip secrets and coerce driver-specific booleans."""
    out = {k: v for k, v in row.items() if k not in _PRIVATE_COLUMNS}
    for col in _BOOL_COLUMNS:
        if col in out and out[col] is not None:
            out[col] = bool(out[col])
    return out


def create_user(
    pool: OptimizedPool,
    *,
    email: str,
    password_hash: str,
    first_name: str,
    last_name: str,
    role: str = "teacher_individual",
    school_id: str | None = None,
    credits_balance: int = 0,
) -> Row:
    result = pool.query(
        """
        INSERT INTO users (id, email, password_hash, first_name, last_name, role, school_id, credits_balance)
        VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
        RETURNING *
        """,
        [new_id(), normalize_email(email), password_hash, first_name, last_name, role, school_id, credits_balance],
        query_name="users.create",
    )
    return result.rows[0]


def create_school(pool: OptimizedPool, *, name: str, city: str | None = None) -> Row:
    result = pool.query(
        "INSERT INTO schools (id, name, city) VALUES ($1, $2, $3) RETURNING *",
        [new_id(), name, city],
        query_name="schools.create",
    )
    return result.rows[0]


def get_user_by_id(pool: OptimizedPool, user_id: str) -> Row | None:
    result = pool.query("SELECT * FROM users WHERE id = $1", [user_id], query_name="users.get_by_id")
    return result.rows[0] if result.rows else None


def get_user_by_email(pool: OptimizedPool, email: str) -> Row | None:
    result = pool.query(
        "SELECT * FROM users WHERE email = $1", [normalize_email(email)], query_name="users.get_by_email"
    )
    return result.rows[0] if result.rows else None


def get_user_with_school(pool: OptimizedPool, user_id: str) -> Row | None:
    result = pool.query(
        """
        SELECT u.*, s.name AS school_name, s.city AS school_city
        FROM users u
        LEFT JOIN schools s ON u.school_id = s.id
        WHERE u.id = $1
        """,
        [user_id],
        query_name="users.get_with_school",
    )
    return result.rows[0] if result.rows else None


def touch_last_login(pool: OptimizedPool, user_id: str) -> None:
    _ = pool.query(
        "UPDATE users SET last_login_at = CURRENT_TIMESTAMP WHERE id = $1",
        [user_id],
        query_name="users.touch_last_login",
    )


@dataclass(frozen=True)
class UserListFilters:
    q: str = ""
    role: str | None = None
    school_id: str | None = None
    status: str | None = None
    date_range: str | None = None
    last_login: str | None = None
    credit_range: str | None = None
    email_verified: bool | None = None
    order_by: str | None = "created_at"
    order_direction: str = "desc"
    limit: int = 50
    offset: int = 0

    def cache_key(self) -> str:
        return USERS_LIST_CACHE_PREFIX + json.dumps(self.__dict__, sort_keys=True, default=str)


def list_users(
    pool: OptimizedPool,
    filters: UserListFilters,
    *,
    cache: QueryCache | None = None,
    cache_ttl_seconds: float = 60.0,
) -> dict[str, Any]:
    key = filters.cache_key()
    if cache is not None:
        cached = cache.get(key)
        if cached is not None:
            return cached

    builder = (
        OptimizedUserQueryBuilder(dialect=pool.engine.dialect.name)
        .add_search_condition(filters.q)
        .add_role_filter(filters.role)
        .add_school_filter(filters.school_id)
        .add_status_filter(filters.status)
        .add_date_range_filter("created_at", filters.date_range)
        .add_last_login_filter(filters.last_login)
        .add_credit_range_filter(filters.credit_range)
        .add_email_verified_filter(filters.email_verified)
    )
    listing = builder.build(filters.order_by, filters.order_direction, filters.limit, filters.offset)
    counting = builder.build_count_query()

    rows = pool.query(listing.query, listing.parameters, query_name="users.list").rows
    total = int(pool.query(counting.query, counting.parameters, query_name="users.count").rows[0]["total"])

    data: dict[str, Any] = {
        "users": [public_user(r) for r in rows],
        "total": total,
        "limit": filters.limit,
        "offset": filters.offset,
    }
    if cache is not None:
        cache.set(key, data, ttl_seconds=cache_ttl_seconds)
    return data
