"""Filtered user listing queries.

Conditions are accumulated with positional ``$n`` placeholders. ``build()``
and ``build_count_query()`` are pure: calling either (in any order, any
number of times) leaves the builder unchanged.

Full-text search needs Postgres; on SQLite the same two parameters feed a
case-insensitive ``LIKE``. Date cutoffs are bound as UTC
``YYYY-MM-DD HH:MM:SS`` strings, the format ``CURRENT_TIMESTAMP`` writes.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta


_BASE_SELECT = """
    SELECT
      u.id,
      u.first_name,
      u.last_name,
      u.email,
      u.role,
      u.is_active,
      u.status,
      u.credits_balance,
      u.created_at,
      u.updated_at,
      u.last_login_at,
      u.email_verified,
      s.id AS school_id,
      s.name AS school_name,
      s.city AS school_city
    FROM users u
    LEFT JOIN schools s ON u.school_id = s.id
"""

_COUNT_SELECT = "SELECT COUNT(*) AS total FROM users u LEFT JOIN schools s ON u.school_id = s.id"

_SORT_FIELDS = {
    "first_name": "u.first_name",
    "last_name": "u.last_name",
    "email": "u.email",
    "role": "u.role",
    "school_name": "s.name",
    "credits_balance": "u.credits_balance",
    "status": "u.is_active",
    "created_at": "u.created_at",
    "last_login_at": "u.last_login_at",
}
_DEFAULT_SORT = "u.created_at"

_DATE_FIELDS = frozenset({"created_at", "updated_at", "last_login_at"})
_DATE_RANGE_DAYS = {"this_week": 7, "this_month": 30, "last_3_months": 90}
_LAST_LOGIN_DAYS = {"7d": 7, "30d": 30, "90d": 90}
_SEARCH_FRAGMENTS = {
    "postgresql": """(
          to_tsvector('simple', COALESCE(u.first_name, '') || ' ' || COALESCE(u.last_name, '') || ' ' || COALESCE(u.email, ''))
          @@ plainto_tsquery('simple', {term})
          OR u.email ILIKE {pattern}
          OR CONCAT(u.first_name, ' ', u.last_name) ILIKE {pattern}
        )""",
    "sqlite": """(
          lower(COALESCE(u.first_name, '') || ' ' || COALESCE(u.last_name, '') || ' ' || COALESCE(u.email, ''))
            LIKE '%' || lower({term}) || '%'
          OR lower(u.email) LIKE lower({pattern})
          OR lower(u.first_name || ' ' || u.last_name) LIKE lower({pattern})
        )""",
}

_CREDIT_RANGES = {
    "low": "u.credits_balance < 10",
    "medium": "u.credits_balance >= 10 AND u.credits_balance <= 100",
    "high": "u.credits_balance > 100",
}


@dataclass(frozen=True)
class BuiltQuery:
    query: str
    parameters: list[object]


def _is_unset(value: str | None) -> bool:
    return not value or value == "all"


def _timestamp(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(UTC)
    return value.strftime("%Y-%m-%d %H:%M:%S")


class OptimizedUserQueryBuilder:
    def __init__(
        self, *, now: Callable[[], datetime] | None = None, dialect: str = "postgresql"
    ) -> None:
        if dialect not in _SEARCH_FRAGMENTS:
            raise ValueError(f"unsupported SQL dialect: {dialect!r}")
        self._now = now or (lambda: datetime.now(UTC))
        self._dialect = dialect
        self._conditions: list[str] = []
        self._parameters: list[object] = []

    def _next(self) -> int:
        return len(self._parameters) + 1

    def _bind(self, fragment: str, value: object) -> None:
        # fragment carries a single "{}" slot for the placeholder index
        self._conditions.append(fragment.format(f"${self._next()}"))
        self._parameters.append(value)

    def add_search_condition(self, search_term: str) -> OptimizedUserQueryBuilder:
        if not search_term.strip():
            return self
        i = self._next()
        self._conditions.append(
            _SEARCH_FRAGMENTS[self._dialect].format(term=f"${i}", pattern=f"${i + 1}")
        )
        self._parameters.extend([search_term, f"%{search_term}%"])
        return self

    def add_role_filter(self, role: str | None) -> OptimizedUserQueryBuilder:
        if not _is_unset(role):
            self._bind("u.role = {}", role)
        return self

    def add_school_filter(self, school_id: str | None) -> OptimizedUserQueryBuilder:
        if _is_unset(school_id):
            return self
        if school_id == "individual_only":
            self._conditions.append("u.school_id IS NULL")
        elif school_id == "school_only":
            self._conditions.append("u.school_id IS NOT NULL")
        else:
            self._bind("u.school_id = {}", school_id)
        return self

    def add_status_filter(self, status: str | None) -> OptimizedUserQueryBuilder:
        if _is_unset(status):
            return self
        if status == "active":
            self._conditions.append("u.is_active = true")
        elif status == "inactive":
            self._conditions.append("u.is_active = false")
        else:
            self._bind("u.status = {}", status)
        return self

    def add_date_range_filter(self, field: str, date_range: str | None) -> OptimizedUserQueryBuilder:
        if _is_unset(date_range) or field not in _DATE_FIELDS:
            return self
        days = _DATE_RANGE_DAYS.get(str(date_range))
        if days is None:
            return self
        start = self._now() - timedelta(days=days)
        self._bind(f"u.{field} >= {{}}", _timestamp(start))
        return self

    def add_last_login_filter(self, last_login: str | None) -> OptimizedUserQueryBuilder:
        if _is_unset(last_login):
            return self
        if last_login == "never":
            self._conditions.append("u.last_login_at IS NULL")
            return self
        days = _LAST_LOGIN_DAYS.get(str(last_login))
        if days is None:
            return self
        cutoff = self._now() - timedelta(days=days)
        self._bind("u.last_login_at >= {}", _timestamp(cutoff))
        return self

    def add_credit_range_filter(self, credit_range: str | None) -> OptimizedUserQueryBuilder:
        if _is_unset(credit_range):
            return self
        fragment = _CREDIT_RANGES.get(str(credit_range))
        if fragment is not None:
            self._conditions.append(fragment)
        return self

    def add_email_verified_filter(self, email_verified: bool | None) -> OptimizedUserQueryBuilder:
        if email_verified is not None:
            self._bind("u.email_verified = {}", bool(email_verified))
        return self

    @staticmethod
    def add_sorting(order_by: str | None, order_direction: str | None = "asc") -> str:
        column = _SORT_FIELDS.get(order_by or "", _DEFAULT_SORT)
        direction = "DESC" if (order_direction or "").lower() == "desc" else "ASC"
        return f"ORDER BY {column} {direction}"

    def _where(self) -> str:
        if not self._conditions:
            return ""
        return " WHERE " + " AND ".join(self._conditions)

    def build(
        self,
        order_by: str | None = None,
        order_direction: str | None = "asc",
        limit: int | None = None,
        offset: int | None = None,
    ) -> BuiltQuery:
        query = _BASE_SELECT + self._where()
        if order_by:
            query += " " + self.add_sorting(order_by, order_direction)

        parameters = list(self._parameters)
        if limit:
            parameters.append(limit)
            query += f" LIMIT ${len(parameters)}"
        if offset:
            parameters.append(offset)
            query += f" OFFSET ${len(parameters)}"

        return BuiltQuery(query=query, parameters=parameters)

    def build_count_query(self) -> BuiltQuery:
        return BuiltQuery(query=_COUNT_SELECT + self._where(), parameters=list(self._parameters))
