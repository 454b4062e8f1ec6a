from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
import hashlib

from eduai.db.pool import OptimizedPool


def _now_utc() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


def _ts(value: datetime) -> str:
    return value.isoformat(sep=" ", timespec="seconds")


def _as_datetime(value: object) -> datetime:
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    return datetime.fromisoformat(str(value))


def _safe_key(raw: str) -> str:
    if len(raw) <= 512:
        return raw
    digest = hashlib.sha256(raw.encode("utf-8")).hexdigest()
    return f"auth|sha256:{digest}"


def _ip_key(ip: str | None) -> str:
    if not isinstance(ip, str) or ip.strip() == "":
        return "unknown"
    return ip.strip()


def auth_rate_limit_key(*, scope: str, ip: str | None, identifier: str | None = None) -> str:
    ident = ""
    if isinstance(identifier, str) and identifier.strip() != "":
        ident = identifier.strip().lower()
    return _safe_key(f"{scope}|{_ip_key(ip)}|{ident}")


@dataclass(frozen=True)
class RateLimitCheck:
    blocked: bool
    retry_after_seconds: int


_NOT_BLOCKED = RateLimitCheck(blocked=False, retry_after_seconds=0)


class AuthRateLimiter:
    """Fixed-window failure counter kept in ``auth_rate_limits``."""

    def __init__(
        self,
        *,
        enabled: bool,
        max_failures: int,
        window_seconds: int,
        now: Callable[[], datetime] = _now_utc,
    ):
        self._enabled: bool = bool(enabled)
        self._max_failures: int = int(max_failures)
        self._window_seconds: int = int(window_seconds)
        self._now = now

    def _active(self) -> bool:
        return self._enabled and self._max_failures > 0 and self._window_seconds > 0

    def check(self, pool: OptimizedPool, *, key: str) -> RateLimitCheck:
        if not self._active():
            return _NOT_BLOCKED

        rows = pool.query(
            "SELECT failures, reset_at FROM auth_rate_limits WHERE key = $1",
            [key],
            query_name="auth_rate_limit.check",
        ).rows
        if not rows:
            return _NOT_BLOCKED

        now = self._now()
        reset_at = _as_datetime(rows[0]["reset_at"])
        if reset_at <= now or int(rows[0]["failures"]) < self._max_failures:
            return _NOT_BLOCKED
        retry_after = max(0, int((reset_at - now).total_seconds()))
        return RateLimitCheck(blocked=True, retry_after_seconds=retry_after)

    def record_failure(self, pool: OptimizedPool, *, key: str) -> None:
        if not self._active():
            return

        now = self._now()
        reset_at = now + timedelta(seconds=self._window_seconds)
        # An expired window restarts the count instead of extending it.
        _ = pool.query(
            """
            INSERT INTO auth_rate_limits (key, failures, reset_at)
            VALUES ($1, 1, $2)
            ON CONFLICT (key) DO UPDATE SET
              failures = CASE WHEN auth_rate_limits.reset_at <= $3 THEN 1
                              ELSE auth_rate_limits.failures + 1 END,
              reset_at = CASE WHEN auth_rate_limits.reset_at <= $3 THEN $2
                              ELSE auth_rate_limits.reset_at END
            """,
            [key, _ts(reset_at), _ts(now)],
            query_name="auth_rate_limit.record_failure",
        )

    def reset(self, pool: OptimizedPool, *, key: str) -> None:
        if not self._enabled:
            return
        _ = pool.query(
            "DELETE FROM auth_rate_limits WHERE key = $1", [key], query_name="auth_rate_limit.reset"
        )
