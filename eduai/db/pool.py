# pyright: reportMissingImports=false
# pyright: reportUnknownMemberType=false
# pyright: reportUnknownArgumentType=false
"""Connection pool wrapper around a SQLAlchemy engine.

SQL is written with positional ``$1 .. $n`` placeholders, the style every
query in this package uses; it is rebound to named parameters before it is
handed to the driver.
"""

from __future__ import annotations

import logging
import re
import threading
import time
from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, TypeAlias

from sqlalchemy import Engine, create_engine, event, exc, text
from sqlalchemy.engine import Connection, RootTransaction
from sqlalchemy.pool import QueuePool
from sqlalchemy.sql.elements import TextClause

from eduai.db.monitor import QueryPerformanceMonitor


logger = logging.getLogger(__name__)

Params: TypeAlias = Sequence[object] | Mapping[str, object] | None
Row: TypeAlias = dict[str, Any]

_POSITIONAL_RE = re.compile(r"\$(\d+)")


@dataclass(frozen=True)
class PoolConfig:
    max_size: int = 20
    min_size: int = 5
    idle_timeout_s: float = 30.0
    connect_timeout_s: float = 2.0
    max_uses: int = 7500


@dataclass
class QueryResult:
    rows: list[Row] = field(default_factory=list)
    row_count: int = 0


def bind_positional(sql: str, params: Params) -> tuple[TextClause, dict[str, object]]:
    """Rewrite ``$n`` placeholders to ``:pn`` binds for ``sqlalchemy.text``."""
    if params is None:
        params = ()
    if isinstance(params, Mapping):
        return text(sql), dict(params)

    values = list(params)

    def _sub(m: re.Match[str]) -> str:
        idx = int(m.group(1))
        if idx < 1 or idx > len(values):
            raise ValueError(f"placeholder ${idx} has no bound parameter ({len(values)} given)")
        return f":p{idx}"

    converted = _POSITIONAL_RE.sub(_sub, sql)
    return text(converted), {f"p{i}": v for i, v in enumerate(values, start=1)}


def _execute(conn: Connection, sql: str, params: Params) -> QueryResult:
    stmt, bound = bind_positional(sql, params)
    result = conn.execute(stmt, bound)
    if result.returns_rows:
        rows = [dict(r) for r in result.mappings().all()]
        return QueryResult(rows=rows, row_count=len(rows))
    return QueryResult(rows=[], row_count=max(0, int(result.rowcount)))


class PoolClient:
    """One checked-out connection; released when ``get_client()`` exits."""

    def __init__(self, conn: Connection, *, monitor: QueryPerformanceMonitor) -> None:
        self._conn = conn
        self._monitor = monitor

    def begin(self) -> RootTransaction:
        return self._conn.begin()

    def query(self, sql: str, params: Params = None, query_name: str | None = None) -> QueryResult:
        end_timer = self._monitor.start_timer(query_name, sql) if query_name else None
        try:
            if self._conn.in_transaction():
                return _execute(self._conn, sql, params)
            with self._conn.begin():
                return _execute(self._conn, sql, params)
        finally:
            if end_timer is not None:
                _ = end_timer()


class OptimizedPool:
    def __init__(
        self,
        database_url: str,
        *,
        config: PoolConfig | None = None,
        monitor: QueryPerformanceMonitor | None = None,
        clock: Callable[[], float] = time.monotonic,
        echo: bool = False,
    ) -> None:
        cfg = config or PoolConfig()
        if cfg.min_size <= 0 or cfg.max_size < cfg.min_size:
            raise ValueError("pool sizes must satisfy 0 < min_size <= max_size")

        self._config = cfg
        self._monitor = monitor or QueryPerformanceMonitor()
        self._clock = clock
        self._lock = threading.Lock()
        self._connection_metrics = {
            "total_connections": 0,
            "active_connections": 0,
        }

        self._engine = create_engine(
            database_url,
            poolclass=QueuePool,
            pool_size=cfg.min_size,
            max_overflow=cfg.max_size - cfg.min_size,
            pool_timeout=cfg.connect_timeout_s,
            pool_pre_ping=True,
            connect_args=self._connect_args(database_url, cfg),
            echo=echo,
        )
        self._install_listeners()

    @staticmethod
    def _connect_args(database_url: str, cfg: PoolConfig) -> dict[str, object]:
        if database_url.startswith("sqlite"):
            return {"check_same_thread": False, "timeout": cfg.connect_timeout_s}
        if database_url.startswith("postgresql"):
            return {"connect_timeout": max(1, int(round(cfg.connect_timeout_s)))}
        return {}

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def monitor(self) -> QueryPerformanceMonitor:
        return self._monitor

    @property
    def config(self) -> PoolConfig:
        return self._config

    def _install_listeners(self) -> None:
        pool = self._engine.pool
        event.listen(pool, "connect", self._on_connect)
        event.listen(pool, "close", self._on_close)
        event.listen(pool, "checkout", self._on_checkout)
        event.listen(pool, "checkin", self._on_checkin)
        event.listen(self._engine, "handle_error", self._on_error)

    def _bump(self, key: str, delta: int) -> None:
        with self._lock:
            self._connection_metrics[key] += delta

    def _on_connect(self, _dbapi_conn: object, record: Any) -> None:
        record.info["uses"] = 0
        record.info.pop("last_checkin_at", None)
        self._bump("total_connections", 1)

    def _on_close(self, _dbapi_conn: object, _record: Any) -> None:
        self._bump("total_connections", -1)

    def _on_checkout(self, _dbapi_conn: object, record: Any, _proxy: object) -> None:
        info = record.info
        uses = int(info.get("uses", 0))
        if self._config.max_uses > 0 and uses >= self._config.max_uses:
            logger.debug("recycling pooled connection after %d uses", uses)
            raise exc.DisconnectionError("connection reached max uses")

        last_checkin = info.get("last_checkin_at")
        if last_checkin is not None and self._clock() - last_checkin > self._config.idle_timeout_s:
            logger.debug("recycling pooled connection idle for more than %.0fs", self._config.idle_timeout_s)
            raise exc.DisconnectionError("connection idle timeout")

        info["uses"] = uses + 1
        self._bump("active_connections", 1)

    def _on_checkin(self, _dbapi_conn: object, record: Any) -> None:
        if record is not None:
            record.info["last_checkin_at"] = self._clock()
        self._bump("active_connections", -1)

    def _on_error(self, context: Any) -> None:
        logger.error("Database pool error: %s", context.original_exception)

    def query(self, sql: str, params: Params = None, query_name: str | None = None) -> QueryResult:
        end_timer = self._monitor.start_timer(query_name, sql) if query_name else None
        try:
            with self._engine.begin() as conn:
                return _execute(conn, sql, params)
        finally:
            if end_timer is not None:
                _ = end_timer()

    @contextmanager
    def get_client(self) -> Iterator[PoolClient]:
        with self._engine.connect() as conn:
            yield PoolClient(conn, monitor=self._monitor)

    def end(self) -> None:
        self._engine.dispose()

    def get_metrics(self) -> dict[str, int]:
        with self._lock:
            out = dict(self._connection_metrics)
        out["idle_connections"] = out["total_connections"] - out["active_connections"]

        pool = self._engine.pool
        if isinstance(pool, QueuePool):
            out["pool_size"] = pool.size()
            out["checked_in"] = pool.checkedin()
            out["checked_out"] = pool.checkedout()
            out["overflow"] = pool.overflow()
        return out
