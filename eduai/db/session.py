from __future__ import annotations

from eduai.core.config import settings
from eduai.db.cache import QueryCache
from eduai.db.monitor import QueryPerformanceMonitor
from eduai.db.pool import OptimizedPool, PoolConfig


monitor = QueryPerformanceMonitor(slow_threshold_ms=settings.slow_query_threshold_ms)
query_cache = QueryCache()
pool = OptimizedPool(
    settings.sqlalchemy_database_uri,
    config=PoolConfig(
        max_size=settings.db_pool_max_size,
        min_size=settings.db_pool_min_size,
        idle_timeout_s=settings.db_pool_idle_timeout_seconds,
        connect_timeout_s=settings.db_pool_connect_timeout_seconds,
        max_uses=settings.db_pool_max_uses,
    ),
    monitor=monitor,
)
engine = pool.engine


def get_pool() -> OptimizedPool:
    return pool


def get_query_cache() -> QueryCache:
    return query_cache


def get_monitor() -> QueryPerformanceMonitor:
    return monitor
