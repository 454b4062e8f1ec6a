# pyright: reportMissingImports=false
# pyright: reportCallInDefaultInitializer=false
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from eduai.api.deps import require_platform_admin
from eduai.api.errors import ok
from eduai.db.cache import QueryCache
from eduai.db.monitor import QueryPerformanceMonitor
from eduai.db.pool import OptimizedPool, Row
from eduai.db.session import get_monitor, get_pool, get_query_cache


router = APIRouter(prefix="/admin/performance", tags=["admin"])


@router.get("")
async def admin_performance(
    _admin: Row = Depends(require_platform_admin),
    pool: OptimizedPool = Depends(get_pool),
    monitor: QueryPerformanceMonitor = Depends(get_monitor),
    cache: QueryCache = Depends(get_query_cache),
) -> dict[str, Any]:
    return ok(
        {
            "queries": monitor.get_metrics(),
            "slow_queries": monitor.get_slow_queries(),
            "slow_query_threshold_ms": monitor.slow_threshold_ms,
            "pool": pool.get_metrics(),
            "cache": cache.get_stats(),
        }
    )


@router.post("/reset")
async def admin_performance_reset(
    _admin: Row = Depends(require_platform_admin),
    monitor: QueryPerformanceMonitor = Depends(get_monitor),
    cache: QueryCache = Depends(get_query_cache),
) -> dict[str, Any]:
    monitor.reset()
    cache.clear()
    return ok({"reset": True})
