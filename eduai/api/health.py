# pyright: reportMissingImports=false
# pyright: reportCallInDefaultInitializer=false
from __future__ import annotations

import logging
import time
from typing import Literal

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from eduai.core.version import get_app_version
from eduai.db.pool import OptimizedPool
from eduai.db.session import get_pool


logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class DependencyStatus(BaseModel):
    status: Literal["ok", "error"]
    latency_ms: int | None = None
    detail: str | None = Field(default=None, description="Exception class name only, never its message")


class HealthResponse(BaseModel):
    status: Literal["ok", "degraded"]
    version: str
    db: DependencyStatus


def _check_db(pool: OptimizedPool) -> DependencyStatus:
    start = time.perf_counter()
    try:
        _ = pool.query("SELECT 1 AS ok", query_name="health.db")
    except Exception as exc:
        latency_ms = int((time.perf_counter() - start) * 1000)
        logger.warning("health check: database unavailable (%s)", type(exc).__name__)
        return DependencyStatus(status="error", latency_ms=latency_ms, detail=type(exc).__name__)
    return DependencyStatus(status="ok", latency_ms=int((time.perf_counter() - start) * 1000))


@router.get("/health", response_model=HealthResponse)
def health(pool: OptimizedPool = Depends(get_pool)) -> JSONResponse:
    db = _check_db(pool)
    body = HealthResponse(
        status="ok" if db.status == "ok" else "degraded",
        version=get_app_version(),
        db=db,
    )
    return JSONResponse(status_code=200 if db.status == "ok" else 503, content=body.model_dump())
