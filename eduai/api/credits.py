# pyright: reportMissingImports=false
# pyright: reportCallInDefaultInitializer=false
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query

from eduai.api.deps import get_current_user
from eduai.api.errors import ok
from eduai.db.credits import CREDIT_REQUIREMENTS, get_balance, get_usage_stats, list_transactions
from eduai.db.pool import OptimizedPool, Row
from eduai.db.session import get_pool


router = APIRouter(prefix="/credits", tags=["credits"])


@router.get("/balance")
async def credits_balance(
    user: Row = Depends(get_current_user), pool: OptimizedPool = Depends(get_pool)
) -> dict[str, Any]:
    user_id = str(user["id"])
    return ok(
        {
            "credits_balance": get_balance(pool, user_id),
            "usage": get_usage_stats(pool, user_id),
            "costs": CREDIT_REQUIREMENTS,
        }
    )


@router.get("/transactions")
async def credits_transactions(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: Row = Depends(get_current_user),
    pool: OptimizedPool = Depends(get_pool),
) -> dict[str, Any]:
    return ok(list_transactions(pool, str(user["id"]), limit=limit, offset=offset))
