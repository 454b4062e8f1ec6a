# pyright: reportMissingImports=false
# pyright: reportUnknownArgumentType=false
# pyright: reportCallInDefaultInitializer=false
from __future__ import annotations

import logging
from typing import Any, Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError

from eduai.api.deps import require_platform_admin
from eduai.api.errors import ok
from eduai.core.config import settings
from eduai.db.batch import BatchOperationOptimizer, RowUpdate
from eduai.db.cache import QueryCache
from eduai.db.credits import add_credits, deduct_credits
from eduai.db.pool import OptimizedPool, Row
from eduai.db.session import get_pool, get_query_cache
from eduai.db.users import (
    UPDATABLE_FIELDS,
    USERS_CACHE_PREFIX,
    UserListFilters,
    list_users,
    public_user,
)


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/users", tags=["admin"])

MAX_PAGE_SIZE = 200


class UserUpdateItem(BaseModel):
    id: str = Field(..., min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)


class BatchUpdateRequest(BaseModel):
    updates: list[UserUpdateItem] = Field(..., min_length=1, max_length=1000)


class CreditAdjustRequest(BaseModel):
    type: Literal["add", "deduct"]
    amount: int = Field(..., gt=0)
    description: str | None = Field(None, max_length=500)


@router.get("")
async def admin_users_list(
    q: str = Query("", max_length=200),
    role: str | None = None,
    school_id: str | None = None,
    status_: str | None = Query(None, alias="status"),
    date_range: str | None = None,
    last_login: str | None = None,
    credit_range: str | None = None,
    email_verified: bool | None = None,
    order_by: str = "created_at",
    order_direction: Literal["asc", "desc"] = "desc",
    limit: int = Query(50, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    _admin: Row = Depends(require_platform_admin),
    pool: OptimizedPool = Depends(get_pool),
    cache: QueryCache = Depends(get_query_cache),
) -> dict[str, Any]:
    filters = UserListFilters(
        q=q,
        role=role,
        school_id=school_id,
        status=status_,
        date_range=date_range,
        last_login=last_login,
        credit_range=credit_range,
        email_verified=email_verified,
        order_by=order_by,
        order_direction=order_direction,
        limit=limit,
        offset=offset,
    )
    data = list_users(pool, filters, cache=cache, cache_ttl_seconds=settings.users_list_cache_ttl_seconds)
    return ok(data)


@router.post("/batch-update")
async def admin_users_batch_update(
    payload: BatchUpdateRequest,
    admin: Row = Depends(require_platform_admin),
    pool: OptimizedPool = Depends(get_pool),
    cache: QueryCache = Depends(get_query_cache),
) -> dict[str, Any]:
    for item in payload.updates:
        extra = set(item.data) - UPDATABLE_FIELDS
        if extra:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Nepovolená pole: {', '.join(sorted(extra))}",
            )

    updates = [RowUpdate(id=item.id, data=item.data) for item in payload.updates]
    try:
        rows = BatchOperationOptimizer(pool).execute_batch_update(
            "users", updates, allowed_fields=UPDATABLE_FIELDS
        )
    except IntegrityError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Neplatná data uživatele")
    finally:
        # Earlier batches may have committed even when a later one failed.
        _ = cache.invalidate(USERS_CACHE_PREFIX)

    logger.info("admin %s batch-updated %d users", admin["id"], len(rows))
    return ok([public_user(r) for r in rows], updated=len(rows))


@router.post("/{user_id}/credits")
async def admin_users_adjust_credits(
    user_id: str,
    payload: CreditAdjustRequest,
    admin: Row = Depends(require_platform_admin),
    pool: OptimizedPool = Depends(get_pool),
    cache: QueryCache = Depends(get_query_cache),
) -> dict[str, Any]:
    if payload.type == "add":
        tx = add_credits(
            pool,
            user_id,
            payload.amount,
            payload.description or "Admin credit addition",
            transaction_type="admin_adjustment",
        )
    else:
        tx = deduct_credits(
            pool,
            user_id,
            payload.amount,
            payload.description or "Admin credit deduction",
            transaction_type="admin_adjustment",
        )
    _ = cache.invalidate(USERS_CACHE_PREFIX)

    logger.info("admin %s adjusted credits of %s by %s%d", admin["id"], user_id, "+" if payload.type == "add" else "-", payload.amount)
    return ok({"transaction": tx, "credits_balance": int(tx["balance_after"])})
