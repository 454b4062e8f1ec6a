# pyright: reportMissingImports=false
# pyright: reportCallInDefaultInitializer=false
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from eduai.api.deps import get_current_user
from eduai.api.errors import ok
from eduai.db.pool import OptimizedPool, Row
from eduai.db.session import get_pool
from eduai.db.users import get_user_with_school, public_user


router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me")
async def users_me(
    user: Row = Depends(get_current_user), pool: OptimizedPool = Depends(get_pool)
) -> dict[str, Any]:
    profile = get_user_with_school(pool, str(user["id"])) or user
    return ok(public_user(profile))
