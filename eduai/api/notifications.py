# pyright: reportMissingImports=false
# pyright: reportCallInDefaultInitializer=false
from __future__ import annotations

from typing import Any, Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, model_validator

from eduai.api.deps import get_current_user, require_platform_admin
from eduai.api.errors import ok
from eduai.db.notifications import (
    count_unread_for_user,
    create_notification,
    list_notifications_for_user,
    mark_notification_read,
)
from eduai.db.pool import OptimizedPool, Row
from eduai.db.session import get_pool


router = APIRouter(tags=["notifications"])


class NotificationCreateRequest(BaseModel):
    user_id: str | None = None
    school_id: str | None = None
    severity: Literal["info", "warning", "error"] = "info"
    type: str = Field(..., min_length=1, max_length=80)
    title: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1)
    meta: dict[str, Any] | None = None

    @model_validator(mode="after")
    def _one_recipient(self) -> "NotificationCreateRequest":
        if (self.user_id is None) == (self.school_id is None):
            raise ValueError("exactly one of user_id or school_id is required")
        return self


@router.get("/notifications")
async def notifications_list(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: Row = Depends(get_current_user),
    pool: OptimizedPool = Depends(get_pool),
) -> dict[str, Any]:
    return ok(list_notifications_for_user(pool, str(user["id"]), limit=limit, offset=offset))


@router.get("/notifications/unread-count")
async def notifications_unread_count(
    user: Row = Depends(get_current_user), pool: OptimizedPool = Depends(get_pool)
) -> dict[str, Any]:
    return ok({"unread": count_unread_for_user(pool, str(user["id"]))})


@router.put("/notifications/{notification_id}/read")
async def notifications_mark_read(
    notification_id: str,
    user: Row = Depends(get_current_user),
    pool: OptimizedPool = Depends(get_pool),
) -> dict[str, Any]:
    if not mark_notification_read(pool, notification_id, str(user["id"])):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notifikace nenalezena")
    return ok({"id": notification_id, "read": True})


@router.post("/admin/notifications", status_code=status.HTTP_201_CREATED)
async def admin_notifications_create(
    payload: NotificationCreateRequest,
    _admin: Row = Depends(require_platform_admin),
    pool: OptimizedPool = Depends(get_pool),
) -> dict[str, Any]:
    row = create_notification(
        pool,
        type=payload.type,
        title=payload.title,
        message=payload.message,
        user_id=payload.user_id,
        school_id=payload.school_id,
        severity=payload.severity,
        meta=payload.meta,
    )
    return ok(row)
