# pyright: reportMissingImports=false
# pyright: reportCallInDefaultInitializer=false
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status

from eduai.api.deps import get_current_user
from eduai.api.errors import ok
from eduai.db import chat as chat_db
from eduai.db.pool import OptimizedPool, Row
from eduai.db.session import get_pool


router = APIRouter(prefix="/conversations", tags=["conversations"])


def _session_out(row: Row) -> Row:
    out = dict(row)
    if out.get("is_active") is not None:
        out["is_active"] = bool(out["is_active"])
    return out


@router.get("")
async def conversations_list(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: Row = Depends(get_current_user),
    pool: OptimizedPool = Depends(get_pool),
) -> dict[str, Any]:
    user_id = str(user["id"])
    sessions = chat_db.list_sessions_for_user(pool, user_id, limit=limit, offset=offset)
    total = chat_db.count_sessions_for_user(pool, user_id)
    return ok(
        {
            "conversations": [_session_out(s) for s in sessions],
            "pagination": {
                "total": total,
                "limit": limit,
                "offset": offset,
                "has_more": offset + limit < total,
            },
        }
    )


@router.get("/{conversation_id}")
async def conversations_get(
    conversation_id: str,
    user: Row = Depends(get_current_user),
    pool: OptimizedPool = Depends(get_pool),
) -> dict[str, Any]:
    session = chat_db.get_session(pool, conversation_id)
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Konverzace nebyla nalezena")
    if session["user_id"] != user["id"]:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Přístup odepřen")

    out = _session_out(session)
    out["messages"] = chat_db.list_messages(pool, conversation_id)
    return ok(out)
