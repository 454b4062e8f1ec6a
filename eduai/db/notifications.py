from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from eduai.db.pool import OptimizedPool, Row
from eduai.db.schema import NOTIFICATION_SEVERITIES
from eduai.db.users import new_id


# Addressed to the user directly or to the user's school.
_VISIBLE_TO_USER = "(user_id = $1 OR school_id IN (SELECT school_id FROM users WHERE id = $1))"


def _decode(row: Row) -> Row:
    meta = row.get("meta")
    if isinstance(meta, str):
        row = {**row, "meta": json.loads(meta)}
    return row


def create_notification(
    pool: OptimizedPool,
    *,
    type: str,  # noqa: A002
    title: str,
    message: str,
    user_id: str | None = None,
    school_id: str | None = None,
    severity: str = "info",
    meta: Mapping[str, Any] | None = None,
) -> Row:
    if (user_id is None) == (school_id is None):
        raise ValueError("exactly one of user_id or school_id is required")
    if severity not in NOTIFICATION_SEVERITIES:
        raise ValueError(f"severity must be one of {', '.join(NOTIFICATION_SEVERITIES)}")

    result = pool.query(
        """
        INSERT INTO notifications (id, user_id, school_id, severity, type, title, message, meta)
        VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
        RETURNING *
        """,
        [
            new_id(),
            user_id,
            school_id,
            severity,
            type,
            title,
            message,
            json.dumps(dict(meta)) if meta is not None else None,
        ],
        query_name="notifications.create",
    )
    return _decode(result.rows[0])


def list_notifications_for_user(
    pool: OptimizedPool, user_id: str, limit: int = 50, offset: int = 0
) -> list[Row]:
    result = pool.query(
        f"""
        SELECT * FROM notifications
        WHERE {_VISIBLE_TO_USER}
        ORDER BY created_at DESC
        LIMIT $2 OFFSET $3
        """,
        [user_id, limit, offset],
        query_name="notifications.list_for_user",
    )
    return [_decode(r) for r in result.rows]


def count_unread_for_user(pool: OptimizedPool, user_id: str) -> int:
    result = pool.query(
        f"SELECT COUNT(*) AS unread FROM notifications WHERE {_VISIBLE_TO_USER} AND read_at IS NULL",
        [user_id],
        query_name="notifications.count_unread",
    )
    return int(result.rows[0]["unread"])


def mark_notification_read(pool: OptimizedPool, notification_id: str, user_id: str) -> bool:
    result = pool.query(
        """
        UPDATE notifications
        SET read_at = COALESCE(read_at, CURRENT_TIMESTAMP)
        WHERE id = $2
          AND (user_id = $1 OR school_id IN (SELECT school_id FROM users WHERE id = $1))
        """,
        [user_id, notification_id],
        query_name="notifications.mark_read",
    )
    return result.row_count > 0
