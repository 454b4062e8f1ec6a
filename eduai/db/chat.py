from __future__ import annotations

from typing import Literal

from eduai.db.pool import OptimizedPool, Row
from eduai.db.users import new_id


MessageType = Literal["user", "assistant"]

_TITLE_MAX = 50


def session_title(first_message: str) -> str:
    text = " ".join(first_message.split())
    if len(text) <= _TITLE_MAX:
        return text
    return text[:_TITLE_MAX] + "..."


def create_session(pool: OptimizedPool, user_id: str, title: str | None = None) -> Row:
    return pool.query(
        "INSERT INTO chat_sessions (id, user_id, title) VALUES ($1, $2, $3) RETURNING *",
        [new_id(), user_id, title],
        query_name="chat.create_session",
    ).rows[0]


def get_session_for_user(pool: OptimizedPool, session_id: str, user_id: str) -> Row | None:
    rows = pool.query(
        "SELECT * FROM chat_sessions WHERE id = $1 AND user_id = $2",
        [session_id, user_id],
        query_name="chat.get_session",
    ).rows
    return rows[0] if rows else None


def add_message(
    pool: OptimizedPool,
    session_id: str,
    message_type: MessageType,
    content: str,
    credits_cost: int = 0,
) -> Row:
    with pool.get_client() as client:
        tx = client.begin()
        try:
            row = client.query(
                """
                INSERT INTO chat_messages (id, session_id, type, content, credits_cost)
                VALUES ($1, $2, $3, $4, $5)
                RETURNING *
                """,
                [new_id(), session_id, message_type, content, credits_cost],
                query_name="chat.add_message",
            ).rows[0]
            _ = client.query(
                """
                UPDATE chat_sessions
                SET total_messages = total_messages + 1,
                    credits_used = credits_used + $2,
                    updated_at = CURRENT_TIMESTAMP
                WHERE id = $1
                """,
                [session_id, credits_cost],
                query_name="chat.bump_session",
            )
        except Exception:
            tx.rollback()
            raise
        tx.commit()
    return row


def list_messages(pool: OptimizedPool, session_id: str, limit: int = 100) -> list[Row]:
    return pool.query(
        """
        SELECT * FROM chat_messages
        WHERE session_id = $1
        ORDER BY created_at ASC
        LIMIT $2
        """,
        [session_id, limit],
        query_name="chat.list_messages",
    ).rows


def get_session(pool: OptimizedPool, session_id: str) -> Row | None:
    rows = pool.query(
        "SELECT * FROM chat_sessions WHERE id = $1", [session_id], query_name="chat.get_session_by_id"
    ).rows
    return rows[0] if rows else None


def list_sessions_for_user(pool: OptimizedPool, user_id: str, limit: int = 50, offset: int = 0) -> list[Row]:
    return pool.query(
        """
        SELECT * FROM chat_sessions
        WHERE user_id = $1
        ORDER BY updated_at DESC, created_at DESC, id
        LIMIT $2 OFFSET $3
        """,
        [user_id, limit, offset],
        query_name="chat.list_sessions",
    ).rows


def count_sessions_for_user(pool: OptimizedPool, user_id: str) -> int:
    row = pool.query(
        "SELECT COUNT(*) AS total FROM chat_sessions WHERE user_id = $1",
        [user_id],
        query_name="chat.count_sessions",
    ).rows[0]
    return int(row["total"])
