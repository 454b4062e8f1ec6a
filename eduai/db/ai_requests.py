from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from eduai.db.pool import OptimizedPool, Row
from eduai.db.users import new_id


@dataclass(frozen=True)
class AIRequestLog:
    user_id: str | None
    request_type: str
    provider_id: str
    model_used: str
    success: bool
    processing_time_ms: int = 0
    tokens_used: int | None = None
    priority: str = "normal"
    parameters: Mapping[str, Any] = field(default_factory=dict)
    error: str | None = None


def log_ai_request(pool: OptimizedPool, entry: AIRequestLog) -> Row:
    return pool.query(
        """
        INSERT INTO ai_requests (
          id, user_id, request_type, provider_id, model_used, priority, parameters,
          tokens_used, processing_time_ms, success, error
        )
        VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
        RETURNING *
        """,
        [
            new_id(),
            entry.user_id,
            entry.request_type,
            entry.provider_id,
            entry.model_used,
            entry.priority,
            json.dumps(dict(entry.parameters)),
            entry.tokens_used,
            entry.processing_time_ms,
            entry.success,
            entry.error,
        ],
        query_name="ai_requests.log",
    ).rows[0]


def list_ai_requests_for_user(pool: OptimizedPool, user_id: str, limit: int = 50) -> list[Row]:
    return pool.query(
        "SELECT * FROM ai_requests WHERE user_id = $1 ORDER BY created_at DESC LIMIT $2",
        [user_id, limit],
        query_name="ai_requests.list_for_user",
    ).rows
