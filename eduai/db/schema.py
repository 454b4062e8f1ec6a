# pyright: reportMissingImports=false
"""Table declarations used for DDL only.

Application code never goes through these objects: reads and writes are raw
parameterized SQL issued via :class:`eduai.db.pool.OptimizedPool`.
"""

from __future__ import annotations

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    false,
    func,
    true,
)


metadata = MetaData()

USER_ROLES = (
    "teacher",
    "school_admin",
    "student",
    "platform_admin",
    "teacher_individual",
    "teacher_school",
)
TRANSACTION_TYPES = ("purchase", "usage", "refund", "bonus", "admin_adjustment")
NOTIFICATION_SEVERITIES = ("info", "warning", "error")


def _in_list(column: str, values: tuple[str, ...]) -> str:
    return f"{column} IN ({', '.join(repr(v) for v in values)})"


def _timestamps() -> list[Column[object]]:
    return [
        Column("created_at", DateTime(), server_default=func.current_timestamp(), nullable=False),
        Column("updated_at", DateTime(), server_default=func.current_timestamp(), nullable=False),
    ]


schools = Table(
    "schools",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(255), nullable=False),
    Column("city", String(120), nullable=True),
    Column("address", String(255), nullable=True),
    Column("phone", String(40), nullable=True),
    Column("website", String(255), nullable=True),
    *_timestamps(),
)

users = Table(
    "users",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("email", String(320), nullable=False, unique=True),
    Column("password_hash", String(255), nullable=False),
    Column("first_name", String(120), nullable=False),
    Column("last_name", String(120), nullable=False),
    Column("role", String(40), nullable=False, server_default="teacher_individual"),
    Column("school_id", String(36), ForeignKey("schools.id", ondelete="SET NULL"), nullable=True),
    Column("credits_balance", Integer(), nullable=False, server_default="0"),
    Column("is_active", Boolean(), nullable=False, server_default=true()),
    Column("email_verified", Boolean(), nullable=False, server_default=false()),
    Column("status", String(40), nullable=False, server_default="active"),
    Column("last_login_at", DateTime(), nullable=True),
    *_timestamps(),
    CheckConstraint("credits_balance >= 0", name="ck_users_credits_non_negative"),
    CheckConstraint(_in_list("role", USER_ROLES), name="ck_users_role"),
    Index("ix_users_school_id", "school_id"),
    Index("ix_users_role", "role"),
    Index("ix_users_created_at", "created_at"),
)

credit_transactions = Table(
    "credit_transactions",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("transaction_type", String(40), nullable=False),
    Column("amount", Integer(), nullable=False),
    Column("balance_before", Integer(), nullable=False),
    Column("balance_after", Integer(), nullable=False),
    Column("description", Text(), nullable=True),
    Column("related_subscription_id", String(36), nullable=True),
    Column("created_at", DateTime(), server_default=func.current_timestamp(), nullable=False),
    CheckConstraint(_in_list("transaction_type", TRANSACTION_TYPES), name="ck_credit_tx_type"),
    CheckConstraint("balance_after >= 0", name="ck_credit_tx_balance_after"),
    Index("ix_credit_transactions_user_created", "user_id", "created_at"),
)

notifications = Table(
    "notifications",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=True),
    Column("school_id", String(36), ForeignKey("schools.id", ondelete="CASCADE"), nullable=True),
    Column("severity", String(16), nullable=False, server_default="info"),
    Column("type", String(80), nullable=False),
    Column("title", String(255), nullable=False),
    Column("message", Text(), nullable=False),
    Column("meta", JSON(), nullable=True),
    Column("read_at", DateTime(), nullable=True),
    Column("created_at", DateTime(), server_default=func.current_timestamp(), nullable=False),
    CheckConstraint(_in_list("severity", NOTIFICATION_SEVERITIES), name="ck_notifications_severity"),
    Index("ix_notifications_user_created", "user_id", "created_at"),
    Index("ix_notifications_school_created", "school_id", "created_at"),
)

chat_sessions = Table(
    "chat_sessions",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("title", String(255), nullable=True),
    Column("total_messages", Integer(), nullable=False, server_default="0"),
    Column("credits_used", Integer(), nullable=False, server_default="0"),
    Column("is_active", Boolean(), nullable=False, server_default=true()),
    *_timestamps(),
)

chat_messages = Table(
    "chat_messages",
    metadata,
    Column("id", String(36), primary_key=True),
    Column(
        "session_id", String(36), ForeignKey("chat_sessions.id", ondelete="CASCADE"), nullable=False
    ),
    Column("type", String(16), nullable=False),
    Column("content", Text(), nullable=False),
    Column("credits_cost", Integer(), nullable=False, server_default="0"),
    Column("created_at", DateTime(), server_default=func.current_timestamp(), nullable=False),
    CheckConstraint("type IN ('user', 'assistant')", name="ck_chat_messages_type"),
    Index("ix_chat_messages_session_created", "session_id", "created_at"),
)

ai_requests = Table(
    "ai_requests",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
    Column("request_type", String(40), nullable=False),
    Column("provider_id", String(40), nullable=False),
    Column("model_used", String(120), nullable=False),
    Column("priority", String(16), nullable=False, server_default="normal"),
    Column("parameters", JSON(), nullable=True),
    Column("tokens_used", Integer(), nullable=True),
    Column("processing_time_ms", Integer(), nullable=False, server_default="0"),
    Column("cost", Float(), nullable=True),
    Column("success", Boolean(), nullable=False),
    Column("cached", Boolean(), nullable=False, server_default=false()),
    Column("error", Text(), nullable=True),
    Column("created_at", DateTime(), server_default=func.current_timestamp(), nullable=False),
    Index("ix_ai_requests_created", "created_at"),
)

auth_rate_limits = Table(
    "auth_rate_limits",
    metadata,
    Column("key", String(512), primary_key=True),
    Column("failures", Integer(), nullable=False),
    Column("reset_at", DateTime(), nullable=False),
)
