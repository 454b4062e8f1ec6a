"""Credits ledger.

Balance changes and their ledger rows are written in one transaction. The
balance update is a single conditional statement, so two concurrent debits
can never both pass the sufficiency check; the ``credits_balance >= 0``
table constraint backs this up.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal

from eduai.db.pool import OptimizedPool, PoolClient, Row
from eduai.db.users import new_id


logger = logging.getLogger(__name__)

MaterialType = Literal[
    "worksheet", "lesson-plan", "quiz", "project", "presentation", "activity", "batch", "chat"
]

CREDIT_REQUIREMENTS: dict[str, int] = {
    "worksheet": 5,
    "lesson-plan": 8,
    "quiz": 6,
    "project": 10,
    "presentation": 7,
    "activity": 6,
    "batch": 15,
    "chat": 1,
}


class UserNotFoundError(LookupError):
    def __init__(self, user_id: str) -> None:
        super().__init__("Uživatel nenalezen")
        self.user_id = user_id


class InsufficientCreditsError(Exception):
    def __init__(self, *, required: int, available: int) -> None:
        super().__init__(f"Nedostatek kreditů. Potřebujete {required} kreditů, máte {available}.")
        self.required = required
        self.available = available


@dataclass(frozen=True)
class CreditCharge:
    credits_used: int
    balance: int
    transaction: Row


def _check_amount(amount: int) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValueError("amount must be a positive integer")
    return amount


def _current_balance(client: PoolClient, user_id: str) -> int | None:
    rows = client.query("SELECT credits_balance FROM users WHERE id = $1", [user_id]).rows
    return int(rows[0]["credits_balance"]) if rows else None


def _insert_transaction(
    client: PoolClient,
    *,
    user_id: str,
    transaction_type: str,
    amount: int,
    balance_after: int,
    description: str | None,
    related_subscription_id: str | None = None,
) -> Row:
    result = client.query(
        """
        INSERT INTO credit_transactions (
          id, user_id, transaction_type, amount, balance_before, balance_after,
          description, related_subscription_id
        )
        VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
        RETURNING *
        """,
        [
            new_id(),
            user_id,
            transaction_type,
            amount,
            balance_after - amount,
            balance_after,
            description,
            related_subscription_id,
        ],
        query_name="credits.insert_transaction",
    )
    return result.rows[0]


def add_credits(
    pool: OptimizedPool,
    user_id: str,
    amount: int,
    description: str | None = None,
    *,
    transaction_type: str = "purchase",
    related_subscription_id: str | None = None,
) -> Row:
    amount = _check_amount(amount)
    with pool.get_client() as client:
        tx = client.begin()
        try:
            updated = client.query(
                """
                UPDATE users
                SET credits_balance = credits_balance + $2, updated_at = CURRENT_TIMESTAMP
                WHERE id = $1
                RETURNING credits_balance
                """,
                [user_id, amount],
                query_name="credits.add",
            ).rows
            if not updated:
                raise UserNotFoundError(user_id)
            row = _insert_transaction(
                client,
                user_id=user_id,
                transaction_type=transaction_type,
                amount=amount,
                balance_after=int(updated[0]["credits_balance"]),
                description=description or "Credit purchase",
                related_subscription_id=related_subscription_id,
            )
        except Exception:
            tx.rollback()
            raise
        tx.commit()
    return row


def deduct_credits(
    pool: OptimizedPool,
    user_id: str,
    amount: int,
    description: str | None = None,
    *,
    transaction_type: str = "usage",
) -> Row:
    amount = _check_amount(amount)
    with pool.get_client() as client:
        tx = client.begin()
        try:
            updated = client.query(
                """
                UPDATE users
                SET credits_balance = credits_balance - $2, updated_at = CURRENT_TIMESTAMP
                WHERE id = $1 AND credits_balance >= $2
                RETURNING credits_balance
                """,
                [user_id, amount],
                query_name="credits.deduct",
            ).rows
            if not updated:
                available = _current_balance(client, user_id)
                if available is None:
                    raise UserNotFoundError(user_id)
                raise InsufficientCreditsError(required=amount, available=available)
            row = _insert_transaction(
                client,
                user_id=user_id,
                transaction_type=transaction_type,
                amount=-amount,
                balance_after=int(updated[0]["credits_balance"]),
                description=description or "Credit usage for AI assistant",
            )
        except Exception:
            tx.rollback()
            raise
        tx.commit()
    return row


def charge_for(
    pool: OptimizedPool, user_id: str, material_type: str, description: str | None = None
) -> CreditCharge:
    required = CREDIT_REQUIREMENTS.get(material_type)
    if required is None:
        raise ValueError(f"unknown material type: {material_type!r}")
    row = deduct_credits(pool, user_id, required, description or f"{material_type} generation")
    logger.info("charged %d credits for %s", required, material_type)
    return CreditCharge(credits_used=required, balance=int(row["balance_after"]), transaction=row)


def get_balance(pool: OptimizedPool, user_id: str) -> int:
    rows = pool.query(
        "SELECT credits_balance FROM users WHERE id = $1", [user_id], query_name="credits.balance"
    ).rows
    if not rows:
        raise UserNotFoundError(user_id)
    return int(rows[0]["credits_balance"])


def list_transactions(pool: OptimizedPool, user_id: str, limit: int = 50, offset: int = 0) -> list[Row]:
    return pool.query(
        """
        SELECT * FROM credit_transactions
        WHERE user_id = $1
        ORDER BY created_at DESC
        LIMIT $2 OFFSET $3
        """,
        [user_id, limit, offset],
        query_name="credits.list_transactions",
    ).rows


def get_usage_stats(pool: OptimizedPool, user_id: str) -> dict[str, int]:
    row = pool.query(
        """
        SELECT
          COALESCE(SUM(CASE WHEN transaction_type = 'usage' THEN ABS(amount) ELSE 0 END), 0) AS total_used,
          COALESCE(SUM(CASE WHEN transaction_type = 'purchase' THEN amount ELSE 0 END), 0) AS total_purchased,
          COUNT(*) AS transactions_count
        FROM credit_transactions
        WHERE user_id = $1
        """,
        [user_id],
        query_name="credits.usage_stats",
    ).rows[0]
    return {k: int(v) for k, v in row.items()}
