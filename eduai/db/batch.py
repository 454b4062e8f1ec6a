from __future__ import annotations

import logging
import re
from collections.abc import Collection, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from eduai.db.pool import OptimizedPool, PoolClient, Row


logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass(frozen=True)
class RowUpdate:
    id: str
    data: Mapping[str, Any] = field(default_factory=dict)


def _check_identifier(name: str, what: str) -> None:
    if not _IDENTIFIER_RE.match(name):
        raise ValueError(f"invalid {what} name: {name!r}")


class BatchOperationOptimizer:
    def __init__(self, pool: OptimizedPool) -> None:
        self._pool = pool

    def execute_batch_update(
        self,
        table: str,
        updates: Sequence[RowUpdate],
        batch_size: int = DEFAULT_BATCH_SIZE,
        *,
        allowed_fields: Collection[str] | None = None,
    ) -> list[Row]:
        """Apply per-row updates in consecutive batches.

        Each batch commits on its own. The first failing batch is rolled back
        and its error re-raised; batches before it stay committed and batches
        after it are never attempted.
        """
        if batch_size <= 0:
            raise ValueError("batch_size must be > 0")

        _check_identifier(table, "table")
        for upd in updates:
            for column in upd.data:
                _check_identifier(column, "column")
                if allowed_fields is not None and column not in allowed_fields:
                    raise ValueError(f"column {column!r} may not be updated")

        results: list[Row] = []
        committed = 0
        for index, start in enumerate(range(0, len(updates), batch_size)):
            batch = updates[start : start + batch_size]
            try:
                results.extend(self._execute_single_batch(table, batch))
            except Exception:
                logger.error(
                    "batch update of %s failed at batch %d (%d batches committed)",
                    table,
                    index,
                    committed,
                )
                raise
            committed += 1

        return results

    def _execute_single_batch(self, table: str, batch: Sequence[RowUpdate]) -> list[Row]:
        with self._pool.get_client() as client:
            tx = client.begin()
            try:
                rows = [row for upd in batch for row in self._update_row(client, table, upd)]
            except Exception:
                tx.rollback()
                raise
            tx.commit()
            return rows

    @staticmethod
    def _update_row(client: PoolClient, table: str, upd: RowUpdate) -> list[Row]:
        columns = list(upd.data)
        assignments = [f"{col} = ${i}" for i, col in enumerate(columns, start=2)]
        assignments.append("updated_at = CURRENT_TIMESTAMP")
        sql = f"UPDATE {table} SET {', '.join(assignments)} WHERE id = $1 RETURNING *"
        result = client.query(sql, [upd.id, *upd.data.values()])
        return result.rows
