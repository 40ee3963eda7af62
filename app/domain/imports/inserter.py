"""
Conflict-aware multi-row INSERT construction and execution.

Each batch becomes exactly one statement:

    INSERT INTO "table" ("c1", "c2") VALUES (:p0_0, :p0_1), (:p1_0, :p1_1)
    ON CONFLICT ("c1") DO NOTHING

All values are bound parameters; only quoted identifiers are interpolated.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Sequence, Tuple

from sqlalchemy import text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from app.domain.imports.batching import Row
from app.domain.imports.errors import BatchInsertFailed

logger = logging.getLogger(__name__)


def _quote(identifier: str) -> str:
    """Return a double-quoted identifier for safe SQL usage."""
    return '"' + identifier.replace('"', '""') + '"'


def normalize_value(value: Any) -> Any:
    """Empty CSV fields are stored as NULL, never as empty strings."""
    if value == "":
        return None
    return value


def build_insert_statement(
    table_name: str,
    columns: Sequence[str],
    headers: Sequence[str],
    rows: Sequence[Row],
    conflict_columns: Sequence[str] = (),
) -> Tuple[str, Dict[str, Any]]:
    """
    Build one parameterized INSERT for a batch.

    Args:
        table_name: Target table.
        columns: Canonical column names, positionally aligned with headers.
        headers: CSV header names used as keys in each row.
        rows: Parsed CSV rows (header -> raw value).
        conflict_columns: Unique-key columns among the mapped columns; when
            non-empty the statement skips rows that collide on them.

    Returns:
        (sql, params) ready for ``conn.execute(text(sql), params)``.
    """
    if not rows:
        raise ValueError("Cannot build an INSERT for an empty batch")
    if len(columns) != len(headers):
        raise ValueError("Column mapping and header list must be the same length")

    params: Dict[str, Any] = {}
    values_sql: List[str] = []
    for row_index, row in enumerate(rows):
        placeholders = []
        for col_index, header in enumerate(headers):
            name = f"p{row_index}_{col_index}"
            params[name] = normalize_value(row.get(header))
            placeholders.append(f":{name}")
        values_sql.append(f"({', '.join(placeholders)})")

    columns_sql = ", ".join(_quote(col) for col in columns)
    sql = f"INSERT INTO {_quote(table_name)} ({columns_sql}) VALUES {', '.join(values_sql)}"

    if conflict_columns:
        conflict_sql = ", ".join(_quote(col) for col in conflict_columns)
        sql += f" ON CONFLICT ({conflict_sql}) DO NOTHING"

    return sql, params


class BatchInserter:
    """
    Flushes batches into one table over a single checked-out connection.

    Every flush runs in its own transaction, so a failing batch never undoes
    the batches committed before it.
    """

    def __init__(
        self,
        conn: Connection,
        table_name: str,
        columns: Sequence[str],
        headers: Sequence[str],
        conflict_columns: Sequence[str] = (),
    ):
        self.conn = conn
        self.table_name = table_name
        self.columns = tuple(columns)
        self.headers = tuple(headers)
        self.conflict_columns = tuple(conflict_columns)
        self.rows_inserted = 0
        self.batches_flushed = 0

    def flush(self, batch: Sequence[Row]) -> int:
        """Insert one batch and return the number of rows actually written."""
        if not batch:
            return 0

        sql, params = build_insert_statement(
            self.table_name, self.columns, self.headers, batch, self.conflict_columns
        )
        logger.debug("Flushing batch of %d rows into '%s'", len(batch), self.table_name)

        try:
            with self.conn.begin():
                result = self.conn.execute(text(sql), params)
        except SQLAlchemyError as exc:
            logger.error(
                "Error inserting batch %d into '%s': %s",
                self.batches_flushed + 1,
                self.table_name,
                exc,
            )
            reason = str(getattr(exc, "orig", None) or exc)
            raise BatchInsertFailed(self.table_name, self.rows_inserted, reason) from exc

        # Rows skipped by ON CONFLICT DO NOTHING are not counted by the driver.
        written = max(result.rowcount or 0, 0)
        self.rows_inserted += written
        self.batches_flushed += 1
        return written
