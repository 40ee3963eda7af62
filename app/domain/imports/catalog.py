"""
Schema catalog loading for header-driven table matching.

The catalog is a per-job snapshot of every user table's columns, keyed by
lower-cased column name so that header lookups are case-insensitive while
the canonical spelling is kept for the INSERT statement.
"""
from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, Mapping, Tuple

from sqlalchemy import inspect, text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from app.domain.imports.errors import CatalogUnavailable, KeyResolutionFailed

logger = logging.getLogger(__name__)


class ColumnCatalog(Mapping[str, Mapping[str, str]]):
    """Read-only mapping of table name -> {lower(column): column}."""

    def __init__(self, rows: Iterable[Tuple[str, str]]):
        tables: Dict[str, Dict[str, str]] = {}
        for table_name, column_name in rows:
            tables.setdefault(table_name, {})[column_name.lower()] = column_name
        self._tables = {
            name: MappingProxyType(columns) for name, columns in tables.items()
        }

    def __getitem__(self, table_name: str) -> Mapping[str, str]:
        return self._tables[table_name]

    def __iter__(self):
        return iter(self._tables)

    def __len__(self) -> int:
        return len(self._tables)

    def table_names(self) -> list[str]:
        """Tables in the enumeration order used for matching."""
        return sorted(self._tables)


def _is_postgres(conn: Connection) -> bool:
    return conn.dialect.name == "postgresql"


def _reflect_columns(conn: Connection, schema: str) -> list[Tuple[str, str]]:
    inspector = inspect(conn)
    reflect_schema = None if conn.dialect.name == "sqlite" else schema
    rows = []
    for table_name in inspector.get_table_names(schema=reflect_schema):
        for column in inspector.get_columns(table_name, schema=reflect_schema):
            rows.append((table_name, column["name"]))
    return rows


def load_column_catalog(conn: Connection, schema: str = "public") -> ColumnCatalog:
    """
    Build the column catalog for every table in the user schema.

    PostgreSQL is read through information_schema in a single query; other
    dialects fall back to SQLAlchemy reflection.

    Raises:
        CatalogUnavailable: if the metadata cannot be read.
    """
    try:
        if _is_postgres(conn):
            result = conn.execute(
                text("""
                    SELECT table_name, column_name
                    FROM information_schema.columns
                    WHERE table_schema = :schema
                    ORDER BY table_name, ordinal_position
                """),
                {"schema": schema},
            )
            rows = [(row[0], row[1]) for row in result]
        else:
            rows = _reflect_columns(conn, schema)
    except SQLAlchemyError as exc:
        logger.error("Failed to load column catalog for schema '%s': %s", schema, exc)
        raise CatalogUnavailable(str(exc)) from exc

    catalog = ColumnCatalog(rows)
    logger.info("Loaded column catalog: %d tables in schema '%s'", len(catalog), schema)
    return catalog


def _reflect_unique_keys(conn: Connection, table_name: str, schema: str) -> set[str]:
    inspector = inspect(conn)
    reflect_schema = None if conn.dialect.name == "sqlite" else schema
    columns = set(
        inspector.get_pk_constraint(table_name, schema=reflect_schema).get("constrained_columns") or []
    )
    for constraint in inspector.get_unique_constraints(table_name, schema=reflect_schema):
        columns.update(constraint.get("column_names") or [])
    # SQLite backs inline UNIQUE columns with automatic indexes that are hidden by default.
    index_kw = {"include_auto_indexes": True} if conn.dialect.name == "sqlite" else {}
    for index in inspector.get_indexes(table_name, schema=reflect_schema, **index_kw):
        if index.get("unique"):
            columns.update(c for c in index.get("column_names") or [] if c)
    return columns


def resolve_unique_keys(conn: Connection, table_name: str, schema: str = "public") -> FrozenSet[str]:
    """
    Return every column that takes part in a PRIMARY KEY or UNIQUE constraint.

    Multiple constraints are merged into one flat set. A table with two
    independent unique constraints therefore yields a combined key that may
    not match any single real constraint.

    Raises:
        KeyResolutionFailed: if the constraint metadata cannot be read.
    """
    try:
        if _is_postgres(conn):
            result = conn.execute(
                text("""
                    SELECT kcu.column_name
                    FROM information_schema.table_constraints tc
                    JOIN information_schema.key_column_usage kcu
                      ON tc.constraint_name = kcu.constraint_name
                      AND tc.table_schema = kcu.table_schema
                    WHERE tc.constraint_type IN ('PRIMARY KEY', 'UNIQUE')
                      AND tc.table_name = :table_name
                      AND tc.table_schema = :schema
                """),
                {"table_name": table_name, "schema": schema},
            )
            columns = {row[0] for row in result}
        else:
            columns = _reflect_unique_keys(conn, table_name, schema)
    except SQLAlchemyError as exc:
        logger.error("Failed to resolve unique keys for table '%s': %s", table_name, exc)
        raise KeyResolutionFailed(table_name, str(exc)) from exc

    return frozenset(columns)


def usable_conflict_columns(unique_keys: FrozenSet[str], mapped_columns: Iterable[str]) -> Tuple[str, ...]:
    """Unique-key columns that are present among the mapped columns, in mapping order."""
    return tuple(col for col in mapped_columns if col in unique_keys)
