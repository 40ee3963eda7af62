"""
Header-to-table matching.

A table matches when every CSV header names one of its columns,
case-insensitively. Tables are tried in lexicographic order and the first
match wins; additional candidates are only reported, never preferred.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from app.domain.imports.catalog import ColumnCatalog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TableMatch:
    table_name: str
    # Canonical column names in header order.
    columns: Tuple[str, ...]


def _table_covers(headers: Sequence[str], columns) -> bool:
    return all(header.lower() in columns for header in headers)


def find_candidate_tables(headers: Sequence[str], catalog: ColumnCatalog) -> List[str]:
    """Every table whose columns are a superset of the headers, in enumeration order."""
    return [
        table_name
        for table_name in catalog.table_names()
        if _table_covers(headers, catalog[table_name])
    ]


def match_headers(headers: Sequence[str], catalog: ColumnCatalog) -> Optional[TableMatch]:
    """
    Select the target table for a header row.

    Returns:
        TableMatch for the first covering table, or None when no table
        contains all headers.
    """
    if not headers:
        return None

    for table_name in catalog.table_names():
        columns = catalog[table_name]
        if _table_covers(headers, columns):
            return TableMatch(
                table_name=table_name,
                columns=tuple(columns[header.lower()] for header in headers),
            )
    return None


def warn_if_ambiguous(headers: Sequence[str], catalog: ColumnCatalog, chosen: TableMatch) -> List[str]:
    candidates = find_candidate_tables(headers, catalog)
    if len(candidates) > 1:
        logger.warning(
            "Headers %s match %d tables %s; importing into '%s' (first in name order)",
            list(headers),
            len(candidates),
            candidates,
            chosen.table_name,
        )
    return candidates
