"""
Tests for header-to-table matching over an in-memory column catalog.
"""
import logging

from app.domain.imports.catalog import ColumnCatalog
from app.domain.imports.matcher import (
    TableMatch,
    find_candidate_tables,
    match_headers,
    warn_if_ambiguous,
)


def _catalog(tables):
    return ColumnCatalog(
        (table_name, column) for table_name, columns in tables.items() for column in columns
    )


def test_single_superset_table_is_selected():
    catalog = _catalog({
        "orders": ["id", "sku", "qty"],
        "customers": ["id", "name", "email"],
    })

    match = match_headers(["sku", "qty"], catalog)

    assert match == TableMatch(table_name="orders", columns=("sku", "qty"))


def test_no_covering_table_returns_none():
    catalog = _catalog({
        "orders": ["id", "sku", "qty"],
        "customers": ["id", "name"],
    })

    assert match_headers(["sku", "price"], catalog) is None


def test_matching_is_case_insensitive_and_returns_canonical_names():
    catalog = _catalog({"Orders": ["OrderId", "SKU", "Qty"]})

    match = match_headers(["orderid", "sku", "QTY"], catalog)

    assert match.table_name == "Orders"
    assert match.columns == ("OrderId", "SKU", "Qty")


def test_mapping_preserves_header_order_not_table_order():
    catalog = _catalog({"orders": ["id", "sku", "qty"]})

    match = match_headers(["qty", "id", "sku"], catalog)

    assert match.columns == ("qty", "id", "sku")
    assert len(match.columns) == 3


def test_first_table_in_name_order_wins_when_several_match():
    # Inserted out of order on purpose; enumeration is by table name.
    catalog = _catalog({
        "zeta_orders": ["sku", "qty"],
        "alpha_orders": ["sku", "qty", "note"],
        "mid_orders": ["id", "sku", "qty"],
    })

    results = {match_headers(["sku", "qty"], catalog).table_name for _ in range(5)}

    assert results == {"alpha_orders"}
    assert find_candidate_tables(["sku", "qty"], catalog) == [
        "alpha_orders",
        "mid_orders",
        "zeta_orders",
    ]


def test_ambiguous_match_logs_every_candidate(caplog):
    catalog = _catalog({"a_orders": ["sku"], "b_orders": ["sku"]})
    chosen = match_headers(["sku"], catalog)

    with caplog.at_level(logging.WARNING, logger="app.domain.imports.matcher"):
        candidates = warn_if_ambiguous(["sku"], catalog, chosen)

    assert candidates == ["a_orders", "b_orders"]
    assert "a_orders" in caplog.text and "b_orders" in caplog.text


def test_empty_header_list_never_matches():
    catalog = _catalog({"orders": ["id"]})

    assert match_headers([], catalog) is None


def test_empty_catalog_never_matches():
    assert match_headers(["sku"], _catalog({})) is None
