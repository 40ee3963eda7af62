"""
Pytest configuration and fixtures for CSV autoloader tests.

Tests run against throwaway SQLite databases under tmp_path, so no
Postgres instance is needed. The import pipeline reflects SQLite schemas
through SQLAlchemy's inspector instead of information_schema.
"""

import os

# Never probe the configured DATABASE_URL from tests.
os.environ.setdefault("SKIP_DB_INIT", "1")

import pytest
from sqlalchemy import create_engine, event, text


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite engine shared across threads (TestClient runs the pipeline in a worker)."""
    db_engine = create_engine(
        f"sqlite:///{tmp_path / 'autoloader.db'}",
        connect_args={"check_same_thread": False},
    )
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def orders_table(engine):
    """orders(id PK, sku, qty) - the table most scenarios import into."""
    with engine.begin() as conn:
        conn.execute(text("""
            CREATE TABLE orders (
                id INTEGER PRIMARY KEY,
                sku TEXT,
                qty INTEGER
            )
        """))
    return "orders"


@pytest.fixture
def insert_statements(engine):
    """Record every INSERT statement the engine executes."""
    statements = []

    @event.listens_for(engine, "before_cursor_execute")
    def _record(conn, cursor, statement, parameters, context, executemany):
        if statement.lstrip().upper().startswith("INSERT"):
            statements.append((statement, parameters))

    yield statements
    event.remove(engine, "before_cursor_execute", _record)


@pytest.fixture
def write_csv(tmp_path):
    """Write CSV text to a file under tmp_path and return its path."""
    counter = {"n": 0}

    def _write(content: str, name: str = None) -> str:
        counter["n"] += 1
        path = tmp_path / (name or f"upload_{counter['n']}.csv")
        path.write_text(content, encoding="utf-8")
        return str(path)

    return _write
