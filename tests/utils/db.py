"""
Small query helpers shared by integration-style tests.
"""

from sqlalchemy import text
from sqlalchemy.engine import Engine


def count_rows(engine: Engine, table_name: str) -> int:
    with engine.connect() as conn:
        return conn.execute(text(f'SELECT COUNT(*) FROM "{table_name}"')).scalar()


def fetch_rows(engine: Engine, sql: str):
    with engine.connect() as conn:
        return conn.execute(text(sql)).fetchall()
