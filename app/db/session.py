import logging
import os
import socket
from contextlib import closing, contextmanager
from typing import Iterator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.engine.url import make_url

from app.core.config import settings

logger = logging.getLogger(__name__)

_engine = None


def _report_connection_failure(exc: Exception) -> None:
    """Log high-signal diagnostics when the application cannot reach the database."""
    logger.warning("Could not connect to database: %s", exc)
    logger.warning("The application will start but imports will fail until the connection succeeds.")

    try:
        url = make_url(settings.database_url)
    except Exception as parse_error:  # pragma: no cover
        logger.warning("Unable to parse DATABASE_URL (%s); skipping detailed diagnostics.", parse_error)
        return

    if url.get_backend_name() == "sqlite":
        return

    masked_url = url._replace(password="***" if url.password else None)
    logger.warning(
        "Database connection settings: dialect=%s driver=%s host=%s port=%s database=%s user=%s",
        masked_url.get_backend_name(),
        masked_url.get_driver_name() or "default",
        masked_url.host or "localhost",
        masked_url.port or "(default)",
        masked_url.database,
        masked_url.username,
    )

    host = masked_url.host or "localhost"
    port = masked_url.port or 5432

    try:
        with closing(socket.create_connection((host, port), timeout=2)):
            logger.warning("Socket check: able to reach %s:%s", host, port)
    except OSError as socket_err:
        logger.warning("Socket check: unable to reach %s:%s (%s)", host, port, socket_err)


def _engine_kwargs() -> dict:
    kwargs = {"pool_pre_ping": True}
    url = make_url(settings.database_url)
    if settings.database_sslmode and url.get_backend_name() == "postgresql":
        kwargs["connect_args"] = {"sslmode": settings.database_sslmode}
    return kwargs


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        _engine = create_engine(settings.database_url, **_engine_kwargs())
        if os.getenv("SKIP_DB_INIT") != "1":
            # Test connection eagerly so failures surface in the logs at first use.
            try:
                with _engine.connect() as conn:
                    conn.execute(text("SELECT 1"))
            except Exception as e:
                _report_connection_failure(e)
    return _engine


def dispose_engine() -> None:
    """Close every pooled connection; called on application shutdown."""
    global _engine
    if _engine is not None:
        _engine.dispose()
        _engine = None


@contextmanager
def checkout_connection(engine: Engine = None) -> Iterator[Connection]:
    """
    Check a connection out of the pool for the duration of one import job.

    The connection goes back to the pool on every exit path, including
    matcher, parse and insert failures.
    """
    engine = engine or get_engine()
    conn = engine.connect()
    try:
        yield conn
    finally:
        conn.close()


def check_connection(engine: Engine = None) -> None:
    """Run a trivial query; raises whatever the driver raises on failure."""
    with checkout_connection(engine) as conn:
        conn.execute(text("SELECT 1"))
