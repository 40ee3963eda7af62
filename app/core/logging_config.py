"""
Logging setup for the autoloader.

Every line carries the import job it belongs to (the CSV file name), so
interleaved uploads running on the threadpool can be told apart in the
service log. Lines emitted outside a job show ``-``.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from logging.config import dictConfig
from typing import Iterator, Optional


NO_JOB = "-"

_current_job: ContextVar[str] = ContextVar("csv_import_job", default=NO_JOB)
_is_configured = False


class ImportJobFilter(logging.Filter):
    """Stamp each record with the import job active in the emitting context."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.job = _current_job.get()
        return True


@contextmanager
def import_job_context(job: str) -> Iterator[None]:
    token = _current_job.set(job)
    try:
        yield
    finally:
        _current_job.reset(token)


def configure_logging(level: Optional[str] = None) -> None:
    """
    Install the console handler once per process.

    Args:
        level: Log level name; defaults to INFO.
    """
    global _is_configured

    if _is_configured:
        return

    log_level = (level or "INFO").upper()

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {
                "import_job": {"()": ImportJobFilter},
            },
            "formatters": {
                "autoloader": {
                    "format": "%(asctime)s %(levelname)s [%(job)s] %(name)s: %(message)s",
                }
            },
            "handlers": {
                "stdout": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stdout",
                    "formatter": "autoloader",
                    "filters": ["import_job"],
                }
            },
            "loggers": {
                "app": {"level": log_level},
                # Statement echo is summarized by the pipeline's own batch logging.
                "sqlalchemy.engine": {"level": "WARNING"},
            },
            "root": {"handlers": ["stdout"], "level": "WARNING"},
        }
    )

    _is_configured = True
