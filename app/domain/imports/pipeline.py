"""
Streaming import pipeline: CSV file -> matched table.

One pipeline instance runs one job:

1. AWAITING_HEADERS - read only the header line of the file.
2. MATCHING         - load the column catalog, pick the target table,
                      resolve its unique keys.
3. STREAMING        - reopen the file and pull rows one at a time into a
                      batch accumulator. When a batch fills, the row
                      generator is not advanced again until the batch has
                      been flushed, so at most one batch is ever resident.
4. FLUSHING         - flush the final partial batch.
5. COMPLETED        - report the ImportResult.

Any failure moves the job to FAILED. The pooled connection is released
and, for staged uploads, the file is deleted on every outcome. Batches are
committed one at a time; a failure part-way through leaves the earlier
batches in place and reports how many rows they wrote.
"""
from __future__ import annotations

import logging
import os
import threading
from contextlib import ExitStack
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import settings
from app.core.logging_config import import_job_context
from app.db.session import checkout_connection
from app.domain.imports.batching import BatchAccumulator, Row, effective_batch_capacity
from app.domain.imports.catalog import load_column_catalog, resolve_unique_keys, usable_conflict_columns
from app.domain.imports.errors import (
    CatalogUnavailable,
    CsvImportError,
    ImportCancelled,
    NoMatchingTable,
    StreamReadFailed,
)
from app.domain.imports.inserter import BatchInserter
from app.domain.imports.matcher import TableMatch, match_headers, warn_if_ambiguous
from app.domain.imports.processors.csv_processor import CsvRowReader, open_csv, read_csv_headers
from app.domain.uploads.staging import remove_staged_file

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    AWAITING_HEADERS = "awaiting_headers"
    MATCHING = "matching"
    STREAMING = "streaming"
    FLUSHING = "flushing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class ImportResult:
    table_name: str
    rows_inserted: int
    rows_read: int = 0
    batches_flushed: int = 0
    ragged_rows: int = 0
    conflict_columns: Tuple[str, ...] = ()
    candidate_tables: List[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        return f"Successfully imported {self.rows_inserted} new rows into table: {self.table_name}"


class CsvImportPipeline:
    """
    Imports one CSV file into the table whose columns match its headers.

    Args:
        path: CSV file on local disk.
        engine: SQLAlchemy engine to check a connection out of; defaults to
            the application engine. It is only touched once the header line
            has been read successfully.
        schema: Database schema whose tables are candidate targets.
        batch_size: Rows per INSERT statement.
        max_bind_parameters: Per-statement bind-parameter ceiling; lowers the
            batch size for very wide tables.
        cancel_event: Optional token; when set the job stops at the next
            row or flush.
        delete_file: Remove ``path`` once the job ends (staged uploads).
    """

    def __init__(
        self,
        path: str,
        engine: Optional[Engine] = None,
        *,
        schema: Optional[str] = None,
        batch_size: Optional[int] = None,
        max_bind_parameters: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
        delete_file: bool = True,
    ):
        self.path = path
        self.engine = engine
        self.schema = schema or settings.database_schema
        self.batch_size = batch_size or settings.import_batch_size
        self.max_bind_parameters = max_bind_parameters or settings.max_bind_parameters
        self.cancel_event = cancel_event
        self.delete_file = delete_file
        self.state = PipelineState.AWAITING_HEADERS
        self.error: Optional[Exception] = None

    def _transition(self, state: PipelineState) -> None:
        logger.debug("Import of '%s': %s -> %s", self.path, self.state.value, state.value)
        self.state = state

    def run(self) -> ImportResult:
        if self.state is not PipelineState.AWAITING_HEADERS:
            raise RuntimeError("An import pipeline can only be run once")

        with import_job_context(os.path.basename(self.path)):
            return self._run()

    def _run(self) -> ImportResult:
        try:
            headers = read_csv_headers(self.path)
            logger.info("Read %d CSV headers: %s", len(headers), list(headers))

            with ExitStack() as stack:
                self._transition(PipelineState.MATCHING)
                try:
                    conn = stack.enter_context(checkout_connection(self.engine))
                except SQLAlchemyError as exc:
                    raise CatalogUnavailable(str(exc)) from exc

                match, conflict_columns, candidates = self._match(conn, headers)
                result = self._stream(conn, headers, match, conflict_columns)
                result.candidate_tables = candidates

            self._transition(PipelineState.COMPLETED)
            logger.info(
                "Import completed: %d new rows into '%s' (%d rows read, %d batches)",
                result.rows_inserted,
                result.table_name,
                result.rows_read,
                result.batches_flushed,
            )
            return result
        except Exception as exc:
            self.error = exc
            self._transition(PipelineState.FAILED)
            if isinstance(exc, CsvImportError):
                logger.error("Import of '%s' failed: %s", self.path, exc)
            else:
                logger.exception("Unexpected error importing '%s'", self.path)
            raise
        finally:
            if self.delete_file:
                remove_staged_file(self.path)

    def _match(
        self, conn: Connection, headers: Sequence[str]
    ) -> Tuple[TableMatch, Tuple[str, ...], List[str]]:
        # Metadata reads run in their own short transaction so each batch can open its own.
        with conn.begin():
            catalog = load_column_catalog(conn, self.schema)
            match = match_headers(headers, catalog)
            if match is None:
                raise NoMatchingTable(headers)
            logger.info("Found matching table: %s", match.table_name)
            candidates = warn_if_ambiguous(headers, catalog, match)

            unique_keys = resolve_unique_keys(conn, match.table_name, self.schema)

        conflict_columns = usable_conflict_columns(unique_keys, match.columns)
        if conflict_columns:
            logger.info("Unique columns for deduplication: %s", ", ".join(conflict_columns))
        else:
            logger.info(
                "No unique key among mapped columns of '%s'; duplicates will not be skipped",
                match.table_name,
            )
        return match, conflict_columns, candidates

    def _check_cancelled(self, inserter: BatchInserter) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise ImportCancelled(inserter.rows_inserted)

    def _flush(self, inserter: BatchInserter, batch: List[Row]) -> None:
        self._check_cancelled(inserter)
        inserter.flush(batch)

    def _stream(
        self,
        conn: Connection,
        headers: Tuple[str, ...],
        match: TableMatch,
        conflict_columns: Tuple[str, ...],
    ) -> ImportResult:
        self._transition(PipelineState.STREAMING)
        capacity = effective_batch_capacity(self.batch_size, len(match.columns), self.max_bind_parameters)
        if capacity < self.batch_size:
            logger.info(
                "Reducing batch size to %d rows to stay under %d bind parameters",
                capacity,
                self.max_bind_parameters,
            )
        accumulator = BatchAccumulator(capacity)
        inserter = BatchInserter(conn, match.table_name, match.columns, headers, conflict_columns)

        try:
            handle = open_csv(self.path)
        except OSError as exc:
            raise StreamReadFailed(f"error reading file ({exc})") from exc

        with handle:
            reader = CsvRowReader(handle, headers)
            rows = iter(reader)
            try:
                for row in rows:
                    self._check_cancelled(inserter)
                    batch = accumulator.add(row)
                    if batch is not None:
                        self._flush(inserter, batch)

                self._transition(PipelineState.FLUSHING)
                remainder = accumulator.drain()
                if remainder:
                    self._flush(inserter, remainder)
            except StreamReadFailed as exc:
                raise StreamReadFailed(
                    exc.reason, client_caused=exc.client_caused, rows_committed=inserter.rows_inserted
                ) from exc
            finally:
                rows.close()

        if reader.ragged_rows:
            logger.warning(
                "%d rows did not have exactly %d fields; missing fields were stored as NULL and extra fields ignored",
                reader.ragged_rows,
                len(headers),
            )

        return ImportResult(
            table_name=match.table_name,
            rows_inserted=inserter.rows_inserted,
            rows_read=reader.rows_read,
            batches_flushed=inserter.batches_flushed,
            ragged_rows=reader.ragged_rows,
            conflict_columns=conflict_columns,
        )


def run_csv_import(path: str, engine: Optional[Engine] = None, **kwargs) -> ImportResult:
    """Run a single import job; see CsvImportPipeline for keyword arguments."""
    return CsvImportPipeline(path, engine, **kwargs).run()
