"""
Failure taxonomy for CSV import jobs.

Every error is terminal for its job; none are retried automatically. Each
carries the HTTP status the API layer reports it with.
"""
from typing import Optional, Sequence


class CsvImportError(Exception):
    """Base exception for import job failures."""

    http_status = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class EmptyOrUnreadableFile(CsvImportError):
    """Raised when the file has no header line to match against."""

    http_status = 400

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or "Could not read headers from CSV")


class CatalogUnavailable(CsvImportError):
    """Raised when table/column metadata cannot be loaded."""

    def __init__(self, reason: str):
        super().__init__(f"Database error: could not load table catalog ({reason})")


class NoMatchingTable(CsvImportError):
    """Raised when no table contains every CSV header."""

    http_status = 400

    def __init__(self, headers: Sequence[str]):
        self.headers = list(headers)
        super().__init__("No matching table found for headers: " + ", ".join(self.headers))


class KeyResolutionFailed(CsvImportError):
    """Raised when unique/primary key metadata cannot be loaded for the matched table."""

    def __init__(self, table_name: str, reason: str):
        self.table_name = table_name
        super().__init__(
            f"Database error: could not resolve unique keys for table '{table_name}' ({reason})"
        )


class BatchInsertFailed(CsvImportError):
    """
    Raised when a batch INSERT fails.

    Batches flushed before the failing one stay committed; rows_committed
    reports how many rows they wrote.
    """

    def __init__(self, table_name: str, rows_committed: int, reason: str):
        self.table_name = table_name
        self.rows_committed = rows_committed
        super().__init__(
            f"Database error: {reason}. "
            f"{rows_committed} rows were already imported into table '{table_name}' before the failure."
        )


class StreamReadFailed(CsvImportError):
    """Raised when the CSV cannot be read or parsed mid-stream."""

    def __init__(self, reason: str, client_caused: bool = False, rows_committed: int = 0):
        self.reason = reason
        self.client_caused = client_caused
        self.rows_committed = rows_committed
        self.http_status = 400 if client_caused else 500
        message = f"CSV Parse error: {reason}"
        if rows_committed:
            message += f" ({rows_committed} rows were already imported before the failure)"
        super().__init__(message)


class ImportCancelled(CsvImportError):
    """Raised when a job's cancellation token is set while it is still streaming."""

    http_status = 499

    def __init__(self, rows_committed: int):
        self.rows_committed = rows_committed
        super().__init__(
            f"Import cancelled after {rows_committed} rows were imported"
        )
