"""
Streaming CSV readers for the import pipeline.

Files are read with the standard csv module one record at a time so that a
file of any size never has more than the current record in memory here.
"""
from __future__ import annotations

import csv
import logging
from typing import Dict, Iterator, Optional, TextIO, Tuple

from app.domain.imports.errors import EmptyOrUnreadableFile, StreamReadFailed

logger = logging.getLogger(__name__)

# utf-8-sig strips the BOM spreadsheet exports put in front of the first header.
CSV_ENCODING = "utf-8-sig"


def open_csv(path: str) -> TextIO:
    """Open a CSV file for streaming; newline='' lets csv handle quoted line breaks."""
    return open(path, "r", encoding=CSV_ENCODING, newline="")


def parse_header_row(fields) -> Tuple[str, ...]:
    headers = tuple(field.strip() for field in fields)
    if not headers or not any(headers):
        raise EmptyOrUnreadableFile()

    seen = set()
    duplicates = []
    for header in headers:
        key = header.lower()
        if key in seen and header not in duplicates:
            duplicates.append(header)
        seen.add(key)
    if duplicates:
        raise EmptyOrUnreadableFile(
            "Could not read headers from CSV: duplicate column headers " + ", ".join(duplicates)
        )
    return headers


def read_csv_headers(path: str) -> Tuple[str, ...]:
    """
    Read only the header line of a CSV file.

    Returns:
        Trimmed header names in file order.

    Raises:
        EmptyOrUnreadableFile: the file is empty or its first line has no headers.
        StreamReadFailed: the file cannot be opened or decoded.
    """
    try:
        with open_csv(path) as handle:
            first = next(csv.reader(handle), None)
    except UnicodeDecodeError as exc:
        raise StreamReadFailed(f"file is not valid UTF-8 text ({exc.reason})", client_caused=True) from exc
    except csv.Error as exc:
        raise EmptyOrUnreadableFile(f"Could not read headers from CSV: {exc}") from exc
    except OSError as exc:
        raise StreamReadFailed(f"error reading file ({exc})") from exc

    if first is None:
        raise EmptyOrUnreadableFile()
    return parse_header_row(first)


class CsvRowReader:
    """
    Iterates the data rows of an open CSV file as header -> value dicts.

    Missing trailing fields are left out of the row (stored as NULL); extra
    fields beyond the header count are ignored. Both are counted in
    ``ragged_rows``. Blank lines are skipped.
    """

    def __init__(self, handle: TextIO, headers: Tuple[str, ...]):
        self.handle = handle
        self.headers = headers
        self.rows_read = 0
        self.ragged_rows = 0
        self._reader = csv.reader(handle)

    @property
    def line_num(self) -> int:
        return self._reader.line_num

    def __iter__(self) -> Iterator[Dict[str, Optional[str]]]:
        width = len(self.headers)
        try:
            # The main pass starts at the top of the file; skip the header record.
            next(self._reader, None)
            for fields in self._reader:
                if not fields:
                    continue
                if len(fields) != width:
                    self.ragged_rows += 1
                    logger.debug(
                        "Line %d has %d fields, expected %d", self._reader.line_num, len(fields), width
                    )
                self.rows_read += 1
                yield dict(zip(self.headers, fields))
        except UnicodeDecodeError as exc:
            raise StreamReadFailed(
                f"file is not valid UTF-8 text near line {self._reader.line_num + 1} ({exc.reason})",
                client_caused=True,
            ) from exc
        except csv.Error as exc:
            raise StreamReadFailed(f"line {self._reader.line_num}: {exc}", client_caused=True) from exc
        except OSError as exc:
            raise StreamReadFailed(f"error reading file ({exc})") from exc
