"""
Tests for header pre-read and row streaming.
"""
import pytest

from app.domain.imports.errors import EmptyOrUnreadableFile, StreamReadFailed
from app.domain.imports.processors.csv_processor import CsvRowReader, open_csv, read_csv_headers


def test_headers_are_trimmed_and_keep_order(write_csv):
    path = write_csv(" REPORT_DATE ,\tUSAGE_DATE, PLATFORM_ID\n2025-09-30,2025-08-31,760581\n")

    assert read_csv_headers(path) == ("REPORT_DATE", "USAGE_DATE", "PLATFORM_ID")


def test_header_pre_read_does_not_need_data_rows(write_csv):
    assert read_csv_headers(write_csv("sku,qty")) == ("sku", "qty")


def test_empty_file_has_no_headers(write_csv):
    with pytest.raises(EmptyOrUnreadableFile) as exc_info:
        read_csv_headers(write_csv(""))

    assert exc_info.value.message == "Could not read headers from CSV"


def test_missing_file_is_a_server_side_read_failure(tmp_path):
    with pytest.raises(StreamReadFailed) as exc_info:
        read_csv_headers(str(tmp_path / "gone.csv"))

    assert exc_info.value.http_status == 500


def test_byte_order_mark_is_not_part_of_first_header(tmp_path):
    path = tmp_path / "excel.csv"
    path.write_bytes(b"\xef\xbb\xbfid,name\n1,a\n")

    assert read_csv_headers(str(path)) == ("id", "name")


def test_row_reader_starts_from_top_and_skips_header(write_csv):
    path = write_csv("sku,qty\nA,1\nB,\n")

    with open_csv(path) as handle:
        reader = CsvRowReader(handle, ("sku", "qty"))
        rows = list(reader)

    assert rows == [{"sku": "A", "qty": "1"}, {"sku": "B", "qty": ""}]
    assert reader.rows_read == 2
    assert reader.ragged_rows == 0


def test_row_reader_is_lazy(write_csv):
    path = write_csv("n\n" + "\n".join(str(i) for i in range(100)) + "\n")

    with open_csv(path) as handle:
        reader = CsvRowReader(handle, ("n",))
        iterator = iter(reader)
        first = next(iterator)

        assert first == {"n": "0"}
        assert reader.rows_read == 1
        iterator.close()


def test_row_reader_reports_decode_errors_as_client_errors(tmp_path):
    path = tmp_path / "mixed.csv"
    # Large valid prefix so the decode error happens after the header was read.
    path.write_bytes(b"sku\n" + b"A\n" * 20000 + b"\xff\xfe\n")

    with open_csv(str(path)) as handle:
        reader = CsvRowReader(handle, ("sku",))
        with pytest.raises(StreamReadFailed) as exc_info:
            for _ in reader:
                pass

    assert exc_info.value.http_status == 400
    assert "UTF-8" in exc_info.value.message
