"""
Tests for staging uploads to local disk.
"""
import asyncio
import io
import os

import pytest
from fastapi import UploadFile

from app.domain.uploads.staging import (
    UploadTooLarge,
    ensure_upload_dir,
    remove_staged_file,
    stage_upload,
)


def _upload_file(content: bytes, filename: str = "data.csv") -> UploadFile:
    return UploadFile(file=io.BytesIO(content), filename=filename)


def test_stage_upload_copies_content(tmp_path):
    path = asyncio.run(stage_upload(_upload_file(b"sku,qty\nA,1\n"), upload_dir=str(tmp_path / "up")))

    assert os.path.dirname(path) == str(tmp_path / "up")
    with open(path, "rb") as staged:
        assert staged.read() == b"sku,qty\nA,1\n"


def test_stage_upload_uses_unique_names(tmp_path):
    first = asyncio.run(stage_upload(_upload_file(b"a\n"), upload_dir=str(tmp_path)))
    second = asyncio.run(stage_upload(_upload_file(b"a\n"), upload_dir=str(tmp_path)))

    assert first != second


def test_oversized_upload_leaves_nothing_behind(tmp_path):
    with pytest.raises(UploadTooLarge) as exc_info:
        asyncio.run(stage_upload(_upload_file(b"x" * 64, "big.csv"), upload_dir=str(tmp_path), max_bytes=10))

    assert "big.csv is too large" in exc_info.value.message
    assert list(tmp_path.iterdir()) == []


def test_ensure_upload_dir_creates_missing_directory(tmp_path):
    target = tmp_path / "nested" / "uploads"

    assert ensure_upload_dir(str(target)) == str(target)
    assert target.is_dir()


def test_remove_staged_file_tolerates_missing_file(tmp_path):
    path = tmp_path / "staged"
    path.write_text("x")

    remove_staged_file(str(path))
    remove_staged_file(str(path))

    assert not path.exists()
