"""
Local staging of uploaded files.

Uploads are copied to a per-request file under the configured upload
directory before the import pipeline opens them. The pipeline owns the
staged file from then on and deletes it when the job ends.
"""
import logging
import os
import uuid
from typing import Optional

from fastapi import UploadFile

from app.core.config import settings

logger = logging.getLogger(__name__)

STAGING_CHUNK_BYTES = 1024 * 1024


class UploadTooLarge(Exception):
    """Raised when an upload exceeds the configured size limit."""

    def __init__(self, file_name: str, limit_mb: int):
        self.file_name = file_name
        self.limit_mb = limit_mb
        self.message = f"{file_name} is too large. Maximum allowed upload size is {limit_mb}MB."
        super().__init__(self.message)


def ensure_upload_dir(upload_dir: Optional[str] = None) -> str:
    upload_dir = upload_dir or settings.upload_dir
    if not os.path.isdir(upload_dir):
        logger.info("Creating uploads directory %s", upload_dir)
        os.makedirs(upload_dir, exist_ok=True)
    return upload_dir


async def stage_upload(
    file: UploadFile,
    upload_dir: Optional[str] = None,
    max_bytes: Optional[int] = None,
) -> str:
    """
    Copy an upload to local disk in fixed-size chunks.

    Returns:
        Path of the staged file.

    Raises:
        UploadTooLarge: the upload exceeded ``max_bytes``; nothing is left on disk.
    """
    upload_dir = ensure_upload_dir(upload_dir)
    if max_bytes is None:
        max_bytes = settings.upload_max_file_size_mb * 1024 * 1024

    path = os.path.join(upload_dir, uuid.uuid4().hex)
    written = 0
    try:
        with open(path, "wb") as out:
            while True:
                chunk = await file.read(STAGING_CHUNK_BYTES)
                if not chunk:
                    break
                written += len(chunk)
                if written > max_bytes:
                    raise UploadTooLarge(file.filename or "upload", settings.upload_max_file_size_mb)
                out.write(chunk)
    except BaseException:
        remove_staged_file(path)
        raise

    logger.info("Staged upload '%s' (%d bytes) at %s", file.filename, written, path)
    return path


def remove_staged_file(path: str) -> None:
    """Delete a staged file; a file that is already gone is not an error."""
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning("Could not remove staged file %s: %s", path, exc)
