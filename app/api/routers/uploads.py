"""
CSV upload endpoint.
"""
import asyncio
import logging
import threading
from typing import Optional

from fastapi import APIRouter, File, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from app.api.schemas.shared import ErrorResponse, ImportResponse
from app.domain.imports.errors import CsvImportError
from app.domain.imports.pipeline import run_csv_import
from app.domain.uploads.staging import UploadTooLarge, remove_staged_file, stage_upload

router = APIRouter(tags=["uploads"])

logger = logging.getLogger(__name__)

DISCONNECT_POLL_SECONDS = 0.5


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@router.post(
    "/upload",
    response_model=ImportResponse,
    responses={400: {"model": ErrorResponse}, 413: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def upload_csv_endpoint(request: Request, file: Optional[UploadFile] = File(None)):
    """
    Import an uploaded CSV into the table whose columns match its headers.

    Parameters:
    - file: CSV file whose first line names the target columns

    Returns:
    - message with the number of new rows and the target table

    Rows that collide with an existing row on a unique key present in the
    file are skipped, so re-uploading the same file inserts nothing new.
    """
    if file is None or not file.filename:
        return _error(400, "No file uploaded")

    logger.info("Received /upload request for file '%s'", file.filename)

    try:
        staged_path = await stage_upload(file)
    except UploadTooLarge as e:
        logger.warning("Rejected upload: %s", e)
        return _error(413, str(e))
    except OSError as e:
        logger.exception("Failed to stage upload '%s'", file.filename)
        return _error(500, f"Error reading file: {e}")
    finally:
        await file.close()

    cancel_event = threading.Event()
    try:
        # The pipeline blocks on file and database I/O; keep it off the event loop.
        job = asyncio.ensure_future(
            run_in_threadpool(run_csv_import, staged_path, None, delete_file=True, cancel_event=cancel_event)
        )
        while not job.done():
            await asyncio.wait({job}, timeout=DISCONNECT_POLL_SECONDS)
            if not job.done() and not cancel_event.is_set() and await request.is_disconnected():
                logger.warning("Client disconnected; cancelling import of '%s'", file.filename)
                cancel_event.set()
        result = job.result()
    except CsvImportError as e:
        return _error(e.http_status, e.message)
    finally:
        # The pipeline removes the staged file itself; this covers failures before it starts.
        remove_staged_file(staged_path)

    return ImportResponse(message=result.message)
