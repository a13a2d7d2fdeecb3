"""
Streaming PDF upload with byte level progress.

The raw request body is counted chunk by chunk while it is fed to Starlette's
multipart parser, so a client polling ``/upload-progress/{id}`` sees the bytes
arrive. The PDF part (field ``pdf``) is then copied to
``upload_dir/<key>_<sanitized name>``.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator, Dict

from fastapi import Request
from fastapi.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile
from starlette.formparsers import MultiPartException, MultiPartParser
from starlette.requests import ClientDisconnect

from pdf_service.errors import (
    AppError,
    LengthRequiredError,
    NotFoundError,
    UploadError,
    ValidationError,
)
from pdf_service.storage import filesystem
from pdf_service.uploads.progress import UploadProgressTracker

logger = logging.getLogger(__name__)

FILE_FIELD = "pdf"
PDF_MIME_TYPE = "application/pdf"
MAX_FORM_FIELDS = 10

_CHUNK_SIZE = 1024 * 1024  # 1 MiB

# Room for multipart boundaries, part headers and the small form fields
MULTIPART_OVERHEAD = 1024 * 1024


@dataclass
class ReceivedUpload:
    """A PDF written to the upload directory, not yet registered anywhere."""
    key: str
    original_name: str
    file_name: str
    file_path: Path
    size: int
    mime_type: str
    fields: Dict[str, str] = field(default_factory=dict)

    def discard(self) -> None:
        filesystem.delete(self.file_path)


def _content_length(request: Request) -> int:
    raw = request.headers.get("content-length")
    if not raw:
        raise LengthRequiredError("Content-Length header is required.")
    try:
        length = int(raw)
    except ValueError as e:
        raise ValidationError("Content-Length header must be an integer.") from e
    if length < 0:
        raise ValidationError("Content-Length header must not be negative.")
    return length


def _copy_to_disk(source, destination: Path, max_bytes: int) -> int:
    size = 0
    source.seek(0)
    try:
        with destination.open("wb") as target:
            while True:
                chunk = source.read(_CHUNK_SIZE)
                if not chunk:
                    break
                size += len(chunk)
                if size > max_bytes:
                    raise UploadError(f"File too large. Maximum size is {max_bytes} bytes.")
                target.write(chunk)
    except Exception:
        destination.unlink(missing_ok=True)
        raise
    return size


async def receive_pdf_upload(
    request: Request,
    tracker: UploadProgressTracker,
    upload_dir: Path,
    max_file_size: int,
) -> ReceivedUpload:
    """
    Receive the multipart body of ``request`` and store its PDF part.

    Raises:
        ValidationError: Missing or unknown ``X-Upload-ID``, missing file, not a PDF
        LengthRequiredError: No ``Content-Length`` header
        UploadError: Malformed multipart body or file over ``max_file_size``
    """
    upload_id = request.headers.get("x-upload-id")
    if not upload_id:
        raise ValidationError("X-Upload-ID header is required for uploads.")

    total = _content_length(request)

    try:
        tracker.start(upload_id, total)
    except NotFoundError as e:
        raise ValidationError("Invalid or expired Upload ID. Please initiate the upload again.") from e

    max_body_size = max_file_size + MULTIPART_OVERHEAD
    if total > max_body_size:
        too_large = f"File too large. Maximum size is {max_file_size} bytes."
        tracker.fail(upload_id, too_large)
        raise UploadError(too_large)

    content_type = request.headers.get("content-type", "")
    if not content_type.startswith("multipart/form-data"):
        tracker.fail(upload_id, "Request body must be multipart/form-data")
        raise UploadError("Request body must be multipart/form-data.")

    async def tracked_body() -> AsyncIterator[bytes]:
        loaded = 0
        async for chunk in request.stream():
            loaded += len(chunk)
            if loaded > max_body_size:
                raise UploadError(f"File too large. Maximum size is {max_file_size} bytes.")
            tracker.update(upload_id, loaded)
            yield chunk
        tracker.complete(upload_id)

    parser = MultiPartParser(
        request.headers,
        tracked_body(),
        max_files=1,
        max_fields=MAX_FORM_FIELDS,
    )
    try:
        form = await parser.parse()
    except ClientDisconnect as e:
        logger.error(f"Client disconnected during upload {upload_id}")
        tracker.fail(upload_id, "Client disconnected")
        raise UploadError("Client disconnected during upload.") from e
    except MultiPartException as e:
        tracker.fail(upload_id, e.message)
        raise UploadError(e.message) from e
    except AppError as e:
        tracker.fail(upload_id, e.message)
        raise

    try:
        return await _store_pdf_part(form, upload_dir, max_file_size)
    except AppError as e:
        tracker.fail(upload_id, e.message)
        raise
    finally:
        await form.close()


async def _store_pdf_part(form, upload_dir: Path, max_file_size: int) -> ReceivedUpload:
    fields = {}
    upload = None
    for name, value in form.multi_items():
        if isinstance(value, UploadFile):
            if name != FILE_FIELD:
                raise UploadError("Unexpected file field.")
            upload = value
        else:
            fields[name] = value

    if upload is None or not upload.filename:
        raise ValidationError("PDF file is required")
    if upload.content_type != PDF_MIME_TYPE:
        raise ValidationError("Only PDF files are allowed")

    key = filesystem.generate_key()
    file_name = f"{key}_{filesystem.sanitize_filename(upload.filename)}"
    file_path = filesystem.ensure_dir(upload_dir) / file_name

    size = await run_in_threadpool(_copy_to_disk, upload.file, file_path, max_file_size)
    logger.info(f"📄 Saved upload {upload.filename} as {file_name} ({filesystem.format_file_size(size)})")

    return ReceivedUpload(
        key=key,
        original_name=upload.filename,
        file_name=file_name,
        file_path=file_path,
        size=size,
        mime_type=upload.content_type,
        fields=fields,
    )
