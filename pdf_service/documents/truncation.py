"""
PDF truncation pipeline: keep a subset of a stored PDF's pages as a new PDF.

Progress is recorded in the truncation status table under the source key:
    0   processing started
    25  page selection resolved against the real page count
    75  new PDF assembled
    100 new PDF written and registered
Any failure leaves the row in ``error`` with the message before re-raising.
"""

import logging
from pathlib import Path

from fastapi.concurrency import run_in_threadpool

from pdf_service.documents import processing
from pdf_service.documents.schemas import (
    ProcessingStatus,
    TruncationRequest,
    TruncationResult,
    utcnow,
)
from pdf_service.errors import AppError
from pdf_service.storage import filesystem
from pdf_service.storage.metadata import MetadataStore, StatusTable

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"


def error_message(exc: Exception) -> str:
    if isinstance(exc, AppError):
        return exc.message
    return str(exc) or exc.__class__.__name__


class TruncationPipeline:

    def __init__(self, store: MetadataStore, processed_dir: Path):
        self.store = store
        self.processed_dir = Path(processed_dir)

    def _progress(self, key: str, progress: int) -> None:
        self.store.update_status(StatusTable.TRUNCATION, key, {"status": "processing", "progress": progress})

    async def run(self, original_key: str, request: TruncationRequest) -> TruncationResult:
        # Shape errors are rejected before the status row is touched
        processing.ensure_single_selection(request)

        self.store.set_status(
            StatusTable.TRUNCATION,
            original_key,
            ProcessingStatus(status="processing", progress=0),
        )
        logger.info(f"✂️ Starting truncation of {original_key}")

        try:
            original = self.store.get_document(original_key)
            total_pages = await run_in_threadpool(processing.get_page_count, original.file_path)

            indices = processing.resolve_page_indices(request, total_pages)
            self._progress(original_key, 25)

            source_bytes = await run_in_threadpool(Path(original.file_path).read_bytes)
            truncated_bytes = await run_in_threadpool(processing.extract_pages, source_bytes, indices)
            self._progress(original_key, 75)

            truncated_key = await self._persist(original.original_name, truncated_bytes)

            self.store.update_status(
                StatusTable.TRUNCATION,
                original_key,
                {"status": "completed", "progress": 100, "completed_at": utcnow()},
            )
            logger.info(f"✅ Truncated {original_key} to {len(indices)} pages as {truncated_key}")

            return TruncationResult(original_key=original_key, truncated_key=truncated_key)

        except Exception as e:
            logger.error(f"❌ Truncation of {original_key} failed: {error_message(e)}")
            self.store.mark_failed(StatusTable.TRUNCATION, original_key, error_message(e))
            raise

    async def _persist(self, original_name: str, content: bytes) -> str:
        truncated_key = filesystem.generate_key()
        display_name = filesystem.truncated_file_name(original_name)
        file_name = f"{truncated_key}_{filesystem.sanitize_filename(display_name)}"
        file_path = self.processed_dir / file_name

        filesystem.ensure_dir(self.processed_dir)
        await run_in_threadpool(file_path.write_bytes, content)

        try:
            self.store.store_document(
                truncated_key,
                display_name,
                file_name,
                str(file_path),
                filesystem.stat_size(file_path),
                PDF_MIME_TYPE,
            )
        except Exception:
            filesystem.delete(file_path)
            raise

        return truncated_key
