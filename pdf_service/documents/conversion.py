"""
PDF to image pipeline: render selected pages of a stored PDF as images.

Every selected page is rendered by its own task and all tasks run at once.
The run succeeds only when every page succeeds. A failed page does not stop
its siblings: every page task is awaited, so each image written to disk is
registered before the run ends in ``error``. Images of the pages that
succeeded are kept.
"""

import asyncio
import logging
from pathlib import Path
from typing import List

from fastapi.concurrency import run_in_threadpool

from pdf_service.documents import processing
from pdf_service.documents.rendering import PageRenderer
from pdf_service.documents.schemas import (
    ImageConversionRequest,
    ImageConversionResult,
    ProcessingStatus,
    StoredDocument,
    StoredImage,
    utcnow,
)
from pdf_service.documents.truncation import error_message
from pdf_service.errors import AppError, ProcessingError
from pdf_service.storage import filesystem
from pdf_service.storage.metadata import MetadataStore, StatusTable

logger = logging.getLogger(__name__)


class ImageConversionPipeline:

    def __init__(self, store: MetadataStore, renderer: PageRenderer, images_dir: Path):
        self.store = store
        self.renderer = renderer
        self.images_dir = Path(images_dir)

    async def run(self, original_key: str, request: ImageConversionRequest) -> ImageConversionResult:
        processing.ensure_single_selection(request)

        self.store.set_status(
            StatusTable.IMAGES,
            original_key,
            ProcessingStatus(status="processing", progress=0),
        )
        logger.info(f"🖼️ Starting image conversion of {original_key} ({request.format.value}, scale {request.scale})")

        try:
            original = self.store.get_document(original_key)
            total_pages = await run_in_threadpool(processing.get_page_count, original.file_path)

            indices = processing.resolve_page_indices(request, total_pages)
            self._progress(original_key, 25)

            filesystem.ensure_dir(self.images_dir)
            image_keys = await self._convert_all(original, indices, request)

            self.store.update_status(
                StatusTable.IMAGES,
                original_key,
                {"status": "completed", "progress": 100, "completed_at": utcnow()},
            )
            logger.info(f"✅ Converted {len(image_keys)} pages of {original_key} to images")

            return ImageConversionResult(original_key=original_key, image_keys=image_keys)

        except Exception as e:
            logger.error(f"❌ Image conversion of {original_key} failed: {error_message(e)}")
            self.store.mark_failed(StatusTable.IMAGES, original_key, error_message(e))
            raise

    def _progress(self, key: str, progress: int) -> None:
        self.store.update_status(StatusTable.IMAGES, key, {"status": "processing", "progress": progress})

    async def _convert_all(
        self,
        original: StoredDocument,
        indices: List[int],
        request: ImageConversionRequest,
    ) -> List[str]:
        done = 0

        async def convert(index: int) -> str:
            nonlocal done
            image_key = await self._convert_page(original, index + 1, request)
            done += 1
            self._progress(original.key, 25 + (50 * done) // len(indices))
            return image_key

        # Every page runs to the end so each written image gets its row
        results = await asyncio.gather(*(convert(index) for index in indices), return_exceptions=True)

        for result in results:
            if isinstance(result, BaseException):
                raise result
        return list(results)

    async def _convert_page(
        self,
        original: StoredDocument,
        page_number: int,
        request: ImageConversionRequest,
    ) -> str:
        image_format = request.format
        image_key = filesystem.generate_key()
        output_prefix = self.images_dir / f"{image_key}_page_{page_number}"

        try:
            image_path = await self.renderer.render(
                original.file_path,
                page_number,
                image_format,
                request.scale,
                output_prefix,
            )
            size = filesystem.stat_size(image_path)
        except Exception as e:
            logger.error(f"Failed to convert page {page_number} of {original.key}: {error_message(e)}")
            filesystem.delete(Path(f"{output_prefix}{image_format.extension}"))
            detail = f": {e.message}" if isinstance(e, AppError) else ""
            raise ProcessingError(f"Failed to convert page {page_number} to image{detail}") from e

        image = StoredImage(
            key=image_key,
            original_pdf_key=original.key,
            original_name=f"page_{page_number}{image_format.extension}",
            file_name=image_path.name,
            file_path=str(image_path),
            size=size,
            mime_type=image_format.mime_type,
            page_number=page_number,
            format=image_format,
            created_at=utcnow(),
        )
        try:
            self.store.store_image(image)
        except Exception:
            filesystem.delete(image_path)
            raise
        return image_key
