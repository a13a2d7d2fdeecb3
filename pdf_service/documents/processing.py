"""
PDF utilities built on PyMuPDF.

This module handles:
1. Reading page counts and validating uploaded PDFs
2. Resolving page selections into 0-based page indices
3. Copying selected pages into a new PDF
4. Rasterizing a single page (used by MuPdfRenderer)

PyMuPDF does not support concurrent use from several threads, so every call
into it holds ``MUPDF_LOCK``. Async callers run these functions through the
thread pool.
"""

import logging
import threading
from pathlib import Path
from typing import List

import fitz  # PyMuPDF - library for reading PDF files
from PIL import Image

from pdf_service.documents.schemas import ImageFormat, TruncationRequest
from pdf_service.errors import ProcessingError, ValidationError

logger = logging.getLogger(__name__)

MUPDF_LOCK = threading.Lock()

# Longest side, in pixels, of a page rendered at scale 1
BASE_RENDER_SIZE = 1024


def get_page_count(file_path: str) -> int:
    """
    Count the pages of a PDF on disk.

    Raises:
        ProcessingError: If the file is not a readable PDF
    """
    with MUPDF_LOCK:
        try:
            with fitz.open(file_path) as doc:
                if not doc.is_pdf:
                    raise ProcessingError(f"Invalid PDF file: {Path(file_path).name} is not a PDF")
                return doc.page_count
        except ProcessingError:
            raise
        except Exception as e:
            logger.error(f"Error reading PDF {file_path}: {e}")
            raise ProcessingError(f"Invalid PDF file: {e}") from e


def validate_pdf(file_path: str) -> int:
    """Check an uploaded file is a PDF with at least one page; returns the page count."""
    page_count = get_page_count(file_path)
    if page_count < 1:
        raise ProcessingError("Invalid PDF file: document has no pages")
    return page_count


def resolve_page_indices(request: TruncationRequest, total_pages: int) -> List[int]:
    """
    Turn a page selection into 0-based indices, checked against ``total_pages``.

    Explicit pages keep the caller's order, duplicates included. Ranges are
    ascending and ``end`` defaults to the last page.

    Examples (10 page PDF):
        pages=[3, 1, 3]                → [2, 0, 2]
        page_range={start: 8}          → [7, 8, 9]
        pages=[0, 11]                  → ValidationError naming both pages
    """
    ensure_single_selection(request)

    if request.pages is not None:
        invalid_pages = [page for page in request.pages if page < 1 or page > total_pages]
        if invalid_pages:
            raise ValidationError(
                f"Invalid page numbers: {', '.join(str(page) for page in invalid_pages)}. "
                f"PDF has {total_pages} pages."
            )
        return [page - 1 for page in request.pages]

    if request.page_range is not None:
        start = request.page_range.start
        end = request.page_range.end if request.page_range.end is not None else total_pages

        if start < 1 or start > total_pages:
            raise ValidationError(f"Start page {start} is invalid. PDF has {total_pages} pages.")
        if end > total_pages:
            raise ValidationError(f"End page {end} is invalid. PDF has {total_pages} pages.")
        if end < start:
            raise ValidationError(f"End page {end} is before start page {start}.")

        return list(range(start - 1, end))


def ensure_single_selection(request: TruncationRequest) -> None:
    """Exactly one of ``pages`` and ``page_range`` must be given."""
    if request.pages is not None and request.page_range is not None:
        raise ValidationError("Specify either pages or pageRange, not both")
    if request.pages is None and request.page_range is None:
        raise ValidationError("Either pages or pageRange must be specified")
    if request.pages is not None and not request.pages:
        raise ValidationError("pages must contain at least one page number")


def extract_pages(source_bytes: bytes, indices: List[int]) -> bytes:
    """
    Build a new PDF that holds only ``indices`` (0-based), in that order.
    """
    with MUPDF_LOCK:
        try:
            with fitz.open(stream=source_bytes, filetype="pdf") as source, fitz.open() as target:
                for index in indices:
                    target.insert_pdf(source, from_page=index, to_page=index)
                return target.tobytes(garbage=1, deflate=True)
        except Exception as e:
            logger.error(f"Error copying pages {indices}: {e}")
            raise ProcessingError(f"Failed to copy pages: {e}") from e


def render_page(
    source_path: str,
    page_number: int,
    image_format: ImageFormat,
    scale: float,
    output_path: Path,
) -> Path:
    """
    Rasterize one page (1-based) so its longest side is ``scale * 1024`` pixels.

    PNG is written by PyMuPDF directly, JPEG and TIFF go through Pillow.
    """
    target_size = round(scale * BASE_RENDER_SIZE)

    with MUPDF_LOCK:
        with fitz.open(source_path) as doc:
            page = doc[page_number - 1]
            zoom = target_size / max(page.rect.width, page.rect.height)
            pixmap = page.get_pixmap(matrix=fitz.Matrix(zoom, zoom), alpha=False)

            if image_format is ImageFormat.PNG:
                pixmap.save(str(output_path))
            else:
                image = Image.frombytes("RGB", (pixmap.width, pixmap.height), pixmap.samples)
                image.save(output_path, format=image_format.name)

    logger.info(f"Rendered page {page_number} of {source_path} to {output_path.name}")
    return output_path
