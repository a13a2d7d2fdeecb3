"""
Page rendering backends.

A renderer turns one page of a PDF into an image file. The image pipeline
starts one render per selected page and runs them concurrently.
"""

import asyncio
import logging
import os
import shutil
from abc import ABC, abstractmethod
from pathlib import Path

from fastapi.concurrency import run_in_threadpool

from pdf_service.documents import processing
from pdf_service.documents.schemas import ImageFormat
from pdf_service.errors import ProcessingError

logger = logging.getLogger(__name__)


class PageRenderer(ABC):

    @abstractmethod
    async def render(
        self,
        source_path: str,
        page_number: int,
        image_format: ImageFormat,
        scale: float,
        output_prefix: Path,
    ) -> Path:
        """
        Render ``page_number`` (1-based) of ``source_path``.

        The image is written to ``output_prefix`` plus the format's extension;
        the path of the written file is returned.
        """


class PopplerRenderer(PageRenderer):
    """Renders pages with poppler's ``pdftocairo``, one child process per page."""

    def __init__(self, bin_path: str = ""):
        executable = "pdftocairo.exe" if os.name == "nt" else "pdftocairo"
        if bin_path:
            logger.info(f"Using custom Poppler path: {bin_path}")
            self.executable = str(Path(bin_path) / executable)
        else:
            logger.info("Using Poppler from system PATH.")
            self.executable = shutil.which(executable) or executable

    def build_command(
        self,
        source_path: str,
        page_number: int,
        image_format: ImageFormat,
        scale: float,
        output_prefix: Path,
    ) -> list:
        return [
            self.executable,
            f"-{image_format.value}",
            "-f", str(page_number),
            "-l", str(page_number),
            "-singlefile",
            "-scale-to", str(round(scale * processing.BASE_RENDER_SIZE)),
            str(source_path),
            str(output_prefix),
        ]

    async def render(self, source_path, page_number, image_format, scale, output_prefix):
        command = self.build_command(source_path, page_number, image_format, scale, output_prefix)
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ProcessingError(f"Failed to start pdftocairo: {e}") from e

        try:
            _, stderr = await process.communicate()
        except asyncio.CancelledError:
            if process.returncode is None:
                process.kill()
                await process.wait()
            raise

        if process.returncode != 0:
            detail = stderr.decode(errors="replace").strip()
            raise ProcessingError(
                f"pdftocairo exited with code {process.returncode} for page {page_number}: {detail}"
            )

        return Path(f"{output_prefix}{image_format.extension}")


class MuPdfRenderer(PageRenderer):
    """Renders pages in-process with PyMuPDF on the thread pool."""

    async def render(self, source_path, page_number, image_format, scale, output_prefix):
        output_path = Path(f"{output_prefix}{image_format.extension}")
        return await run_in_threadpool(
            processing.render_page,
            source_path,
            page_number,
            image_format,
            scale,
            output_path,
        )


def build_renderer(name: str, poppler_bin_path: str = "") -> PageRenderer:
    if name == "poppler":
        return PopplerRenderer(poppler_bin_path)
    if name == "pymupdf":
        return MuPdfRenderer()
    raise ValueError(f"Unknown renderer: {name}. Supported: poppler, pymupdf")
