"""Image conversion pipeline and renderer tests."""

import asyncio
from pathlib import Path

import pytest
from PIL import Image

from pdf_service.documents.conversion import ImageConversionPipeline
from pdf_service.documents.rendering import MuPdfRenderer, PageRenderer
from pdf_service.documents.schemas import ImageConversionRequest, ImageFormat, PageRange
from pdf_service.errors import NotFoundError, ProcessingError, ValidationError
from pdf_service.storage.metadata import StatusTable

pytestmark = pytest.mark.asyncio


class FakeRenderer(PageRenderer):
    """Writes placeholder files; tracks how many renders overlap."""

    def __init__(self, delay: float = 0.0, fail_on: int = None):
        self.delay = delay
        self.fail_on = fail_on
        self.active = 0
        self.peak = 0
        self.cancelled = []

    async def render(self, source_path, page_number, image_format, scale, output_prefix):
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            if page_number == self.fail_on:
                raise RuntimeError("renderer crashed")
            await asyncio.sleep(self.delay)
            output_path = Path(f"{output_prefix}{image_format.extension}")
            output_path.write_bytes(b"image")
            return output_path
        except asyncio.CancelledError:
            self.cancelled.append(page_number)
            raise
        finally:
            self.active -= 1


def make_pipeline(store, tmp_path, renderer):
    return ImageConversionPipeline(store, renderer, tmp_path / "images")


async def test_png_conversion_registers_one_image_per_page(store, stored_pdf, tmp_path):
    original = stored_pdf(3)
    pipeline = make_pipeline(store, tmp_path, MuPdfRenderer())

    result = await pipeline.run(original.key, ImageConversionRequest(pages=[1, 3]))

    assert result.original_key == original.key
    assert len(result.image_keys) == 2
    images = [store.get_image(key) for key in result.image_keys]
    assert [image.page_number for image in images] == [1, 3]
    for image in images:
        assert image.original_pdf_key == original.key
        assert image.format is ImageFormat.PNG
        assert image.mime_type == "image/png"
        assert image.original_name == f"page_{image.page_number}.png"
        assert image.file_name == f"{image.key}_page_{image.page_number}.png"
        assert image.size == Path(image.file_path).stat().st_size
        with Image.open(image.file_path) as rendered:
            assert rendered.format == "PNG"


async def test_jpeg_conversion_with_scale(store, stored_pdf, tmp_path):
    original = stored_pdf(2)
    pipeline = make_pipeline(store, tmp_path, MuPdfRenderer())

    request = ImageConversionRequest(page_range=PageRange(start=2), format="jpg", scale=0.5)
    result = await pipeline.run(original.key, request)

    image = store.get_image(result.image_keys[0])
    assert image.format is ImageFormat.JPEG
    assert image.mime_type == "image/jpeg"
    assert image.file_path.endswith(".jpg")
    with Image.open(image.file_path) as rendered:
        assert rendered.format == "JPEG"
        assert abs(max(rendered.size) - 512) <= 1


async def test_tiff_conversion(store, stored_pdf, tmp_path):
    original = stored_pdf(1)
    pipeline = make_pipeline(store, tmp_path, MuPdfRenderer())

    result = await pipeline.run(original.key, ImageConversionRequest(pages=[1], format="tiff"))

    image = store.get_image(result.image_keys[0])
    assert image.mime_type == "image/tiff"
    with Image.open(image.file_path) as rendered:
        assert rendered.format == "TIFF"


async def test_completed_status(store, stored_pdf, tmp_path):
    original = stored_pdf(4)
    pipeline = make_pipeline(store, tmp_path, FakeRenderer())

    await pipeline.run(original.key, ImageConversionRequest(page_range=PageRange(start=1)))

    status = store.get_status(StatusTable.IMAGES, original.key)
    assert status.status == "completed"
    assert status.progress == 100
    assert status.completed_at is not None
    assert len(store.list_images_by_parent(original.key)) == 4


async def test_pages_render_concurrently(store, stored_pdf, tmp_path):
    original = stored_pdf(4)
    renderer = FakeRenderer(delay=0.05)
    pipeline = make_pipeline(store, tmp_path, renderer)

    await pipeline.run(original.key, ImageConversionRequest(pages=[1, 2, 3, 4]))

    assert renderer.peak == 4


async def test_failed_page_fails_the_run(store, stored_pdf, tmp_path):
    original = stored_pdf(3)
    renderer = FakeRenderer(delay=0.5, fail_on=2)
    pipeline = make_pipeline(store, tmp_path, renderer)

    with pytest.raises(ProcessingError) as exc_info:
        await pipeline.run(original.key, ImageConversionRequest(pages=[1, 2, 3]))

    assert exc_info.value.message == "Failed to convert page 2 to image"
    status = store.get_status(StatusTable.IMAGES, original.key)
    assert status.status == "error"
    assert status.error == "Failed to convert page 2 to image"
    # Slower siblings still finished and registered their images
    assert renderer.cancelled == []
    assert sorted(image.page_number for image in store.list_images_by_parent(original.key)) == [1, 3]


async def test_invalid_pages_leave_error_status(store, stored_pdf, tmp_path):
    original = stored_pdf(2)
    renderer = FakeRenderer()
    pipeline = make_pipeline(store, tmp_path, renderer)

    with pytest.raises(ValidationError, match="Invalid page numbers: 5"):
        await pipeline.run(original.key, ImageConversionRequest(pages=[1, 5]))

    assert store.get_status(StatusTable.IMAGES, original.key).status == "error"
    assert renderer.peak == 0


async def test_unknown_document_records_error(store, tmp_path):
    pipeline = make_pipeline(store, tmp_path, FakeRenderer())

    with pytest.raises(NotFoundError):
        await pipeline.run("missing", ImageConversionRequest(pages=[1]))

    assert store.get_status(StatusTable.IMAGES, "missing").status == "error"


async def test_statuses_are_kept_apart_from_truncation(store, stored_pdf, tmp_path):
    original = stored_pdf(1)
    pipeline = make_pipeline(store, tmp_path, FakeRenderer())

    await pipeline.run(original.key, ImageConversionRequest(pages=[1]))

    with pytest.raises(NotFoundError):
        store.get_status(StatusTable.TRUNCATION, original.key)


class FailingMuPdfRenderer(MuPdfRenderer):
    """Real renders, except ``fail_on`` which fails once its siblings are busy."""

    def __init__(self, fail_on: int):
        self.fail_on = fail_on

    async def render(self, source_path, page_number, image_format, scale, output_prefix):
        if page_number == self.fail_on:
            await asyncio.sleep(0.05)
            raise RuntimeError("renderer crashed")
        return await super().render(source_path, page_number, image_format, scale, output_prefix)


async def test_failed_run_leaves_no_unregistered_image_files(store, stored_pdf, tmp_path):
    original = stored_pdf(8)
    pipeline = make_pipeline(store, tmp_path, FailingMuPdfRenderer(fail_on=1))

    with pytest.raises(ProcessingError, match="Failed to convert page 1 to image"):
        await pipeline.run(original.key, ImageConversionRequest(page_range=PageRange(start=1), scale=2))

    on_disk = {str(path) for path in (tmp_path / "images").iterdir()}
    registered = {image.file_path for image in store.list_images_by_parent(original.key)}
    assert on_disk == registered
    assert len(registered) == 7

    # Deleting the document cleans every rendered file up
    store.delete_document(original.key)
    assert list((tmp_path / "images").iterdir()) == []


async def test_vanished_source_file_leaves_error_status(store, stored_pdf, tmp_path):
    original = stored_pdf(3)
    Path(original.file_path).unlink()
    pipeline = make_pipeline(store, tmp_path, FakeRenderer())

    with pytest.raises(NotFoundError, match="no longer exists on disk"):
        await pipeline.run(original.key, ImageConversionRequest(pages=[1]))

    status = store.get_status(StatusTable.IMAGES, original.key)
    assert status.status == "error"
    assert status.error == f"File {original.key} no longer exists on disk"
    assert status.completed_at is not None
