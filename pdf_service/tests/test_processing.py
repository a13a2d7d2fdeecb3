"""Page selection and PyMuPDF helper tests."""

import pytest

from pdf_service.documents import processing
from pdf_service.documents.schemas import (
    ImageFormat,
    PageRange,
    TruncationRequest,
    parse_image_request,
    parse_truncation_request,
)
from pdf_service.errors import ProcessingError, ValidationError
from pdf_service.tests.conftest import build_pdf, page_texts


def test_explicit_pages_keep_order_and_duplicates():
    request = TruncationRequest(pages=[3, 1, 3])
    assert processing.resolve_page_indices(request, 10) == [2, 0, 2]


def test_range_is_inclusive():
    request = TruncationRequest(page_range=PageRange(start=2, end=4))
    assert processing.resolve_page_indices(request, 10) == [1, 2, 3]


def test_range_end_defaults_to_last_page():
    request = TruncationRequest(page_range=PageRange(start=8))
    assert processing.resolve_page_indices(request, 10) == [7, 8, 9]


def test_invalid_pages_are_all_named():
    request = TruncationRequest(pages=[0, 2, 11])

    with pytest.raises(ValidationError) as exc_info:
        processing.resolve_page_indices(request, 10)

    assert exc_info.value.message == "Invalid page numbers: 0, 11. PDF has 10 pages."


def test_range_start_beyond_document():
    request = TruncationRequest(page_range=PageRange(start=11))

    with pytest.raises(ValidationError, match="Start page 11 is invalid"):
        processing.resolve_page_indices(request, 10)


def test_range_end_beyond_document():
    request = TruncationRequest(page_range=PageRange(start=1, end=12))

    with pytest.raises(ValidationError, match="End page 12 is invalid"):
        processing.resolve_page_indices(request, 10)


def test_unvalidated_request_with_both_selections_is_rejected():
    request = TruncationRequest.model_construct(pages=[1], page_range=PageRange(start=1))

    with pytest.raises(ValidationError, match="not both"):
        processing.resolve_page_indices(request, 10)


def test_unvalidated_request_with_empty_pages_is_rejected():
    request = TruncationRequest.model_construct(pages=[], page_range=None)

    with pytest.raises(ValidationError):
        processing.ensure_single_selection(request)


@pytest.mark.parametrize(
    "data",
    [
        {},
        {"pages": [1], "pageRange": {"start": 1}},
        {"pages": []},
        {"pageRange": {"start": 0}},
        {"pageRange": {"start": 5, "end": 2}},
    ],
)
def test_parse_truncation_request_rejects_bad_shapes(data):
    with pytest.raises(ValidationError):
        parse_truncation_request(data)


def test_parse_truncation_request_accepts_alias_and_field_name():
    assert parse_truncation_request({"pageRange": {"start": 2}}).page_range.start == 2
    assert parse_truncation_request({"page_range": {"start": 3, "end": 4}}).page_range.end == 4


def test_image_request_defaults_and_format_aliases():
    request = parse_image_request({"pages": [1]})
    assert request.format is ImageFormat.PNG
    assert request.scale == 1.0

    assert parse_image_request({"pages": [1], "format": "JPG"}).format is ImageFormat.JPEG
    assert parse_image_request({"pages": [1], "format": "tif"}).format is ImageFormat.TIFF


@pytest.mark.parametrize("data", [{"pages": [1], "format": "gif"}, {"pages": [1], "scale": 0}])
def test_image_request_rejects_bad_format_and_scale(data):
    with pytest.raises(ValidationError):
        parse_image_request(data)


def test_image_request_requires_a_selection():
    with pytest.raises(ValidationError):
        parse_image_request({"format": "png"})


def test_get_page_count(tmp_path):
    path = build_pdf(tmp_path / "five.pdf", 5)
    assert processing.get_page_count(str(path)) == 5
    assert processing.validate_pdf(str(path)) == 5


def test_get_page_count_rejects_non_pdf(tmp_path):
    path = tmp_path / "notes.pdf"
    path.write_text("this is not a pdf")

    with pytest.raises(ProcessingError, match="Invalid PDF file"):
        processing.get_page_count(str(path))


def test_extract_pages_copies_in_requested_order(tmp_path):
    source = build_pdf(tmp_path / "source.pdf", 4)
    output = tmp_path / "out.pdf"

    output.write_bytes(processing.extract_pages(source.read_bytes(), [3, 0, 3]))

    assert page_texts(output) == ["Page 4", "Page 1", "Page 4"]


def test_render_page_longest_side_follows_scale(tmp_path):
    from PIL import Image

    source = build_pdf(tmp_path / "source.pdf", 2)

    png = processing.render_page(str(source), 2, ImageFormat.PNG, 0.5, tmp_path / "page.png")
    jpeg = processing.render_page(str(source), 1, ImageFormat.JPEG, 1.0, tmp_path / "page.jpg")

    with Image.open(png) as image:
        assert image.format == "PNG"
        assert abs(max(image.size) - 512) <= 1
    with Image.open(jpeg) as image:
        assert image.format == "JPEG"
        assert abs(max(image.size) - 1024) <= 1
