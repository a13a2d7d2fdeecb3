"""
Pydantic schemas for stored artifacts, processing statuses and page requests.

The metadata store hands these records out regardless of which backend holds
the rows, so the pipelines and routes never touch ORM objects.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Literal, Optional

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from pdf_service.errors import ValidationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ImageFormat(str, Enum):
    PNG = "png"
    JPEG = "jpeg"
    TIFF = "tiff"

    @property
    def mime_type(self) -> str:
        return _IMAGE_MIME_TYPES[self]

    @property
    def extension(self) -> str:
        """Extension of the file the renderers produce for this format."""
        return _IMAGE_EXTENSIONS[self]


_IMAGE_MIME_TYPES = {
    ImageFormat.PNG: "image/png",
    ImageFormat.JPEG: "image/jpeg",
    ImageFormat.TIFF: "image/tiff",
}

_IMAGE_EXTENSIONS = {
    ImageFormat.PNG: ".png",
    ImageFormat.JPEG: ".jpg",
    ImageFormat.TIFF: ".tif",
}


class StoredDocument(BaseModel):
    """A PDF on disk together with its metadata row."""
    key: str
    original_name: str  # what the client called it
    file_name: str  # sanitized on-disk name
    file_path: str
    size: int  # bytes
    mime_type: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class StoredImage(BaseModel):
    """A rendered page image linked to the PDF it came from."""
    key: str
    original_pdf_key: str
    original_name: str
    file_name: str
    file_path: str
    size: int
    mime_type: str
    page_number: int  # 1-based
    format: ImageFormat
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProcessingStatus(BaseModel):
    status: Literal["pending", "processing", "completed", "error"]
    progress: int = 0  # percent
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class UploadProgress(BaseModel):
    status: Literal["pending", "uploading", "completed", "error"]
    total: int = 0
    loaded: int = 0
    percentage: int = 0
    error: Optional[str] = None


class PageRange(BaseModel):
    """Inclusive, 1-based page range; ``end`` defaults to the last page."""
    start: int = Field(..., ge=1)
    end: Optional[int] = Field(None, ge=1)

    @model_validator(mode="after")
    def _end_not_before_start(self) -> "PageRange":
        if self.end is not None and self.end < self.start:
            raise ValueError(f"end ({self.end}) must not be before start ({self.start})")
        return self


class TruncationRequest(BaseModel):
    """
    Which pages to keep: exactly one of an explicit page list or a range.

    Explicit pages keep the caller's order, duplicates included. Whether each
    page exists is checked later against the real page count.
    """
    pages: Optional[List[int]] = Field(None, min_length=1)
    page_range: Optional[PageRange] = Field(None, alias="pageRange")

    model_config = ConfigDict(populate_by_name=True)

    @model_validator(mode="after")
    def _exactly_one_selection(self) -> "TruncationRequest":
        if self.pages is not None and self.page_range is not None:
            raise ValueError("Specify either pages or pageRange, not both")
        if self.pages is None and self.page_range is None:
            raise ValueError("Either pages or pageRange must be specified")
        return self


class ImageConversionRequest(TruncationRequest):
    format: ImageFormat = ImageFormat.PNG
    scale: float = Field(1.0, gt=0, le=10)

    @field_validator("format", mode="before")
    @classmethod
    def _normalize_format(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.lower()
            if value == "jpg":
                return ImageFormat.JPEG
            if value == "tif":
                return ImageFormat.TIFF
        return value


class TruncationResult(BaseModel):
    original_key: str
    truncated_key: str


class ImageConversionResult(BaseModel):
    original_key: str
    image_keys: List[str]


def _first_error_message(exc: pydantic.ValidationError) -> str:
    error = exc.errors()[0]
    location = ".".join(str(part) for part in error.get("loc", ()))
    message = error.get("msg", "Invalid request")
    return f"Validation error: {location + ': ' if location else ''}{message}"


def parse_truncation_request(data: Any) -> TruncationRequest:
    """Validate raw request data, raising the service's ``ValidationError``."""
    try:
        return TruncationRequest.model_validate(data)
    except pydantic.ValidationError as e:
        raise ValidationError(_first_error_message(e)) from e


def parse_image_request(data: Any) -> ImageConversionRequest:
    try:
        return ImageConversionRequest.model_validate(data)
    except pydantic.ValidationError as e:
        raise ValidationError(_first_error_message(e)) from e


# ---- Response shapes ----

class DocumentInfo(BaseModel):
    key: str
    original_name: str
    size: int
    mime_type: str
    created_at: datetime


class DocumentUploadResult(BaseModel):
    key: str
    original_name: str
    size: int
    page_count: int
    message: str = "PDF uploaded successfully"


class ImageInfo(BaseModel):
    key: str
    original_pdf_key: str
    original_name: str
    page_number: int
    format: ImageFormat
    size: int
    mime_type: str
    created_at: datetime
