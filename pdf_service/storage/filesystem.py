"""
Filesystem gateway and artifact naming.

Every byte the service keeps on disk goes through these helpers:
1. Key generation for stored documents and images
2. Directory creation, existence checks, sizes
3. Idempotent deletes (a missing file is not an error)
4. Filename sanitizing for on-disk names
"""

import logging
import math
import os
import re
import uuid
from pathlib import Path
from typing import Union

from pdf_service.errors import InternalError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9\-_.]")
_REPEATED_UNDERSCORES = re.compile(r"_{2,}")
_MAX_FILENAME_LENGTH = 200


def generate_key() -> str:
    """Return a new opaque, globally unique key."""
    return str(uuid.uuid4())


def ensure_dir(path: PathLike) -> Path:
    directory = Path(path)
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error(f"Failed to create directory {directory}: {e}")
        raise InternalError(
            f"Failed to create directory: {directory}",
            code="DIRECTORY_CREATE_ERROR",
        ) from e
    return directory


def exists(path: PathLike) -> bool:
    return Path(path).is_file()


def delete(path: PathLike) -> None:
    """Remove ``path``; deleting a file that is already gone is a no-op."""
    try:
        Path(path).unlink()
    except FileNotFoundError:
        return
    except OSError as e:
        logger.error(f"Failed to delete file {path}: {e}")
        raise InternalError(f"Failed to delete file: {path}", code="FILE_DELETE_ERROR") from e


def stat_size(path: PathLike) -> int:
    try:
        return Path(path).stat().st_size
    except FileNotFoundError as e:
        raise NotFoundError(f"File not found: {path}") from e


def sanitize_filename(filename: str) -> str:
    """
    Make a client supplied filename safe to embed in an on-disk name.

    Examples:
        sanitize_filename("my report (v2).pdf")  → "my_report_v2_.pdf"
        sanitize_filename("__draft__.pdf")       → "draft_.pdf"
    """
    if not filename or not isinstance(filename, str):
        raise ValidationError("Invalid filename provided")

    cleaned = _UNSAFE_CHARS.sub("_", filename)
    cleaned = _REPEATED_UNDERSCORES.sub("_", cleaned)
    cleaned = cleaned.strip("_")
    return cleaned[:_MAX_FILENAME_LENGTH]


def truncated_file_name(original_name: str) -> str:
    """``report.pdf`` → ``report_truncated.pdf``"""
    if not original_name or not isinstance(original_name, str):
        raise ValidationError("Invalid original filename")

    root, ext = os.path.splitext(os.path.basename(original_name))
    return f"{root}_truncated{ext}"


def format_file_size(size: int) -> str:
    if size == 0:
        return "0 Bytes"

    units = ["Bytes", "KB", "MB", "GB"]
    index = min(int(math.floor(math.log(size, 1024))), len(units) - 1)
    value = round(size / (1024 ** index), 2)
    return f"{value:g} {units[index]}"
