"""Shared pytest fixtures: real PDFs built with PyMuPDF, stores and settings."""

from pathlib import Path

import fitz
import pytest

from pdf_service.config import Settings
from pdf_service.storage import filesystem
from pdf_service.storage.metadata import InMemoryMetadataStore
from pdf_service.storage.sql_store import SqlMetadataStore


def build_pdf(path: Path, page_count: int) -> Path:
    """Write a PDF whose page ``n`` reads ``Page n``."""
    with fitz.open() as doc:
        for number in range(1, page_count + 1):
            page = doc.new_page(width=300, height=400)
            page.insert_text((50, 72), f"Page {number}", fontsize=24)
        doc.save(str(path))
    return path


def page_texts(pdf_path) -> list:
    with fitz.open(str(pdf_path)) as doc:
        return [page.get_text().strip() for page in doc]


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        data_dir=tmp_path / "data",
        metadata_backend="sqlite",
        renderer="pymupdf",
        api_key="test-api-key",
        environment="development",
        upload_sweep_interval_seconds=3600,
    )


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path: Path):
    if request.param == "memory":
        backend = InMemoryMetadataStore()
    else:
        backend = SqlMetadataStore.from_url(f"sqlite:///{tmp_path / 'metadata.sqlite'}")
    yield backend
    backend.close()


@pytest.fixture
def upload_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "uploads"
    directory.mkdir()
    return directory


@pytest.fixture
def stored_pdf(store, upload_dir):
    """Factory: write an ``n`` page PDF into the upload dir and register it."""

    def _stored_pdf(page_count: int = 5, key: str = None, name: str = "report.pdf"):
        key = key or filesystem.generate_key()
        file_name = f"{key}_{name}"
        path = build_pdf(upload_dir / file_name, page_count)
        return store.store_document(
            key,
            name,
            file_name,
            str(path),
            path.stat().st_size,
            "application/pdf",
        )

    return _stored_pdf
