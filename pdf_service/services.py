"""
Construction of the process-scoped services.

Everything stateful (metadata store, upload tracker, pipelines) is built once
in the application lifespan and reached through ``app.state.services``.
"""

import logging
from dataclasses import dataclass

from pdf_service.config import Settings
from pdf_service.documents.conversion import ImageConversionPipeline
from pdf_service.documents.rendering import PageRenderer, build_renderer
from pdf_service.documents.truncation import TruncationPipeline
from pdf_service.storage.metadata import InMemoryMetadataStore, MetadataStore
from pdf_service.storage.sql_store import SqlMetadataStore
from pdf_service.uploads.progress import UploadProgressTracker

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    store: MetadataStore
    tracker: UploadProgressTracker
    renderer: PageRenderer
    truncation: TruncationPipeline
    images: ImageConversionPipeline

    def close(self) -> None:
        self.tracker.clear()
        self.store.close()


def build_metadata_store(settings: Settings) -> MetadataStore:
    if settings.metadata_backend == "memory":
        logger.info("Using in-memory metadata store")
        return InMemoryMetadataStore()
    if settings.metadata_backend == "sqlite":
        logger.info(f"🗄️  Using SQLite metadata store at {settings.db_path}")
        return SqlMetadataStore.from_url(settings.database_url)
    raise ValueError(f"Unknown metadata backend: {settings.metadata_backend}. Supported: sqlite, memory")


def build_services(settings: Settings, renderer: PageRenderer = None) -> Services:
    settings.ensure_directories()

    store = build_metadata_store(settings)
    if renderer is None:
        renderer = build_renderer(settings.renderer, settings.poppler_bin_path)

    return Services(
        settings=settings,
        store=store,
        tracker=UploadProgressTracker(ttl_seconds=settings.upload_ttl_seconds),
        renderer=renderer,
        truncation=TruncationPipeline(store, settings.processed_dir),
        images=ImageConversionPipeline(store, renderer, settings.images_dir),
    )
