"""
Metadata store for stored PDFs, page images and processing statuses.

The store is the single source of truth for which artifacts exist. Two
backends implement the same interface:
- InMemoryMetadataStore: dictionaries, gone when the process exits
- SqlMetadataStore (sql_store.py): SQLAlchemy tables with a foreign key
  cascade from files to images

Shared contracts:
1. A document or image row only lives while its file exists on disk; a read
   that finds the file missing drops the row and reports NotFound
2. Deleting a document removes image files, then the PDF file, then the rows
   (document, its images and both status rows), best effort on disk
3. update_status merges the given fields over the stored status; mark_failed
   always leaves an ``error`` row, even when the row was dropped mid-run
4. Records handed out are copies; changing them never changes the store
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List, Mapping

from pdf_service.documents.schemas import ProcessingStatus, StoredDocument, StoredImage, utcnow
from pdf_service.errors import AppError, ConflictError, InternalError, NotFoundError
from pdf_service.storage import filesystem

logger = logging.getLogger(__name__)


class StatusTable(str, Enum):
    TRUNCATION = "truncation"
    IMAGES = "images"

    @property
    def label(self) -> str:
        return "Processing status" if self is StatusTable.TRUNCATION else "Image processing status"


class MetadataStore(ABC):
    """Interface the pipelines and routes depend on."""

    # ---- Documents ----

    @abstractmethod
    def _insert_document(self, document: StoredDocument) -> None:
        """Insert a row, raising ConflictError when the key is taken."""

    @abstractmethod
    def _find_document(self, key: str):
        """Return the StoredDocument for ``key`` or None."""

    @abstractmethod
    def _remove_document_row(self, key: str) -> None:
        """Drop the document row together with its image and status rows."""

    @abstractmethod
    def list_documents(self) -> List[StoredDocument]:
        ...

    # ---- Images ----

    @abstractmethod
    def _insert_image(self, image: StoredImage) -> None:
        ...

    @abstractmethod
    def _find_image(self, key: str):
        ...

    @abstractmethod
    def _remove_image_rows(self, keys: List[str]) -> None:
        ...

    @abstractmethod
    def list_images(self) -> List[StoredImage]:
        ...

    @abstractmethod
    def list_images_by_parent(self, parent_key: str) -> List[StoredImage]:
        ...

    # ---- Statuses ----

    @abstractmethod
    def set_status(self, table: StatusTable, key: str, status: ProcessingStatus) -> None:
        """Create or replace the status row for ``key``."""

    @abstractmethod
    def _find_status(self, table: StatusTable, key: str):
        ...

    def close(self) -> None:
        """Release backend resources."""

    # ---- Shared behaviour ----

    def store_document(
        self,
        key: str,
        original_name: str,
        file_name: str,
        file_path: str,
        size: int,
        mime_type: str,
    ) -> StoredDocument:
        document = StoredDocument(
            key=key,
            original_name=original_name,
            file_name=file_name,
            file_path=str(file_path),
            size=size,
            mime_type=mime_type,
            created_at=utcnow(),
        )
        self._insert_document(document)
        logger.info(f"📝 Stored document {key} ({original_name}, {filesystem.format_file_size(size)})")
        return document

    def get_document(self, key: str) -> StoredDocument:
        document = self._find_document(key)
        if document is None:
            raise NotFoundError(f"File with key {key} not found")

        if not filesystem.exists(document.file_path):
            logger.warning(f"File for document {key} vanished from disk, dropping stale row")
            self._remove_document_row(key)
            raise NotFoundError(f"File {key} no longer exists on disk")

        return document

    def delete_document(self, key: str) -> None:
        """
        Delete a document, its page images and both status rows.

        Physical deletes are best effort: every file is attempted, the rows are
        removed regardless, and an InternalError is raised afterwards if any
        file could not be removed.
        """
        document = self._find_document(key)
        if document is None:
            raise NotFoundError(f"File with key {key} not found")

        failures = self._delete_files(image.file_path for image in self.list_images_by_parent(key))
        failures += self._delete_files([document.file_path])

        self._remove_document_row(key)
        logger.info(f"🗑️ Deleted document {key}")

        if failures:
            raise InternalError(f"Failed to delete file {key}", code="DELETE_ERROR")

    def store_image(self, image: StoredImage) -> StoredImage:
        self._insert_image(image)
        logger.info(f"🖼️ Stored image {image.key} (page {image.page_number} of {image.original_pdf_key})")
        return image

    def get_image(self, key: str) -> StoredImage:
        image = self._find_image(key)
        if image is None:
            raise NotFoundError(f"Image with key {key} not found")

        if not filesystem.exists(image.file_path):
            logger.warning(f"File for image {key} vanished from disk, dropping stale row")
            self._remove_image_rows([key])
            raise NotFoundError(f"Image {key} no longer exists on disk")

        return image

    def delete_image(self, key: str) -> None:
        image = self._find_image(key)
        if image is None:
            raise NotFoundError(f"Image with key {key} not found")

        failures = self._delete_files([image.file_path])
        self._remove_image_rows([key])
        logger.info(f"🗑️ Deleted image {key}")

        if failures:
            raise InternalError(f"Failed to delete image {key}", code="DELETE_ERROR")

    def delete_images_by_parent(self, parent_key: str) -> int:
        """Delete every image rendered from ``parent_key``; returns how many."""
        images = self.list_images_by_parent(parent_key)
        failures = self._delete_files(image.file_path for image in images)
        self._remove_image_rows([image.key for image in images])
        logger.info(f"🗑️ Deleted {len(images)} images of document {parent_key}")

        if failures:
            raise InternalError(
                f"Failed to delete {len(failures)} image file(s) of {parent_key}",
                code="DELETE_ERROR",
            )
        return len(images)

    def get_status(self, table: StatusTable, key: str) -> ProcessingStatus:
        status = self._find_status(table, key)
        if status is None:
            raise NotFoundError(f"{table.label} for key {key} not found")
        return status

    def update_status(
        self,
        table: StatusTable,
        key: str,
        changes: Mapping[str, Any],
    ) -> ProcessingStatus:
        """Shallow-merge ``changes`` over the stored status and write it back."""
        current = self.get_status(table, key)
        merged = current.model_copy(update=dict(changes))
        self.set_status(table, key, merged)
        return merged

    def mark_failed(self, table: StatusTable, key: str, message: str) -> ProcessingStatus:
        """
        Leave ``key`` in the terminal ``error`` state.

        Unlike update_status this never fails for a missing row: a self-healing
        read during the run may have dropped it together with the document.
        """
        changes = {"status": "error", "error": message, "completed_at": utcnow()}
        current = self._find_status(table, key)
        if current is None:
            failed = ProcessingStatus(**changes)
        else:
            failed = current.model_copy(update=changes)
        self.set_status(table, key, failed)
        return failed

    @staticmethod
    def _delete_files(paths) -> List[str]:
        failures = []
        for path in paths:
            try:
                filesystem.delete(path)
            except AppError as e:
                logger.error(f"❌ {e.message}")
                failures.append(str(path))
        return failures


class InMemoryMetadataStore(MetadataStore):
    """Process-local backend; images link to their PDF through ``original_pdf_key``."""

    def __init__(self):
        self._documents: Dict[str, StoredDocument] = {}
        self._images: Dict[str, StoredImage] = {}
        self._statuses: Dict[StatusTable, Dict[str, ProcessingStatus]] = {
            table: {} for table in StatusTable
        }

    def _insert_document(self, document: StoredDocument) -> None:
        if document.key in self._documents:
            raise ConflictError(f"File with key {document.key} already exists")
        self._documents[document.key] = document.model_copy()

    def _find_document(self, key: str):
        document = self._documents.get(key)
        return document.model_copy() if document is not None else None

    def _remove_document_row(self, key: str) -> None:
        self._documents.pop(key, None)
        self._remove_image_rows([image.key for image in self.list_images_by_parent(key)])
        for statuses in self._statuses.values():
            statuses.pop(key, None)

    def list_documents(self) -> List[StoredDocument]:
        return [document.model_copy() for document in self._documents.values()]

    def _insert_image(self, image: StoredImage) -> None:
        if image.key in self._images:
            raise ConflictError(f"Image with key {image.key} already exists")
        if image.original_pdf_key not in self._documents:
            raise NotFoundError(f"File with key {image.original_pdf_key} not found")
        self._images[image.key] = image.model_copy()

    def _find_image(self, key: str):
        image = self._images.get(key)
        return image.model_copy() if image is not None else None

    def _remove_image_rows(self, keys: List[str]) -> None:
        for key in keys:
            self._images.pop(key, None)

    def list_images(self) -> List[StoredImage]:
        return [image.model_copy() for image in self._images.values()]

    def list_images_by_parent(self, parent_key: str) -> List[StoredImage]:
        return [image.model_copy() for image in self._images.values() if image.original_pdf_key == parent_key]

    def set_status(self, table: StatusTable, key: str, status: ProcessingStatus) -> None:
        self._statuses[table][key] = status.model_copy()

    def _find_status(self, table: StatusTable, key: str):
        status = self._statuses[table].get(key)
        return status.model_copy() if status is not None else None

    def close(self) -> None:
        self._documents.clear()
        self._images.clear()
        for statuses in self._statuses.values():
            statuses.clear()
