"""
SQLAlchemy backed metadata store.

Each public operation runs in its own short session, so a row is written or
removed atomically. Deleting a file row cascades to its images through the
``images.original_pdf_key`` foreign key; status rows are removed in the same
transaction.
"""

import logging
from datetime import timezone
from typing import List

from sqlalchemy import delete, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from pdf_service.database import create_db_engine, create_session_factory, init_db
from pdf_service.documents import models
from pdf_service.documents.schemas import ProcessingStatus, StoredDocument, StoredImage
from pdf_service.errors import ConflictError, NotFoundError
from pdf_service.storage.metadata import MetadataStore, StatusTable

logger = logging.getLogger(__name__)

_STATUS_MODELS = {
    StatusTable.TRUNCATION: models.TruncationStatusRecord,
    StatusTable.IMAGES: models.ImageStatusRecord,
}


def _as_utc(value):
    # SQLite hands datetimes back without tzinfo
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_document(record: models.StoredFileRecord) -> StoredDocument:
    document = StoredDocument.model_validate(record)
    document.created_at = _as_utc(document.created_at)
    return document


def _to_image(record: models.StoredImageRecord) -> StoredImage:
    image = StoredImage.model_validate(record)
    image.created_at = _as_utc(image.created_at)
    return image


def _to_status(record) -> ProcessingStatus:
    status = ProcessingStatus.model_validate(record)
    status.created_at = _as_utc(status.created_at)
    status.completed_at = _as_utc(status.completed_at)
    return status


class SqlMetadataStore(MetadataStore):

    def __init__(self, engine: Engine):
        self.engine = engine
        self._session_factory = create_session_factory(engine)
        init_db(engine)

    @classmethod
    def from_url(cls, database_url: str) -> "SqlMetadataStore":
        return cls(create_db_engine(database_url))

    # ---- Documents ----

    def _insert_document(self, document: StoredDocument) -> None:
        with self._session_factory() as db:
            db.add(models.StoredFileRecord(**document.model_dump()))
            try:
                db.commit()
            except IntegrityError as e:
                db.rollback()
                raise ConflictError(f"File with key {document.key} already exists") from e

    def _find_document(self, key: str):
        with self._session_factory() as db:
            record = db.get(models.StoredFileRecord, key)
            return _to_document(record) if record is not None else None

    def _remove_document_row(self, key: str) -> None:
        with self._session_factory() as db:
            for status_model in _STATUS_MODELS.values():
                db.execute(delete(status_model).where(status_model.key == key))
            db.execute(delete(models.StoredFileRecord).where(models.StoredFileRecord.key == key))
            db.commit()

    def list_documents(self) -> List[StoredDocument]:
        with self._session_factory() as db:
            records = db.scalars(select(models.StoredFileRecord)).all()
            return [_to_document(record) for record in records]

    # ---- Images ----

    def _insert_image(self, image: StoredImage) -> None:
        values = image.model_dump()
        values["format"] = image.format.value
        with self._session_factory() as db:
            if db.get(models.StoredFileRecord, image.original_pdf_key) is None:
                raise NotFoundError(f"File with key {image.original_pdf_key} not found")
            db.add(models.StoredImageRecord(**values))
            try:
                db.commit()
            except IntegrityError as e:
                db.rollback()
                raise ConflictError(f"Image with key {image.key} already exists") from e

    def _find_image(self, key: str):
        with self._session_factory() as db:
            record = db.get(models.StoredImageRecord, key)
            return _to_image(record) if record is not None else None

    def _remove_image_rows(self, keys: List[str]) -> None:
        if not keys:
            return
        with self._session_factory() as db:
            db.execute(delete(models.StoredImageRecord).where(models.StoredImageRecord.key.in_(keys)))
            db.commit()

    def list_images(self) -> List[StoredImage]:
        with self._session_factory() as db:
            records = db.scalars(select(models.StoredImageRecord)).all()
            return [_to_image(record) for record in records]

    def list_images_by_parent(self, parent_key: str) -> List[StoredImage]:
        with self._session_factory() as db:
            records = db.scalars(
                select(models.StoredImageRecord)
                .where(models.StoredImageRecord.original_pdf_key == parent_key)
                .order_by(models.StoredImageRecord.page_number)
            ).all()
            return [_to_image(record) for record in records]

    # ---- Statuses ----

    def set_status(self, table: StatusTable, key: str, status: ProcessingStatus) -> None:
        status_model = _STATUS_MODELS[table]
        with self._session_factory() as db:
            db.merge(status_model(key=key, **status.model_dump()))
            db.commit()

    def _find_status(self, table: StatusTable, key: str):
        with self._session_factory() as db:
            record = db.get(_STATUS_MODELS[table], key)
            return _to_status(record) if record is not None else None

    def close(self) -> None:
        self.engine.dispose()
        logger.info("Database connection closed.")
