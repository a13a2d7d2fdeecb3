"""
Database models for stored PDFs, rendered page images and processing statuses.
"""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from pdf_service.database import Base


class StoredFileRecord(Base):
    """An uploaded PDF or a truncated PDF derived from one."""

    __tablename__ = "files"

    key = Column(String(36), primary_key=True)
    original_name = Column(String(255), nullable=False)  # display name
    file_name = Column(String(255), nullable=False)  # on-disk name
    file_path = Column(Text, nullable=False)
    size = Column(Integer, nullable=False)  # in bytes
    mime_type = Column(String(100), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)

    images = relationship(
        "StoredImageRecord",
        back_populates="parent",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self):
        return f"<StoredFileRecord(key='{self.key}', file_name='{self.file_name}')>"


class StoredImageRecord(Base):
    """A single rendered page of a stored PDF."""

    __tablename__ = "images"

    key = Column(String(36), primary_key=True)
    original_pdf_key = Column(
        String(36),
        ForeignKey("files.key", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    original_name = Column(String(255), nullable=False)
    file_name = Column(String(255), nullable=False)
    file_path = Column(Text, nullable=False)
    size = Column(Integer, nullable=False)
    mime_type = Column(String(100), nullable=False)
    page_number = Column(Integer, nullable=False)  # 1-based
    format = Column(String(10), nullable=False)  # png, jpeg, tiff
    created_at = Column(DateTime(timezone=True), nullable=False)

    parent = relationship("StoredFileRecord", back_populates="images")

    def __repr__(self):
        return f"<StoredImageRecord(key='{self.key}', page={self.page_number})>"


class _StatusColumns:
    key = Column(String(36), primary_key=True)
    status = Column(String(20), nullable=False)  # pending, processing, completed, error
    progress = Column(Integer, nullable=False, default=0)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)


class TruncationStatusRecord(_StatusColumns, Base):
    __tablename__ = "pdf_processing_status"


class ImageStatusRecord(_StatusColumns, Base):
    __tablename__ = "image_processing_status"
