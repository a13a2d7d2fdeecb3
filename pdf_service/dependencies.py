"""
FastAPI dependencies that hand the process-scoped services to routes.
"""

from fastapi import Request

from pdf_service.config import Settings
from pdf_service.documents.conversion import ImageConversionPipeline
from pdf_service.documents.truncation import TruncationPipeline
from pdf_service.services import Services
from pdf_service.storage.metadata import MetadataStore
from pdf_service.uploads.progress import UploadProgressTracker


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_settings(request: Request) -> Settings:
    return get_services(request).settings


def get_store(request: Request) -> MetadataStore:
    return get_services(request).store


def get_tracker(request: Request) -> UploadProgressTracker:
    return get_services(request).tracker


def get_truncation_pipeline(request: Request) -> TruncationPipeline:
    return get_services(request).truncation


def get_image_pipeline(request: Request) -> ImageConversionPipeline:
    return get_services(request).images
