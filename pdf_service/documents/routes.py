"""
PDF API routes: upload with progress, truncation, status, download and cleanup.
"""

import json
import logging
from typing import Dict

from fastapi import APIRouter, Depends, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import FileResponse

from pdf_service.config import Settings
from pdf_service.dependencies import (
    get_settings,
    get_store,
    get_tracker,
    get_truncation_pipeline,
)
from pdf_service.documents import processing
from pdf_service.documents.schemas import (
    DocumentInfo,
    DocumentUploadResult,
    TruncationRequest,
    parse_truncation_request,
)
from pdf_service.documents.truncation import TruncationPipeline
from pdf_service.errors import NotFoundError, ValidationError
from pdf_service.storage.metadata import MetadataStore, StatusTable
from pdf_service.uploads.handler import ReceivedUpload, receive_pdf_upload
from pdf_service.uploads.progress import UploadProgressTracker

logger = logging.getLogger(__name__)

router = APIRouter()


def _document_info(document) -> dict:
    return DocumentInfo(
        key=document.key,
        original_name=document.original_name,
        size=document.size,
        mime_type=document.mime_type,
        created_at=document.created_at,
    ).model_dump(mode="json")


def truncation_fields(fields: Dict[str, str]) -> dict:
    """
    Read a page selection from multipart form fields.

    ``pages`` may be a JSON list ("[1, 3]") or a comma separated list ("1,3");
    ``pageRange`` is a JSON object ('{"start": 2, "end": 4}').
    """
    data = {}
    try:
        if fields.get("pages"):
            raw = fields["pages"].strip()
            if raw.startswith("["):
                data["pages"] = json.loads(raw)
            else:
                data["pages"] = [int(page) for page in raw.split(",") if page.strip()]
        for name in ("pageRange", "page_range"):
            if fields.get(name):
                data["pageRange"] = json.loads(fields[name])
    except ValueError as e:
        raise ValidationError(f"Validation error: malformed page selection ({e})") from e
    return data


async def _store_upload(upload: ReceivedUpload, store: MetadataStore) -> int:
    """Validate the uploaded PDF and register it; a rejected file is removed."""
    try:
        page_count = await run_in_threadpool(processing.validate_pdf, str(upload.file_path))
        store.store_document(
            upload.key,
            upload.original_name,
            upload.file_name,
            str(upload.file_path),
            upload.size,
            upload.mime_type,
        )
    except Exception:
        upload.discard()
        raise
    return page_count


@router.post("/initiate-upload")
async def initiate_upload(
    request: Request,
    tracker: UploadProgressTracker = Depends(get_tracker),
):
    """Create an upload session; send its id in the X-Upload-ID header of the upload."""
    upload_id = tracker.initiate()
    logger.info(f"Upload initiated {upload_id} (request {request.state.request_id})")
    return {
        "success": True,
        "data": {
            "upload_id": upload_id,
            "message": "Upload initiated. Use this ID in the X-Upload-ID header.",
        },
    }


@router.get("/upload-progress/{upload_id}")
async def get_upload_progress(
    upload_id: str,
    tracker: UploadProgressTracker = Depends(get_tracker),
):
    progress = tracker.get(upload_id)
    if progress is None:
        raise NotFoundError("Upload progress not found for this ID.")
    return {"success": True, "data": progress.model_dump()}


@router.post("/upload", status_code=status.HTTP_201_CREATED)
async def upload_pdf(
    request: Request,
    store: MetadataStore = Depends(get_store),
    tracker: UploadProgressTracker = Depends(get_tracker),
    settings: Settings = Depends(get_settings),
):
    """
    Upload a PDF without processing it.

    Send ``multipart/form-data`` with the file in the ``pdf`` field and the id
    from /initiate-upload in ``X-Upload-ID``.
    """
    upload = await receive_pdf_upload(request, tracker, settings.upload_dir, settings.max_file_size)
    page_count = await _store_upload(upload, store)

    result = DocumentUploadResult(
        key=upload.key,
        original_name=upload.original_name,
        size=upload.size,
        page_count=page_count,
    )
    return {"success": True, "data": result.model_dump()}


@router.post("/upload-and-truncate", status_code=status.HTTP_201_CREATED)
async def upload_and_truncate(
    request: Request,
    store: MetadataStore = Depends(get_store),
    tracker: UploadProgressTracker = Depends(get_tracker),
    settings: Settings = Depends(get_settings),
    pipeline: TruncationPipeline = Depends(get_truncation_pipeline),
):
    """Upload a PDF and truncate it in one request (``pages`` or ``pageRange`` form field)."""
    upload = await receive_pdf_upload(request, tracker, settings.upload_dir, settings.max_file_size)

    try:
        truncation_request = parse_truncation_request(truncation_fields(upload.fields))
    except ValidationError:
        upload.discard()
        raise

    await _store_upload(upload, store)
    keys = await pipeline.run(upload.key, truncation_request)

    return {
        "success": True,
        "data": {
            "keys": keys.model_dump(),
            "message": "PDF uploaded and truncated successfully",
        },
    }


@router.post("/truncate/{key}")
async def truncate_pdf(
    key: str,
    truncation_request: TruncationRequest,
    pipeline: TruncationPipeline = Depends(get_truncation_pipeline),
):
    """
    Truncate a previously uploaded PDF.

    Body: ``{"pages": [3, 1]}`` or ``{"pageRange": {"start": 2, "end": 5}}``
    """
    logger.info(f"Starting truncation for previously uploaded file {key}")
    keys = await pipeline.run(key, truncation_request)
    return {
        "success": True,
        "data": {
            "keys": keys.model_dump(),
            "message": "PDF truncated successfully",
        },
    }


@router.get("/status/{key}")
async def get_truncation_status(key: str, store: MetadataStore = Depends(get_store)):
    status_row = store.get_status(StatusTable.TRUNCATION, key)
    return {"success": True, "data": status_row.model_dump(mode="json")}


@router.get("/download/{key}")
async def download_pdf(key: str, store: MetadataStore = Depends(get_store)):
    document = store.get_document(key)
    return FileResponse(
        document.file_path,
        media_type="application/pdf",
        filename=document.original_name,
    )


@router.get("/info/{key}")
async def get_pdf_info(key: str, store: MetadataStore = Depends(get_store)):
    document = store.get_document(key)
    return {"success": True, "data": _document_info(document)}


@router.get("/list")
async def list_pdfs(store: MetadataStore = Depends(get_store)):
    documents = store.list_documents()
    return {
        "success": True,
        "data": {
            "files": [_document_info(document) for document in documents],
            "count": len(documents),
        },
    }


@router.delete("/truncated/{key}")
async def delete_truncated_pdf(key: str, store: MetadataStore = Depends(get_store)):
    store.delete_document(key)
    return {"success": True, "message": "Truncated PDF deleted successfully"}


@router.delete("/original/{key}")
async def delete_original_pdf(key: str, store: MetadataStore = Depends(get_store)):
    """Delete an uploaded PDF along with its page images and processing statuses."""
    store.delete_document(key)
    return {"success": True, "message": "Original PDF deleted successfully"}

