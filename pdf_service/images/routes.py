"""
Image API routes: render PDF pages to images and manage the results.
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse

from pdf_service.dependencies import get_image_pipeline, get_store
from pdf_service.documents.conversion import ImageConversionPipeline
from pdf_service.documents.schemas import ImageConversionRequest, ImageInfo, StoredImage
from pdf_service.storage.metadata import MetadataStore, StatusTable

logger = logging.getLogger(__name__)

router = APIRouter()


def _image_info(image: StoredImage) -> dict:
    return ImageInfo(
        key=image.key,
        original_pdf_key=image.original_pdf_key,
        original_name=image.original_name,
        page_number=image.page_number,
        format=image.format,
        size=image.size,
        mime_type=image.mime_type,
        created_at=image.created_at,
    ).model_dump(mode="json")


@router.post("/convert/{key}")
async def convert_pdf_to_images(
    key: str,
    conversion_request: ImageConversionRequest,
    pipeline: ImageConversionPipeline = Depends(get_image_pipeline),
):
    """
    Render pages of a stored PDF.

    Body: ``{"pages": [1, 2], "format": "jpeg", "scale": 2}``; format is one of
    png (default), jpeg, tiff.
    """
    keys = await pipeline.run(key, conversion_request)
    return {
        "success": True,
        "data": {
            "keys": keys.model_dump(),
            "message": "PDF converted to images successfully",
        },
    }


@router.get("/status/{key}")
async def get_image_status(key: str, store: MetadataStore = Depends(get_store)):
    status_row = store.get_status(StatusTable.IMAGES, key)
    return {"success": True, "data": status_row.model_dump(mode="json")}


@router.get("/download/{image_key}")
async def download_image(image_key: str, store: MetadataStore = Depends(get_store)):
    image = store.get_image(image_key)
    return FileResponse(image.file_path, media_type=image.mime_type, filename=image.original_name)


@router.get("/list/{original_key}")
async def list_images_for_pdf(original_key: str, store: MetadataStore = Depends(get_store)):
    images = store.list_images_by_parent(original_key)
    return {
        "success": True,
        "data": {
            "images": [_image_info(image) for image in images],
            "count": len(images),
        },
    }


@router.get("/info/{image_key}")
async def get_image_info(image_key: str, store: MetadataStore = Depends(get_store)):
    image = store.get_image(image_key)
    return {"success": True, "data": _image_info(image)}


@router.delete("/original/{original_key}")
async def delete_images_for_pdf(original_key: str, store: MetadataStore = Depends(get_store)):
    deleted = store.delete_images_by_parent(original_key)
    return {"success": True, "data": {"deleted": deleted}, "message": "All images deleted successfully"}


@router.delete("/{image_key}")
async def delete_image(image_key: str, store: MetadataStore = Depends(get_store)):
    store.delete_image(image_key)
    return {"success": True, "message": "Image deleted successfully"}
