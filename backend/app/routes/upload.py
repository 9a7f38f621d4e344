"""
Doll Pin API: Image Upload Route Handlers
===========================================

What:  POST /api/upload, POST /api/upload/multiple, DELETE /api/upload/{filename}.
How:   Receives multipart uploads and delegates to ImagePipeline. The
       returned imageUrl is built from the request's own scheme and host so
       it resolves against the StaticFiles mount at /api/uploads.
Who:   The doll editor's image picker.

Request Flow (single upload):
    1. Client sends multipart/form-data with an `image` field
    2. ImagePipeline validates, stages, derives, deletes the original
    3. 200 with the derivative's URL and dimensions
    4. On error the pipeline has already cleaned up; the global handlers
       render the failure envelope
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Request, UploadFile

from app.config import settings
from app.exceptions import NotFoundError, ValidationError
from app.schemas.common import ErrorResponse
from app.schemas.upload import BatchUploadResponse, ImageDeletedResponse, UploadResponse
from app.services.image_pipeline import ImagePipeline, get_image_pipeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Upload"])


def _base_url(request: Request) -> str:
    return str(request.base_url)


@router.post(
    "/upload",
    response_model=UploadResponse,
    responses={
        400: {"description": "Missing file, wrong type or too large", "model": ErrorResponse},
        500: {"description": "Image could not be processed", "model": ErrorResponse},
    },
    summary="Upload and normalize one doll image",
    description=(
        "Accepts JPEG, PNG, GIF or WebP up to 5MB. The image is resized to fit "
        "800x800 and re-encoded as JPEG; only the processed copy is kept."
    ),
)
async def upload_image(
    request: Request,
    image: Optional[UploadFile] = File(default=None, description="Image file"),
    pipeline: ImagePipeline = Depends(get_image_pipeline),
) -> UploadResponse:
    try:
        processed = await pipeline.ingest(image, _base_url(request))
    finally:
        if image is not None:
            await image.close()
    return UploadResponse(**processed.model_dump())


@router.post(
    "/upload/multiple",
    response_model=BatchUploadResponse,
    responses={400: {"description": "No files or too many files", "model": ErrorResponse}},
    summary="Upload several doll images at once",
    description=(
        "Each file is processed independently; files that fail are listed in "
        "`failed` and do not affect the others."
    ),
)
async def upload_images(
    request: Request,
    images: Optional[List[UploadFile]] = File(default=None, description="Image files"),
    pipeline: ImagePipeline = Depends(get_image_pipeline),
) -> BatchUploadResponse:
    uploads = images or []
    try:
        if not uploads:
            raise ValidationError(
                message="No files uploaded. Please select at least one image.",
                field="images",
            )
        if len(uploads) > settings.max_batch_files:
            raise ValidationError(
                message=f"Too many files. Maximum is {settings.max_batch_files} per request.",
                field="images",
                context={"received": len(uploads), "max": settings.max_batch_files},
            )

        result = await pipeline.ingest_many(uploads, _base_url(request))
    finally:
        for upload in uploads:
            await upload.close()

    total = len(uploads)
    message = f"{len(result.processed)} of {total} images uploaded and processed successfully"
    return BatchUploadResponse(message=message, images=result.processed, failed=result.failed)


@router.delete(
    "/upload/{filename}",
    response_model=ImageDeletedResponse,
    responses={
        400: {"description": "Filename is not a plain file name", "model": ErrorResponse},
        404: {"description": "Image not found", "model": ErrorResponse},
    },
    summary="Delete a processed image",
)
async def delete_image(
    filename: str,
    pipeline: ImagePipeline = Depends(get_image_pipeline),
) -> ImageDeletedResponse:
    deleted = await pipeline.delete(filename)
    if not deleted:
        raise NotFoundError(resource="Image", resource_id=filename)
    return ImageDeletedResponse(filename=filename)
