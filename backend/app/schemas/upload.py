"""
Doll Pin API: Upload Schemas
==============================

What:  Models produced by the image pipeline and returned by /api/upload.
"""

from typing import List, Optional

from pydantic import Field

from app.schemas.common import CamelModel


class ImageInfo(CamelModel):
    """Metadata reported by ImageCodec.inspect()."""
    width: int
    height: int
    format: Optional[str] = None
    mode: str
    size_bytes: int = 0


class ProcessedImage(CamelModel):
    """One derivative written by the pipeline."""
    image_url: str = Field(description="Absolute URL of the derivative")
    filename: str = Field(description="Generated derivative filename")
    original_name: str = Field(description="Filename as sent by the client")
    size: int = Field(description="Derivative size in bytes")
    width: int
    height: int


class UploadResponse(ProcessedImage):
    message: str = Field(default="Image uploaded and processed successfully")


class BatchFailure(CamelModel):
    original_name: str
    message: str


class BatchResult(CamelModel):
    processed: List[ProcessedImage] = Field(default_factory=list)
    failed: List[BatchFailure] = Field(default_factory=list)


class BatchUploadResponse(CamelModel):
    message: str
    images: List[ProcessedImage]
    failed: List[BatchFailure] = Field(default_factory=list)


class ImageDeletedResponse(CamelModel):
    message: str = Field(default="Image deleted successfully")
    filename: str
