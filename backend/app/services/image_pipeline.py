"""
Doll Pin API: Image Ingestion Pipeline
========================================

What:  Turns an uploaded image into one normalized JPEG derivative and a URL.
How:   Validate → stage original → derive (codec, worker thread) →
       delete original → report.
Who:   /api/upload route handlers. Created once in the app lifespan and
       injected with `get_image_pipeline`.

Validation (cheapest first, all before decoding):
    1. A file was sent at all
    2. Declared content type is one of ALLOWED_MIME_TYPES
    3. Filename extension is one of ALLOWED_EXTENSIONS
    4. Size <= settings.max_upload_size, counted while streaming to disk;
       the partial staged file is removed as soon as the limit is crossed

File naming (upload_dir is shared by concurrent requests):
    original:    <sanitized-name>-<ms-timestamp>-<random>.<ext>
    derivative:  processed-<original stem>.jpg

Cleanup rules:
    - The original is deleted only after its derivative is fully written.
    - On a codec failure the partial derivative and the original are both
      removed before ProcessingError propagates. Cleanup problems are logged
      at WARNING and never replace the original error.
    - Batch uploads apply the same rules to each file independently.
"""

import logging
import re
import secrets
import time
from pathlib import Path
from typing import Optional, Sequence

import aiofiles
from fastapi import Request, UploadFile
from starlette.concurrency import run_in_threadpool

from app.config import settings
from app.exceptions import DollApiError, ProcessingError, ValidationError
from app.schemas.upload import BatchFailure, BatchResult, ProcessedImage
from app.services.codec_base import ImageCodec

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = {
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/gif",
    "image/webp",
}

ALLOWED_EXTENSIONS = {".jpeg", ".jpg", ".png", ".gif", ".webp"}

# URL path the derivatives are served from (mounted in main.py)
STATIC_PREFIX = "/api/uploads"

DERIVATIVE_PREFIX = "processed-"

_CHUNK_SIZE = 64 * 1024
_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9]")


def sanitize_stem(filename: str) -> str:
    """Reduce a client filename stem to [a-zA-Z0-9_], capped at 40 chars."""
    stem = Path(filename).stem
    cleaned = _UNSAFE_CHARS.sub("_", stem)[:40]
    return cleaned or "image"


def generate_staged_name(filename: str) -> str:
    """<sanitized-name>-<ms-timestamp>-<random>.<ext>"""
    ext = Path(filename).suffix.lower()
    unique_suffix = f"{int(time.time() * 1000)}-{secrets.token_hex(4)}"
    return f"{sanitize_stem(filename)}-{unique_suffix}{ext}"


class ImagePipeline:
    """
    Stateless per request; holds only configuration and the codec.

    Args:
        upload_dir:  Directory for staged originals and derivatives
        codec:       ImageCodec implementation (PillowCodec in production)
        max_size:    Byte limit per file
        max_width / max_height / quality: derivative recipe
        watermark_text: stamped on each derivative when non-empty
    """

    def __init__(
        self,
        upload_dir: Path,
        codec: ImageCodec,
        max_size: Optional[int] = None,
        max_width: Optional[int] = None,
        max_height: Optional[int] = None,
        quality: Optional[int] = None,
        watermark_text: Optional[str] = None,
    ):
        self.upload_dir = Path(upload_dir).resolve()
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        self.codec = codec
        self.max_size = max_size or settings.max_upload_size
        self.max_width = max_width or settings.image_max_width
        self.max_height = max_height or settings.image_max_height
        self.quality = quality or settings.image_quality
        self.watermark_text = settings.watermark_text if watermark_text is None else watermark_text
        logger.info("ImagePipeline initialized with upload_dir=%s", self.upload_dir)

    # ── Validation ────────────────────────────────────────────────────────

    def validate_content_type(self, content_type: Optional[str]) -> str:
        mime = (content_type or "").split(";")[0].strip().lower()
        if mime not in ALLOWED_MIME_TYPES:
            raise ValidationError(
                message=(
                    "Invalid file type. Only "
                    f"{', '.join(sorted(ALLOWED_MIME_TYPES))} are allowed."
                ),
                field="image",
                context={"content_type": mime, "allowed": sorted(ALLOWED_MIME_TYPES)},
            )
        return mime

    def validate_extension(self, filename: str) -> str:
        ext = Path(filename).suffix.lower()
        if ext not in ALLOWED_EXTENSIONS:
            raise ValidationError(
                message="Invalid file extension",
                field="image",
                context={"extension": ext, "allowed": sorted(ALLOWED_EXTENSIONS)},
            )
        return ext

    def _too_large(self, received: int) -> ValidationError:
        max_mb = self.max_size / (1024 * 1024)
        return ValidationError(
            message=f"File too large. Maximum size is {max_mb:g}MB.",
            field="image",
            context={"max_size": self.max_size, "received_at_least": received},
        )

    # ── Filesystem helpers ────────────────────────────────────────────────

    async def _stage(self, upload: UploadFile, staged_path: Path) -> int:
        """
        Stream the upload to `staged_path`, enforcing the size limit.

        Returns the byte count. Removes the partial file before raising.
        """
        # Cheap rejection when the multipart parser already knows the size
        if upload.size is not None and upload.size > self.max_size:
            raise self._too_large(upload.size)

        received = 0
        try:
            async with aiofiles.open(staged_path, "wb") as out:
                while True:
                    chunk = await upload.read(_CHUNK_SIZE)
                    if not chunk:
                        break
                    received += len(chunk)
                    if received > self.max_size:
                        raise self._too_large(received)
                    await out.write(chunk)
        except ValidationError:
            await self.cleanup_file(staged_path)
            raise
        except OSError as e:
            await self.cleanup_file(staged_path)
            logger.error("Failed to stage upload at %s: %s", staged_path, str(e))
            raise ProcessingError(
                message="Failed to save uploaded image",
                context={"reason": str(e)},
            )
        return received

    async def cleanup_file(self, file_path: Path) -> None:
        """Best-effort delete; missing files are fine, other failures are logged."""
        path = Path(file_path)
        try:
            path.unlink(missing_ok=True)
            logger.debug("Cleaned up file: %s", path.name)
        except OSError as e:
            logger.warning("Failed to clean up file %s: %s", path, str(e))

    def _derive(self, staged_path: Path, derivative_path: Path):
        """Blocking codec work; runs in the threadpool."""
        self.codec.optimize(
            staged_path,
            derivative_path,
            max_width=self.max_width,
            max_height=self.max_height,
            quality=self.quality,
        )
        if self.watermark_text:
            self.codec.watermark(
                derivative_path, derivative_path, self.watermark_text, quality=self.quality
            )
        return self.codec.inspect(derivative_path)

    def build_url(self, base_url: str, filename: str) -> str:
        return f"{base_url.rstrip('/')}{STATIC_PREFIX}/{filename}"

    # ── Public operations ─────────────────────────────────────────────────

    async def ingest(self, upload: Optional[UploadFile], base_url: str) -> ProcessedImage:
        """
        Validate, stage, derive and report one upload.

        Raises:
            ValidationError: no file / wrong type / wrong extension / too large
            ProcessingError: the codec could not read or write the image
        """
        if upload is None or not upload.filename:
            raise ValidationError(
                message="No file uploaded. Please select an image.",
                field="image",
            )

        original_name = upload.filename
        self.validate_content_type(upload.content_type)
        self.validate_extension(original_name)

        staged_path = self.upload_dir / generate_staged_name(original_name)
        received = await self._stage(upload, staged_path)
        logger.info("File received: %s (%d bytes) as %s", original_name, received, staged_path.name)

        derivative_name = f"{DERIVATIVE_PREFIX}{staged_path.stem}.jpg"
        derivative_path = self.upload_dir / derivative_name

        try:
            info = await run_in_threadpool(self._derive, staged_path, derivative_path)
        except Exception as e:
            await self.cleanup_file(derivative_path)
            await self.cleanup_file(staged_path)
            if isinstance(e, DollApiError):
                raise
            logger.error("Unexpected error processing %s: %s", original_name, str(e), exc_info=True)
            raise ProcessingError(
                message="Failed to process image",
                context={"reason": str(e), "original_name": original_name},
            )

        # Derivative is on disk; only now drop the original
        await self.cleanup_file(staged_path)

        logger.info(
            "Image processed: %s -> %s (%s %s, %dx%d, %d bytes)",
            original_name,
            derivative_name,
            info.format,
            info.mode,
            info.width,
            info.height,
            info.size_bytes,
        )
        return ProcessedImage(
            image_url=self.build_url(base_url, derivative_name),
            filename=derivative_name,
            original_name=original_name,
            size=info.size_bytes,
            width=info.width,
            height=info.height,
        )

    async def ingest_many(self, uploads: Sequence[UploadFile], base_url: str) -> BatchResult:
        """
        Run `ingest` on each upload independently.

        A failing file is reported in `failed` and never affects files that
        already succeeded or that come after it.
        """
        result = BatchResult()
        for upload in uploads:
            try:
                result.processed.append(await self.ingest(upload, base_url))
            except DollApiError as e:
                name = (upload.filename if upload is not None else None) or "unknown"
                logger.warning("Batch upload: %s failed: %s", name, e.message)
                result.failed.append(BatchFailure(original_name=name, message=e.message))
        return result

    def resolve_derivative(self, filename: str) -> Path:
        """Map a client-supplied filename to a path inside upload_dir."""
        if not filename or Path(filename).name != filename or filename in (".", ".."):
            raise ValidationError(message="Invalid filename", field="filename")
        return self.upload_dir / filename

    async def delete(self, filename: str) -> bool:
        """Remove a derivative. Returns False when there was nothing to delete."""
        path = self.resolve_derivative(filename)
        if not path.is_file():
            logger.info("Delete requested for missing image %s", filename)
            return False
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        logger.info("Image deleted: %s", filename)
        return True


def get_image_pipeline(request: Request) -> ImagePipeline:
    """FastAPI dependency: the pipeline created in the lifespan."""
    return request.app.state.image_pipeline
