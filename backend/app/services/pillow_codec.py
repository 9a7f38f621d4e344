"""
Doll Pin API: Pillow Image Codec
==================================

What:  ImageCodec implementation backed by Pillow.
How:   Every operation decodes the source once (EXIF orientation applied),
       transforms in memory, and saves to the destination path. Pillow errors
       (UnidentifiedImageError, OSError, DecompressionBombError, ValueError)
       are converted to ProcessingError.

Derivative recipe used by the upload pipeline (`optimize`):
    1. decode + exif_transpose
    2. thumbnail() into max_width x max_height (aspect kept, no upscaling)
    3. flatten transparency onto white, convert to RGB
    4. save as progressive, optimized JPEG at `quality`
"""

import logging
from pathlib import Path
from typing import Optional, Tuple

from PIL import Image, ImageDraw, ImageFont, ImageOps, UnidentifiedImageError

from app.exceptions import ProcessingError
from app.schemas.upload import ImageInfo
from app.services.codec_base import ImageCodec

logger = logging.getLogger(__name__)

# Output formats the codec can write, keyed by the names callers use
OUTPUT_FORMATS = {
    "jpeg": "JPEG",
    "jpg": "JPEG",
    "png": "PNG",
    "webp": "WEBP",
    "gif": "GIF",
}

_DECODE_ERRORS = (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError)


class PillowCodec(ImageCodec):
    """Pillow-backed codec. Stateless apart from resampling filter and default quality."""

    def __init__(self, quality: int = 85, resample: Image.Resampling = Image.Resampling.LANCZOS):
        self.quality = quality
        self.resample = resample

    # ── Decode / encode helpers ───────────────────────────────────────────

    def _open(self, src: Path) -> Tuple[Image.Image, Optional[str]]:
        """Decode fully and return (upright image, source format)."""
        try:
            with Image.open(src) as img:
                source_format = img.format
                img.load()
                upright = ImageOps.exif_transpose(img)
        except _DECODE_ERRORS as e:
            logger.warning("Could not decode %s: %s", Path(src).name, str(e))
            raise ProcessingError(
                message="Failed to process image",
                context={"reason": str(e), "file": Path(src).name},
            )
        return upright, source_format

    def _fit(self, image: Image.Image, width: int, height: int) -> Image.Image:
        if image.width <= width and image.height <= height:
            return image
        image.thumbnail((width, height), self.resample)
        return image

    @staticmethod
    def _flatten(image: Image.Image) -> Image.Image:
        """JPEG has no alpha channel: composite transparent images onto white."""
        has_alpha = image.mode in ("RGBA", "LA", "PA") or (
            image.mode == "P" and "transparency" in image.info
        )
        if has_alpha:
            rgba = image.convert("RGBA")
            background = Image.new("RGB", rgba.size, (255, 255, 255))
            background.paste(rgba, mask=rgba.getchannel("A"))
            return background
        if image.mode != "RGB":
            return image.convert("RGB")
        return image

    def _save(self, image: Image.Image, dst: Path, fmt: str, quality: int) -> Path:
        pil_format = OUTPUT_FORMATS.get(fmt.lower())
        if pil_format is None:
            raise ProcessingError(
                message=f"Unsupported output format '{fmt}'",
                context={"allowed": sorted(OUTPUT_FORMATS)},
            )

        try:
            if pil_format == "JPEG":
                self._flatten(image).save(
                    dst, "JPEG", quality=quality, progressive=True, optimize=True
                )
            elif pil_format == "PNG":
                if image.mode not in ("RGB", "RGBA", "L", "LA", "P"):
                    image = image.convert("RGBA")
                image.save(dst, "PNG", optimize=True, compress_level=9)
            elif pil_format == "GIF":
                image.save(dst, "GIF")
            else:
                if image.mode not in ("RGB", "RGBA"):
                    image = image.convert("RGBA")
                image.save(dst, "WEBP", quality=quality)
        except (OSError, ValueError) as e:
            logger.error("Could not encode %s as %s: %s", Path(dst).name, pil_format, str(e))
            raise ProcessingError(
                message="Failed to process image",
                context={"reason": str(e), "file": Path(dst).name},
            )
        return Path(dst)

    @staticmethod
    def _format_for(path: Path, fallback: Optional[str]) -> str:
        suffix = Path(path).suffix.lower().lstrip(".")
        if suffix in OUTPUT_FORMATS:
            return suffix
        return (fallback or "jpeg").lower()

    # ── ImageCodec contract ───────────────────────────────────────────────

    def inspect(self, path: Path) -> ImageInfo:
        path = Path(path)
        try:
            with Image.open(path) as img:
                return ImageInfo(
                    width=img.width,
                    height=img.height,
                    format=img.format,
                    mode=img.mode,
                    size_bytes=path.stat().st_size,
                )
        except _DECODE_ERRORS as e:
            raise ProcessingError(
                message="Failed to get image info",
                context={"reason": str(e), "file": path.name},
            )

    def resize(self, src: Path, dst: Path, width: int, height: int) -> Path:
        image, source_format = self._open(src)
        fitted = self._fit(image, width, height)
        return self._save(fitted, dst, self._format_for(dst, source_format), self.quality)

    def reencode(self, src: Path, dst: Path, fmt: str = "jpeg", quality: int = 85) -> Path:
        image, _ = self._open(src)
        return self._save(image, dst, fmt, quality)

    def optimize(
        self,
        src: Path,
        dst: Path,
        max_width: int = 800,
        max_height: int = 800,
        quality: int = 85,
    ) -> Path:
        image, source_format = self._open(src)
        original_size = image.size
        fitted = self._fit(image, max_width, max_height)
        written = self._save(fitted, dst, "jpeg", quality)
        logger.debug(
            "Optimized %s (%s %dx%d) -> %s %dx%d",
            Path(src).name,
            source_format,
            original_size[0],
            original_size[1],
            written.name,
            fitted.width,
            fitted.height,
        )
        return written

    def watermark(self, src: Path, dst: Path, text: str, quality: int = 85) -> Path:
        image, source_format = self._open(src)
        base = image.convert("RGBA")

        overlay = Image.new("RGBA", base.size, (255, 255, 255, 0))
        draw = ImageDraw.Draw(overlay)
        font = ImageFont.load_default()
        left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
        margin = max(4, min(base.size) // 40)
        position = (
            base.width - (right - left) - margin - left,
            base.height - (bottom - top) - margin - top,
        )
        # 50% opaque white
        draw.text(position, text, font=font, fill=(255, 255, 255, 128))

        stamped = Image.alpha_composite(base, overlay)
        return self._save(stamped, dst, self._format_for(dst, source_format), quality)
