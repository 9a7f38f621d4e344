"""
Doll Pin API: Abstract Image Codec Interface
==============================================

What:  The contract the image pipeline needs from an image library.
How:   Concrete codecs inherit from ImageCodec. The pipeline only ever calls
       these methods, so its orchestration (staging, cleanup, naming) can be
       tested with a fake codec.
Who:   PillowCodec implements it; ImagePipeline consumes it.

All methods are synchronous and may block on CPU or disk. The pipeline runs
them in a worker thread.
"""

from abc import ABC, abstractmethod
from pathlib import Path

from app.schemas.upload import ImageInfo


class ImageCodec(ABC):
    """
    Contract:
        - Inputs and outputs are filesystem paths.
        - Any decode/encode failure is raised as ProcessingError; callers never
          see library-specific exception types.
        - Output files are written completely or not at all from the
          caller's point of view (the pipeline deletes partial outputs).
    """

    @abstractmethod
    def inspect(self, path: Path) -> ImageInfo:
        """Read dimensions, format and pixel mode without modifying the file."""
        ...

    @abstractmethod
    def resize(self, src: Path, dst: Path, width: int, height: int) -> Path:
        """
        Fit the image inside width x height, keeping aspect ratio.
        Images already inside the box are left at their size (never upscaled).
        The output keeps the source format.
        """
        ...

    @abstractmethod
    def reencode(self, src: Path, dst: Path, fmt: str = "jpeg", quality: int = 85) -> Path:
        """Convert to `fmt` (jpeg, png or webp) at the given quality."""
        ...

    @abstractmethod
    def optimize(
        self,
        src: Path,
        dst: Path,
        max_width: int = 800,
        max_height: int = 800,
        quality: int = 85,
    ) -> Path:
        """resize + reencode to progressive JPEG in a single decode."""
        ...

    @abstractmethod
    def watermark(self, src: Path, dst: Path, text: str, quality: int = 85) -> Path:
        """Stamp semi-transparent text in the bottom-right corner; lossy outputs use `quality`."""
        ...
