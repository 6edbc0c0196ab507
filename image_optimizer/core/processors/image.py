# image_optimizer/core/processors/image.py
from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from PIL import Image

logger = logging.getLogger(__name__)

OUTPUT_FORMATS: Tuple[str, ...] = ("webp", "avif", "jpeg", "png")
DEFAULT_OUTPUT_FORMAT = "webp"
FORMAT_ALIASES = {"jpg": "jpeg"}

PIL_FORMATS = {
    "webp": "WEBP",
    "avif": "AVIF",
    "jpeg": "JPEG",
    "png": "PNG",
}


class ImageProcessingError(RuntimeError):
    """Raised when a pipeline stage fails; ``stage`` names the step."""

    def __init__(self, stage: str, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.stage = stage
        self.message = message
        self.details = str(cause) if cause is not None else message


def normalize_format(value: Optional[str], default: str = DEFAULT_OUTPUT_FORMAT) -> str:
    """Clamp a requested output format to the supported set."""
    if not value:
        return default
    fmt = value.strip().lower()
    fmt = FORMAT_ALIASES.get(fmt, fmt)
    return fmt if fmt in OUTPUT_FORMATS else default


def available_encoders() -> Dict[str, bool]:
    """Which output formats this Pillow build can write."""
    Image.init()
    return {fmt: PIL_FORMATS[fmt] in Image.SAVE for fmt in OUTPUT_FORMATS}


def clamp_quality(value: int) -> int:
    return max(1, min(100, value))


@dataclass(frozen=True)
class ImageOptions:
    intermediate_jpeg_quality: int = 90
    avif_speed: int = 6  # 0 slowest/best .. 10 fastest
    avif_subsampling: str = "4:2:0"
    png_palette_colors: int = 256
    background: Tuple[int, int, int] = (255, 255, 255)


@dataclass(frozen=True)
class OptimizeRequest:
    format: str = DEFAULT_OUTPUT_FORMAT
    quality: int = 80
    width: Optional[int] = None
    height: Optional[int] = None
    source_format: str = "unknown"


@dataclass(frozen=True)
class OptimizedImage:
    data: bytes
    format: str
    width: int
    height: int

    @property
    def size(self) -> int:
        return len(self.data)


def has_alpha(img: Image.Image) -> bool:
    if img.mode in ("RGBA", "LA", "PA"):
        return True
    return img.mode == "P" and "transparency" in img.info


class ImageProcessor:
    def __init__(self, options: Optional[ImageOptions] = None):
        self.options = options or ImageOptions()

    def decode(self, data: bytes) -> Image.Image:
        try:
            img = Image.open(io.BytesIO(data))
            img.load()
        except Exception as e:
            raise ImageProcessingError("decode", "Could not decode image", e) from e
        return img

    def describe(self, img: Image.Image) -> Dict[str, Any]:
        return {
            "format": img.format,
            "width": img.width,
            "height": img.height,
            "mode": img.mode,
            "channels": len(img.getbands()),
        }

    def to_rgb(self, img: Image.Image) -> Image.Image:
        """Convert to RGB, or RGBA when the image carries transparency."""
        target = "RGBA" if has_alpha(img) else "RGB"
        return img if img.mode == target else img.convert(target)

    def flatten(self, img: Image.Image) -> Image.Image:
        """Composite transparency onto the background colour for JPEG."""
        if img.mode in ("RGB", "L"):
            return img
        if not has_alpha(img):
            return img.convert("RGB")
        rgba = img.convert("RGBA")
        canvas = Image.new("RGB", rgba.size, self.options.background)
        canvas.paste(rgba, mask=rgba.getchannel("A"))
        return canvas

    def transcode_via_jpeg(
        self, img: Image.Image, temp_path: Optional[Path] = None
    ) -> Image.Image:
        """
        Re-encode ``img`` as JPEG and decode it again.

        Some AVIF inputs decode into states the encoders choke on; going
        through JPEG first yields a plain RGB image. The temp file is tried
        first, then an in-memory buffer. The temp file is always removed.
        """
        source = self.flatten(img)
        quality = self.options.intermediate_jpeg_quality
        intermediate: Optional[Image.Image] = None

        if temp_path is not None:
            try:
                source.save(temp_path, format="JPEG", quality=quality)
                intermediate = Image.open(temp_path)
                intermediate.load()
                logger.info("AVIF intermediate conversion through temp file successful")
            except OSError as e:
                logger.error("Temp file approach failed: %s", e)
                intermediate = None
            finally:
                try:
                    temp_path.unlink(missing_ok=True)
                except OSError as cleanup_err:
                    logger.warning("Failed to clean up temp file: %s", cleanup_err)

        if intermediate is None:
            buf = io.BytesIO()
            source.save(buf, format="JPEG", quality=quality)
            buf.seek(0)
            intermediate = Image.open(buf)
            intermediate.load()
            logger.info("AVIF intermediate conversion through memory successful")

        return intermediate

    def resize_inside(
        self, img: Image.Image, width: Optional[int] = None, height: Optional[int] = None
    ) -> Image.Image:
        """Fit inside ``width`` x ``height`` keeping aspect ratio; never enlarges."""
        if not width and not height:
            return img

        box = (width or img.width, height or img.height)
        if img.width <= box[0] and img.height <= box[1]:
            return img

        # Resampling wants 8-bit bands; other modes go through RGB(A)
        if img.mode not in ("RGB", "RGBA", "L", "LA"):
            img = self.to_rgb(img)
        resized = img.copy()
        resized.thumbnail(box, Image.Resampling.LANCZOS)
        return resized

    def encode(self, img: Image.Image, fmt: str, quality: int) -> bytes:
        buf = io.BytesIO()

        if fmt == "webp":
            logger.info("Applying WebP conversion with quality: %s", quality)
            self.to_rgb(img).save(buf, format="WEBP", quality=quality)
        elif fmt == "avif":
            logger.info("Applying AVIF conversion with quality: %s", quality)
            self.to_rgb(img).save(
                buf,
                format="AVIF",
                quality=quality,
                speed=self.options.avif_speed,
                subsampling=self.options.avif_subsampling,
            )
        elif fmt == "jpeg":
            logger.info("Applying JPEG conversion with quality: %s", quality)
            self.flatten(img).save(buf, format="JPEG", quality=quality, optimize=True)
        elif fmt == "png":
            logger.info("Applying PNG conversion with quality: %s", quality)
            out = self.to_rgb(img)
            # Below 100 trade colour depth for size, like a palette PNG
            if quality < 100:
                out = out.quantize(
                    colors=self.options.png_palette_colors,
                    method=Image.Quantize.FASTOCTREE,
                )
            out.save(buf, format="PNG", optimize=True)
        else:
            raise ValueError(f"Unsupported output format: {fmt}")

        return buf.getvalue()

    def read_dimensions(self, data: bytes) -> Tuple[int, int]:
        with Image.open(io.BytesIO(data)) as out:
            return out.size

    def optimize(
        self, data: bytes, request: OptimizeRequest, temp_path: Optional[Path] = None
    ) -> OptimizedImage:
        """
        Decode -> (AVIF pre-transcode) -> resize -> encode.

        Raises ImageProcessingError labelled with the failing stage.
        """
        img = self.decode(data)
        logger.info("Input image metadata: %s", self.describe(img))

        if request.source_format == "avif":
            logger.info("Processing AVIF through intermediate JPEG for better compatibility")
            try:
                img = self.transcode_via_jpeg(img, temp_path)
                logger.info(
                    "Decoded AVIF through JPEG, will now convert to final format: %s",
                    request.format,
                )
            except Exception as e:
                # Fall through with the original decode
                logger.error("All AVIF intermediate conversions failed: %s", e)

        try:
            img = self.resize_inside(img, request.width, request.height)
        except Exception as e:
            raise ImageProcessingError("resize", "Image resize failed", e) from e

        try:
            encoded = self.encode(img, request.format, request.quality)
            width, height = self.read_dimensions(encoded)
        except Exception as e:
            raise ImageProcessingError(
                "final_processing", "Image processing failed in final stage", e
            ) from e

        logger.info(
            "Output metadata: format=%s width=%s height=%s size=%s",
            request.format,
            width,
            height,
            len(encoded),
        )
        return OptimizedImage(data=encoded, format=request.format, width=width, height=height)


# convenient singleton
_image_processor: Optional[ImageProcessor] = None


def get_image_processor() -> ImageProcessor:
    global _image_processor
    if _image_processor is None:
        _image_processor = ImageProcessor()
    return _image_processor
