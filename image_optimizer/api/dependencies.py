"""FastAPI dependencies."""

from typing import Annotated, Optional

from fastapi import Depends, File, Form, UploadFile

from image_optimizer.config import Settings, get_settings
from image_optimizer.core.processors.image import (
    ImageProcessor,
    OptimizeRequest,
    clamp_quality,
    get_image_processor,
    normalize_format,
)
from image_optimizer.services.storage import StorageService, get_storage_service

ACCEPTED_CONTENT_TYPES = (
    "image/jpeg",
    "image/png",
    "image/webp",
    "image/gif",
    "image/avif",
)


class UploadRejected(Exception):
    """Client error in an upload request."""

    def __init__(self, error: str, status_code: int = 400, details: Optional[str] = None):
        super().__init__(error)
        self.error = error
        self.status_code = status_code
        self.details = details


def get_config() -> Settings:
    """Get application settings."""
    return get_settings()


def get_storage() -> StorageService:
    """Get storage service."""
    return get_storage_service()


def get_processor() -> ImageProcessor:
    """Get image processor."""
    return get_image_processor()


def parse_int_field(name: str, value: Optional[str]) -> Optional[int]:
    # Form fields arrive as strings; blank means absent
    if value is None or not value.strip():
        return None
    try:
        return int(value.strip())
    except ValueError:
        raise UploadRejected(f"Invalid {name}", details=f"{name} must be an integer")


async def read_image_upload(
    settings: Annotated[Settings, Depends(get_config)],
    file: Optional[UploadFile] = File(None),
) -> bytes:
    """Validate the uploaded image and return its bytes."""
    if file is None:
        raise UploadRejected("Invalid file data")

    if file.content_type not in ACCEPTED_CONTENT_TYPES:
        raise UploadRejected(
            "Unsupported file type",
            details=f"Accepted types: {', '.join(ACCEPTED_CONTENT_TYPES)}",
        )

    content = await file.read()
    if not content:
        raise UploadRejected("Invalid file data")

    if len(content) > settings.max_file_size_bytes:
        raise UploadRejected(
            "File too large",
            status_code=413,
            details=f"Max size: {settings.MAX_FILE_SIZE_MB}MB",
        )

    return content


def optimize_options(
    settings: Annotated[Settings, Depends(get_config)],
    output_format: Optional[str] = Form(None, alias="format"),
    quality: Optional[str] = Form(None),
    width: Optional[str] = Form(None),
    height: Optional[str] = Form(None),
    source_format: Optional[str] = Form(None, alias="sourceFormat"),
) -> OptimizeRequest:
    """Turn the optional form strings into an OptimizeRequest."""
    parsed_quality = parse_int_field("quality", quality)
    parsed_width = parse_int_field("width", width)
    parsed_height = parse_int_field("height", height)

    for name, value in (("width", parsed_width), ("height", parsed_height)):
        if value is not None and value < 0:
            raise UploadRejected(f"Invalid {name}", details=f"{name} must not be negative")

    return OptimizeRequest(
        format=normalize_format(output_format, default=settings.DEFAULT_FORMAT),
        quality=clamp_quality(
            parsed_quality if parsed_quality is not None else settings.DEFAULT_QUALITY
        ),
        # 0 means "not supplied"
        width=parsed_width or None,
        height=parsed_height or None,
        source_format=(source_format or "unknown").strip().lower(),
    )
