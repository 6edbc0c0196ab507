# image_optimizer/services/storage.py
# Handles optimized image files on local disk

import os
import uuid
from pathlib import Path


class StorageService:
    # Writes outputs into the upload directory and builds their URLs

    def __init__(self, upload_dir: Path, public_url: str = "/uploads"):
        self.upload_dir = Path(upload_dir)
        self.public_url = public_url.rstrip("/")

        # Ensure directory exists
        self.upload_dir.mkdir(parents=True, exist_ok=True)

    def new_file_id(self) -> str:
        # Create a random file ID
        return uuid.uuid4().hex

    def filename(self, file_id: str, fmt: str) -> str:
        return f"{file_id}.{fmt}"

    def output_path(self, file_id: str, fmt: str) -> Path:
        # Where the optimized image is saved
        return self.upload_dir / self.filename(file_id, fmt)

    def temp_path(self, file_id: str) -> Path:
        # Scratch JPEG used while transcoding AVIF input
        return self.upload_dir / f"{file_id}_temp.jpg"

    def save_output(self, file_id: str, fmt: str, data: bytes) -> Path:
        """Write optimized bytes and return the file path."""
        dest = self.output_path(file_id, fmt)
        dest.write_bytes(data)
        return dest

    def public_file_url(self, file_id: str, fmt: str) -> str:
        return f"{self.public_url}/{self.filename(file_id, fmt)}"

    def is_writable(self) -> bool:
        return self.upload_dir.is_dir() and os.access(self.upload_dir, os.W_OK)


# Singleton
_storage: StorageService = None


def get_storage_service() -> StorageService:
    """Get cached storage service instance."""
    global _storage
    if _storage is None:
        from image_optimizer.config import get_settings

        settings = get_settings()
        _storage = StorageService(
            upload_dir=settings.UPLOAD_DIR, public_url=settings.PUBLIC_URL
        )
    return _storage


def reset_storage_service() -> None:
    """Drop the cached instance so the next call re-reads settings."""
    global _storage
    _storage = None
