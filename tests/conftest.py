"""Shared fixtures.

The app module builds an instance at import time, so the upload and public
directories are pointed at a scratch location before anything imports it.
Each test then gets its own directories through ``upload_dir``.
"""

import io
import os
import tempfile
from pathlib import Path

_scratch = Path(tempfile.mkdtemp(prefix="image-optimizer-tests-"))
os.environ.setdefault("UPLOAD_DIR", str(_scratch / "uploads"))
os.environ.setdefault("PUBLIC_DIR", str(_scratch / "public"))

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from PIL import Image  # noqa: E402

from image_optimizer.config import get_settings  # noqa: E402
from image_optimizer.services.storage import reset_storage_service  # noqa: E402


@pytest.fixture
def make_image():
    """Factory for encoded test images."""

    def _make(fmt="PNG", size=(400, 200), mode="RGB", color=(200, 30, 30)):
        img = Image.new(mode, size, color)
        buf = io.BytesIO()
        img.save(buf, format=fmt)
        return buf.getvalue()

    return _make


@pytest.fixture
def upload_dir(tmp_path, monkeypatch):
    directory = tmp_path / "uploads"
    monkeypatch.setenv("UPLOAD_DIR", str(directory))
    monkeypatch.setenv("PUBLIC_DIR", str(tmp_path / "public"))
    monkeypatch.delenv("PUBLIC_URL", raising=False)
    get_settings.cache_clear()
    reset_storage_service()
    yield directory
    get_settings.cache_clear()
    reset_storage_service()


@pytest.fixture
def client(upload_dir):
    from image_optimizer.main import create_app

    with TestClient(create_app()) as test_client:
        yield test_client
