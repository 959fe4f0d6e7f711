"""
Pytest configuration and shared fixtures
"""
import pytest
from fastapi.testclient import TestClient
from pathlib import Path
import sys
import os
import io

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Keep tests independent of any local .env
os.environ.setdefault("STORAGE_TYPE", "local")

from main import create_app
from services.config import Settings
from services.storage import LocalStorageBackend


def make_image_bytes(size=(64, 48), fmt="PNG", mode="RGB", color=(120, 130, 140)):
    """Encode a solid-colour image with Pillow."""
    from PIL import Image as PILImage  # type: ignore

    img = PILImage.new(mode, size, color=color)
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


def make_noise_image(size=(64, 48), mode="RGB"):
    """Random pixels: practically incompressible, so encoded size tracks pixel count."""
    from PIL import Image as PILImage  # type: ignore

    channels = len(mode)
    return PILImage.frombytes(mode, size, os.urandom(size[0] * size[1] * channels))


@pytest.fixture
def uploads_dir(tmp_path):
    """Create a temporary uploads directory"""
    uploads = tmp_path / "uploads"
    uploads.mkdir()
    return uploads


@pytest.fixture
def settings(uploads_dir):
    return Settings(storage_type="local", local_storage_dir=uploads_dir)


@pytest.fixture
def storage(settings):
    return LocalStorageBackend(base_dir=settings.local_storage_dir)


@pytest.fixture
def client(settings, storage):
    """Create a test client for the FastAPI app"""
    return TestClient(create_app(settings=settings, storage=storage))


@pytest.fixture
def sample_image_bytes():
    """Create sample image bytes for testing"""
    return make_image_bytes(size=(512, 512), fmt="PNG", color=(255, 255, 255))


@pytest.fixture
def sample_jpeg_bytes():
    return make_image_bytes(size=(4000, 3000), fmt="JPEG")


@pytest.fixture
def image_bytes():
    """Factory fixture: image_bytes(size, fmt, mode, color) -> encoded bytes"""
    return make_image_bytes


@pytest.fixture
def noise_image():
    """Factory fixture: noise_image(size, mode) -> PIL image of random pixels"""
    return make_noise_image
