"""
Tests for main FastAPI application endpoints
"""
import io

import pytest
from fastapi.testclient import TestClient
from PIL import Image


@pytest.fixture
def stored(uploads_dir):
    """Write bytes into the local storage directory under key."""
    def _store(key: str, data: bytes):
        path = uploads_dir / key
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return key
    return _store


def test_root_endpoint(client: TestClient):
    """Test the root endpoint returns a valid response"""
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert "message" in data
    assert "Image Resize API" in data["message"]
    assert response.headers.get("X-Request-Id")


def test_health_endpoint(client: TestClient):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["storage"] == "local"
    assert body["allowed_widths"] == [240, 300, 460, 700, 1040]


def test_request_id_is_echoed_when_provided(client: TestClient):
    rid = "test-request-id-123"
    resp = client.get("/", headers={"X-Request-Id": rid})
    assert resp.status_code == 200
    assert resp.headers.get("X-Request-Id") == rid


def test_resize_jpeg_trailing_width(client: TestClient, stored, sample_jpeg_bytes):
    stored("photos/big.jpg", sample_jpeg_bytes)

    response = client.get("/img/photos/big.jpg/1040")

    assert response.status_code == 200
    assert response.headers["content-type"] == "image/jpeg"
    assert response.headers["cache-control"] == "public, max-age=31536000, immutable"
    img = Image.open(io.BytesIO(response.content))
    assert img.format == "JPEG"
    assert img.size == (1040, 780)
    assert len(response.content) <= 10_485_760


def test_resize_with_query_parameters(client: TestClient, stored, sample_jpeg_bytes):
    stored("big.jpg", sample_jpeg_bytes)

    response = client.get("/img/big.jpg", params={"w": 460, "h": 200})

    assert response.status_code == 200
    assert Image.open(io.BytesIO(response.content)).size == (460, 200)


def test_small_png_is_not_upscaled(client: TestClient, stored, image_bytes):
    stored("small.png", image_bytes(size=(100, 100), fmt="PNG"))

    response = client.get("/img/small.png/1040")

    assert response.status_code == 200
    assert response.headers["content-type"] == "image/png"
    img = Image.open(io.BytesIO(response.content))
    assert img.format == "PNG"
    assert img.size == (100, 100)


def test_disallowed_width_is_rejected(client: TestClient, stored, sample_image_bytes):
    stored("a.png", sample_image_bytes)

    response = client.get("/img/a.png/999")

    assert response.status_code == 400
    assert "width must be one of" in response.text
    assert response.headers["cache-control"] == "no-store"
    assert response.headers.get("X-Request-Id")


def test_missing_width_is_rejected(client: TestClient):
    response = client.get("/img/a.png")
    assert response.status_code == 400


def test_missing_object(client: TestClient):
    response = client.get("/img/nonexistent.jpg/240")
    assert response.status_code == 404


def test_corrupt_object(client: TestClient, stored):
    stored("corrupt.jpg", b"\xff\xd8\xff\xe0 this is not really a jpeg")
    response = client.get("/img/corrupt.jpg/240")
    assert response.status_code == 415


def test_rejects_path_traversal(client: TestClient):
    response = client.get("/img/..%2F..%2Fetc%2Fpasswd/240")
    assert response.status_code == 400


def test_percent_in_key_is_decoded_once(client: TestClient, stored, image_bytes):
    stored("a%20b.png", image_bytes(size=(400, 300), fmt="PNG"))

    response = client.get("/img/a%2520b.png/240")

    assert response.status_code == 200
    assert Image.open(io.BytesIO(response.content)).size == (240, 180)
