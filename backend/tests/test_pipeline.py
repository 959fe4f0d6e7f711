import io

import pytest
from PIL import Image

from services.config import CACHE_CONTROL_IMMUTABLE, Settings
from services.delivery import BufferedResponseSink, ResponseSink
from services.errors import (
    BudgetUnsatisfiable,
    InvalidDimensions,
    InvalidRequest,
    NotFound,
    ResponseWriteFailure,
    UnsupportedFormat,
    UpstreamFailure,
)
from services.pipeline import process_image_request
from services.storage import StorageBackend, StoredObject


class DictStorage(StorageBackend):
    """In-memory storage that records every fetch."""

    def __init__(self, objects, enforce_cap=True):
        self.objects = objects
        self.enforce_cap = enforce_cap
        self.fetched = []

    async def fetch(self, key, max_bytes):
        self.fetched.append(key)
        if key not in self.objects:
            raise NotFound(f"object not found: {key}")
        data = self.objects[key]
        if self.enforce_cap and len(data) > max_bytes:
            raise UpstreamFailure("too large")
        return StoredObject(data=data, content_length=len(data), content_type=None)


class FailingSink(ResponseSink):
    async def _write(self, delivery):
        raise ResponseWriteFailure("write rejected")


@pytest.mark.asyncio
async def test_success_delivers_image(settings, sample_jpeg_bytes):
    storage = DictStorage({"photos/big.jpg": sample_jpeg_bytes})
    sink = BufferedResponseSink()

    artifact = await process_image_request("photos/big.jpg", "1040", settings=settings, storage=storage, sink=sink)

    assert (artifact.width, artifact.height) == (1040, 780)
    assert sink.delivery.status_code == 200
    assert sink.delivery.content_type == "image/jpeg"
    assert sink.delivery.cache_control == CACHE_CONTROL_IMMUTABLE
    assert sink.delivery.body == artifact.data
    assert Image.open(io.BytesIO(sink.delivery.body)).size == (1040, 780)


@pytest.mark.asyncio
async def test_invalid_width_never_fetches(settings, sample_image_bytes):
    storage = DictStorage({"a.png": sample_image_bytes})
    sink = BufferedResponseSink()

    with pytest.raises(InvalidRequest):
        await process_image_request("a.png", "999", settings=settings, storage=storage, sink=sink)

    assert storage.fetched == []
    assert sink.delivery.status_code == 400
    assert sink.delivery.cache_control == "no-store"
    assert b"width must be one of" in sink.delivery.body


@pytest.mark.parametrize(
    "objects, key, expected, status",
    [
        ({}, "missing.png", NotFound, 404),
        ({"junk.png": b"definitely not an image"}, "junk.png", UnsupportedFormat, 415),
        ({"big.png": b"x" * 2000}, "big.png", UpstreamFailure, 502),
    ],
)
@pytest.mark.asyncio
async def test_failures_are_delivered_then_raised(uploads_dir, objects, key, expected, status):
    settings = Settings(storage_type="local", local_storage_dir=uploads_dir, max_bytes=1000)
    sink = BufferedResponseSink()

    with pytest.raises(expected):
        await process_image_request(key, 240, settings=settings, storage=DictStorage(objects), sink=sink)

    assert sink.delivery.status_code == status
    assert sink.delivery.content_type.startswith("text/plain")


@pytest.mark.asyncio
async def test_invalid_dimensions_delivered(settings, image_bytes):
    storage = DictStorage({"line.png": image_bytes(size=(10000, 1), fmt="PNG")})
    sink = BufferedResponseSink()

    with pytest.raises(InvalidDimensions):
        await process_image_request("line.png", 240, settings=settings, storage=storage, sink=sink)
    assert sink.delivery.status_code == 400


@pytest.mark.asyncio
async def test_budget_unsatisfiable_delivered(uploads_dir, noise_image):
    buf = io.BytesIO()
    noise_image((300, 300)).save(buf, format="PNG")
    settings = Settings(storage_type="local", local_storage_dir=uploads_dir, max_bytes=2000)
    # The source itself is larger than this budget, so skip the read cap.
    storage = DictStorage({"noise.png": buf.getvalue()}, enforce_cap=False)
    sink = BufferedResponseSink()

    with pytest.raises(BudgetUnsatisfiable):
        await process_image_request("noise.png", 300, settings=settings, storage=storage, sink=sink)
    assert sink.delivery.status_code == 500


@pytest.mark.asyncio
async def test_response_write_failure_propagates(settings, sample_image_bytes):
    storage = DictStorage({"a.png": sample_image_bytes})
    with pytest.raises(ResponseWriteFailure):
        await process_image_request("a.png", 240, settings=settings, storage=storage, sink=FailingSink())


@pytest.mark.asyncio
async def test_same_request_is_byte_identical(settings, sample_jpeg_bytes):
    storage = DictStorage({"big.jpg": sample_jpeg_bytes})
    first = await process_image_request("big.jpg", 460, settings=settings, storage=storage, sink=BufferedResponseSink())
    second = await process_image_request("big.jpg", 460, settings=settings, storage=storage, sink=BufferedResponseSink())
    assert first.data == second.data


class BrokenStorage(StorageBackend):
    async def fetch(self, key, max_bytes):
        raise RuntimeError("connection pool exhausted")


@pytest.mark.asyncio
async def test_unexpected_error_is_delivered_as_500_then_raised(settings):
    sink = BufferedResponseSink()

    with pytest.raises(RuntimeError):
        await process_image_request("a.png", 240, settings=settings, storage=BrokenStorage(), sink=sink)

    assert sink.delivery.status_code == 500
    assert sink.delivery.cache_control == "no-store"
    assert sink.delivery.body == b"internal error"
