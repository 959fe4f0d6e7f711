import asyncio
import logging
import time

from .config import Settings
from .delivery import CACHE_CONTROL_NO_STORE, ERROR_CONTENT_TYPE, ResponseSink
from .encoder import EncodedArtifact
from .errors import ImageServiceError
from .resize_request import DimensionValue, parse_resize_request
from .storage import StorageBackend
from .transcode import transcode_image_bytes

logger = logging.getLogger(__name__)


async def process_image_request(
    key: str,
    width: DimensionValue,
    height: DimensionValue = None,
    *,
    settings: Settings,
    storage: StorageBackend,
    sink: ResponseSink,
) -> EncodedArtifact:
    """
    Validate, fetch, transcode and deliver one resize request.

    Exactly one delivery is made through sink. On failure the error status is
    delivered first and the ImageServiceError is then re-raised so the caller
    can log it. Any other exception is delivered as a 500 and re-raised.
    ResponseWriteFailure from the sink propagates unchanged.
    """
    started = time.monotonic()
    try:
        request = parse_resize_request(key, width, height, allowed_widths=settings.allowed_widths)
        source = await storage.fetch(request.key, max_bytes=settings.max_bytes)
        # CPU-bound decode/resample/encode
        artifact = await asyncio.to_thread(
            transcode_image_bytes, source.data, request, settings.max_bytes
        )
    except ImageServiceError as e:
        logger.warning(f"Resize request failed for key={key!r} width={width!r}: {type(e).__name__}: {e}")
        await sink.respond(
            e.status_code,
            ERROR_CONTENT_TYPE,
            e.message.encode("utf-8"),
            CACHE_CONTROL_NO_STORE,
        )
        raise
    except Exception as e:
        logger.error(f"Unexpected error resizing key={key!r} width={width!r}: {e}", exc_info=True)
        await sink.respond(500, ERROR_CONTENT_TYPE, b"internal error", CACHE_CONTROL_NO_STORE)
        raise

    await sink.respond(200, artifact.content_type, artifact.data, settings.cache_control)
    logger.info(
        f"Resized {request.key} to {artifact.width}x{artifact.height} {artifact.image_format.value} "
        f"({artifact.size} bytes, parameter={artifact.parameter}) in {time.monotonic() - started:.2f}s"
    )
    return artifact
