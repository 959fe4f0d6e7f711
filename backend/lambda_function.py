"""
S3 Object Lambda entry point.

The access point forwards GET requests such as
    https://<access-point>/photos/cat.jpg/460
to lambda_handler; the resized object is returned with WriteGetObjectResponse.
"""

import asyncio
import functools
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

# Add current directory to path to find services module
sys.path.insert(0, str(Path(__file__).parent))

from services.config import Settings, load_settings
from services.delivery import ObjectLambdaResponseSink
from services.errors import ImageServiceError
from services.pipeline import process_image_request
from services.resize_request import split_request_url
from services.storage import StorageBackend, create_s3_client, get_storage_backend

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LambdaRuntime:
    settings: Settings
    s3_client: Any
    storage: StorageBackend


def build_runtime(settings: Optional[Settings] = None, s3_client: Any = None) -> LambdaRuntime:
    settings = settings or load_settings()
    if settings.storage_type == "local":
        raise ValueError("STORAGE_TYPE must be s3 or r2 for the object lambda handler")
    s3_client = s3_client if s3_client is not None else create_s3_client(settings)
    storage = get_storage_backend(settings, s3_client=s3_client)
    return LambdaRuntime(settings=settings, s3_client=s3_client, storage=storage)


async def handle_event(event: Dict[str, Any], runtime: LambdaRuntime) -> Dict[str, Any]:
    """Process one S3 Object Lambda event. Errors are delivered, then re-raised."""
    context = event.get("getObjectContext") or {}
    route = context.get("outputRoute")
    token = context.get("outputToken")
    if not route or not token:
        raise ValueError("event is missing getObjectContext.outputRoute/outputToken")

    url = (event.get("userRequest") or {}).get("url", "")
    key, width, height = split_request_url(url)
    logger.debug(f"Parsed object lambda request: key={key!r}, width={width!r}, height={height!r}")

    sink = ObjectLambdaResponseSink(runtime.s3_client, route, token)
    artifact = await process_image_request(
        key,
        width,
        height,
        settings=runtime.settings,
        storage=runtime.storage,
        sink=sink,
    )
    return {"status_code": 200, "content_type": artifact.content_type, "size": artifact.size}


@functools.lru_cache(maxsize=1)
def get_runtime() -> LambdaRuntime:
    """Built on the first invocation and reused while the container stays warm."""
    runtime = build_runtime()
    logging.basicConfig(
        level=runtime.settings.log_level.upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    logger.info(f"Object lambda runtime ready: storage={runtime.settings.storage_type}")
    return runtime


def lambda_handler(event: Dict[str, Any], context: Any = None) -> Dict[str, Any]:
    runtime = get_runtime()
    try:
        return asyncio.run(handle_event(event, runtime))
    except ImageServiceError as e:
        logger.error(f"Object lambda request failed ({e.status_code}): {e}")
        raise
