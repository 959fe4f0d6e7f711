from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from typing import Optional
import uvicorn
import os
import sys
import logging
import uuid
from pathlib import Path

# Add current directory to path to find services module
sys.path.insert(0, str(Path(__file__).parent))

from services.config import Settings, load_settings
from services.delivery import BufferedResponseSink
from services.errors import ImageServiceError
from services.pipeline import process_image_request
from services.resize_request import split_request_path
from services.storage import StorageBackend, get_storage_backend

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-Id"


def create_app(settings: Optional[Settings] = None, storage: Optional[StorageBackend] = None) -> FastAPI:
    """
    Build the HTTP app. Settings and storage are created once here and shared
    read-only by every request.
    """
    settings = settings or load_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    storage = storage or get_storage_backend(settings)

    app = FastAPI(title="Image Resize API")
    app.state.settings = settings
    app.state.storage = storage

    # Default: localhost for development. Set ALLOWED_ORIGINS (comma-separated) in production.
    allowed_origins = list(settings.allowed_origins) or [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=False,
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["Content-Type", REQUEST_ID_HEADER],
    )

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(f"Unhandled error for {request.method} {request.url.path} [{request_id}]: {e}", exc_info=True)
            response = JSONResponse(status_code=500, content={"detail": "Internal server error"})
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    @app.get("/")
    async def root():
        return {"message": "Image Resize API is running"}

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "storage": settings.storage_type,
            "allowed_widths": sorted(settings.allowed_widths),
            "max_bytes": settings.max_bytes,
        }

    @app.get("/img/{object_path:path}")
    async def resize_image(
        request: Request,
        object_path: str,
        w: Optional[str] = None,
        h: Optional[str] = None,
    ):
        """
        Resize the stored image at object_path.

        The width is either the trailing path segment (/img/photos/cat.jpg/460)
        or the w query parameter (/img/photos/cat.jpg?w=460). h optionally
        requests a bounding box instead of a width-only resize.
        """
        key, width, height = split_request_path(object_path, w, h)
        sink = BufferedResponseSink()
        try:
            await process_image_request(
                key,
                width,
                height,
                settings=settings,
                storage=storage,
                sink=sink,
            )
        except ImageServiceError as e:
            logger.info(f"Request {request.state.request_id} answered with {e.status_code}: {e}")
        return sink.to_response()

    return app


if __name__ == "__main__":
    uvicorn.run(
        create_app(),
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        timeout_keep_alive=600,
        timeout_graceful_shutdown=30
    )
