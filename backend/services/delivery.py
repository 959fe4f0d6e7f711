"""
Response delivery targets.

A sink accepts exactly one delivery per request: either the encoded image or
an error status with a short diagnostic.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional

from botocore.exceptions import BotoCoreError, ClientError
from fastapi.responses import Response

from .errors import ResponseWriteFailure

logger = logging.getLogger(__name__)

CACHE_CONTROL_NO_STORE = "no-store"
ERROR_CONTENT_TYPE = "text/plain; charset=utf-8"


@dataclass(frozen=True)
class Delivery:
    status_code: int
    content_type: str
    body: bytes
    cache_control: str


class ResponseSink:
    """Base class: subclasses implement _write."""

    def __init__(self):
        self.delivery: Optional[Delivery] = None

    async def respond(self, status_code: int, content_type: str, body: bytes, cache_control: str) -> None:
        if self.delivery is not None:
            raise RuntimeError("response already delivered")
        self.delivery = Delivery(
            status_code=status_code,
            content_type=content_type,
            body=body,
            cache_control=cache_control,
        )
        await self._write(self.delivery)

    async def _write(self, delivery: Delivery) -> None:
        raise NotImplementedError


class BufferedResponseSink(ResponseSink):
    """Keeps the delivery in memory for the HTTP app to return."""

    async def _write(self, delivery: Delivery) -> None:
        return None

    def to_response(self, headers: Optional[dict] = None) -> Response:
        if self.delivery is None:
            raise RuntimeError("no response was delivered")
        d = self.delivery
        return Response(
            content=d.body,
            status_code=d.status_code,
            media_type=d.content_type,
            headers={"Cache-Control": d.cache_control, **(headers or {})},
        )


class ObjectLambdaResponseSink(ResponseSink):
    """Writes the response back to S3 Object Lambda via WriteGetObjectResponse."""

    def __init__(self, s3_client: Any, request_route: str, request_token: str):
        super().__init__()
        self.s3_client = s3_client
        self.request_route = request_route
        self.request_token = request_token

    async def _write(self, delivery: Delivery) -> None:
        try:
            await asyncio.to_thread(
                self.s3_client.write_get_object_response,
                RequestRoute=self.request_route,
                RequestToken=self.request_token,
                StatusCode=delivery.status_code,
                ContentType=delivery.content_type,
                CacheControl=delivery.cache_control,
                ContentLength=len(delivery.body),
                Body=delivery.body,
            )
        except (ClientError, BotoCoreError) as e:
            raise ResponseWriteFailure(f"WriteGetObjectResponse failed: {e}") from e
        logger.info(f"Wrote object lambda response: status={delivery.status_code}, {len(delivery.body)} bytes")
