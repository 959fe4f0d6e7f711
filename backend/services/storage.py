"""
Storage abstraction for reading source images.

Backends:
- Local filesystem (for development)
- AWS S3
- Cloudflare R2 (S3-compatible)

Every backend enforces the byte cap on the read itself, independent of any
declared content length, so a misreported size cannot grow memory unbounded.
"""

import asyncio
import logging
import mimetypes
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from .config import Settings
from .errors import NotFound, UpstreamFailure

logger = logging.getLogger(__name__)

EXPECTED_CONTENT_TYPES = {"image/jpeg", "image/png"}
NOT_FOUND_CODES = {"NoSuchKey", "NotFound", "404"}


@dataclass(frozen=True)
class StoredObject:
    data: bytes
    content_length: Optional[int]
    content_type: Optional[str]


def _check_declared_size(key: str, content_length: Optional[int], max_bytes: int) -> None:
    if content_length is not None and content_length > max_bytes:
        raise UpstreamFailure(f"source object too large ({content_length} bytes > {max_bytes}): {key}")


def _check_read_size(key: str, data: bytes, max_bytes: int) -> None:
    if len(data) > max_bytes:
        raise UpstreamFailure(f"source object exceeds {max_bytes} bytes: {key}")


def _log_content_type(key: str, content_type: Optional[str]) -> None:
    if content_type and content_type.lower() not in EXPECTED_CONTENT_TYPES:
        logger.warning(f"Unexpected declared content type for {key}: {content_type} (will detect from data)")


class StorageBackend:
    """Abstract base class for storage backends."""

    async def fetch(self, key: str, max_bytes: int) -> StoredObject:
        """
        Read an object.

        Args:
            key: Object key (relative path for local, full key for cloud)
            max_bytes: Hard cap on the number of bytes read

        Returns:
            StoredObject with the bytes and the declared metadata

        Raises:
            NotFound: the key does not exist
            UpstreamFailure: storage error, or the object exceeds max_bytes
        """
        raise NotImplementedError


class LocalStorageBackend(StorageBackend):
    """Local filesystem storage backend."""

    def __init__(self, base_dir: str | Path = "uploads"):
        self.base_dir = Path(base_dir)
        if not self.base_dir.is_dir():
            logger.warning(f"Local storage directory does not exist: {self.base_dir}")
        logger.info(f"Initialized local storage at: {self.base_dir}")

    def _resolve(self, key: str) -> Path:
        base = self.base_dir.resolve()
        full_path = (base / key.lstrip("/")).resolve()
        if full_path != base and base not in full_path.parents:
            raise NotFound(f"object not found: {key}")
        return full_path

    def _read(self, key: str, max_bytes: int) -> StoredObject:
        full_path = self._resolve(key)
        if not full_path.is_file():
            raise NotFound(f"object not found: {key}")

        try:
            content_length = full_path.stat().st_size
            _check_declared_size(key, content_length, max_bytes)
            with open(full_path, "rb") as f:
                data = f.read(max_bytes + 1)
        except OSError as e:
            raise UpstreamFailure(f"failed to read {key}: {e}") from e

        _check_read_size(key, data, max_bytes)
        content_type, _ = mimetypes.guess_type(full_path.name)
        return StoredObject(data=data, content_length=content_length, content_type=content_type)

    async def fetch(self, key: str, max_bytes: int) -> StoredObject:
        obj = await asyncio.to_thread(self._read, key, max_bytes)
        _log_content_type(key, obj.content_type)
        logger.info(f"Read local object {key}: {len(obj.data)} bytes")
        return obj


class S3StorageBackend(StorageBackend):
    """AWS S3 storage backend."""

    name = "S3"

    def __init__(self, bucket_name: str, s3_client: Any):
        if not bucket_name:
            raise ValueError(f"bucket name must be set for {self.name} storage")
        self.bucket_name = bucket_name
        self.s3_client = s3_client
        logger.info(f"Initialized {self.name} storage: bucket={self.bucket_name}")

    def _read(self, key: str, max_bytes: int) -> StoredObject:
        try:
            res = self.s3_client.get_object(Bucket=self.bucket_name, Key=key)
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in NOT_FOUND_CODES:
                raise NotFound(f"object not found: {key}") from e
            raise UpstreamFailure(f"failed to fetch {key} from {self.name}: {code or e}") from e
        except BotoCoreError as e:
            raise UpstreamFailure(f"failed to fetch {key} from {self.name}: {e}") from e

        body = res["Body"]
        try:
            content_length = res.get("ContentLength")
            _check_declared_size(key, content_length, max_bytes)
            data = body.read(max_bytes + 1)
        except (ClientError, BotoCoreError) as e:
            raise UpstreamFailure(f"failed to read {key} from {self.name}: {e}") from e
        finally:
            body.close()

        _check_read_size(key, data, max_bytes)
        return StoredObject(data=data, content_length=content_length, content_type=res.get("ContentType"))

    async def fetch(self, key: str, max_bytes: int) -> StoredObject:
        key = key.lstrip("/")
        # boto3 is sync; run it in a worker thread
        obj = await asyncio.to_thread(self._read, key, max_bytes)
        _log_content_type(key, obj.content_type)
        logger.info(f"Fetched {key} from {self.name}: {len(obj.data)} bytes")
        return obj


class R2StorageBackend(S3StorageBackend):
    """Cloudflare R2 storage backend (S3-compatible)."""

    name = "R2"


def create_s3_client(settings: Settings) -> Any:
    """Build a boto3 S3 client for the configured backend (R2 uses its own endpoint and keys)."""
    if settings.storage_type == "r2":
        access_key_id = os.getenv("R2_ACCESS_KEY_ID")
        secret_access_key = os.getenv("R2_SECRET_ACCESS_KEY")
        if not access_key_id or not secret_access_key:
            raise ValueError("R2_ACCESS_KEY_ID and R2_SECRET_ACCESS_KEY must be set for R2 storage")
        return boto3.client(
            "s3",
            endpoint_url=settings.r2_endpoint_url,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            config=Config(signature_version="s3v4"),
        )

    # Default credential chain (env vars, IAM role, etc.)
    return boto3.client("s3", region_name=settings.aws_region)


def get_storage_backend(settings: Settings, s3_client: Any = None) -> StorageBackend:
    """
    Get the storage backend selected by settings.storage_type.

    Args:
        settings: Process configuration
        s3_client: Optional pre-built boto3 client for s3/r2 (shared with response delivery)
    """
    if settings.storage_type == "local":
        return LocalStorageBackend(base_dir=settings.local_storage_dir)

    client = s3_client if s3_client is not None else create_s3_client(settings)
    if settings.storage_type == "r2":
        return R2StorageBackend(settings.bucket_name, client)
    return S3StorageBackend(settings.bucket_name, client)
