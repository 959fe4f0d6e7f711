import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, Optional, Sequence, Tuple

from dotenv import load_dotenv

from .encoder import MAX_OUTPUT_BYTES
from .resize_request import ALLOWED_WIDTHS

CACHE_CONTROL_IMMUTABLE = "public, max-age=31536000, immutable"
STORAGE_TYPES = ("local", "s3", "r2")


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {value!r}")


def _env_list(key: str, default: Sequence[str] = ()) -> Tuple[str, ...]:
    value = os.getenv(key)
    if not value:
        return tuple(default)
    return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclass(frozen=True, slots=True)
class Settings:
    """Process-wide configuration. Built once at start-up and passed to every request."""

    storage_type: str = "local"
    local_storage_dir: Path = field(default_factory=lambda: Path("uploads"))
    bucket_name: Optional[str] = None
    aws_region: str = "us-east-1"
    r2_endpoint_url: Optional[str] = None
    max_bytes: int = MAX_OUTPUT_BYTES
    allowed_widths: FrozenSet[int] = ALLOWED_WIDTHS
    cache_control: str = CACHE_CONTROL_IMMUTABLE
    allowed_origins: Tuple[str, ...] = ()
    log_level: str = "INFO"

    def __post_init__(self):
        if self.storage_type not in STORAGE_TYPES:
            raise ValueError(f"STORAGE_TYPE must be one of {', '.join(STORAGE_TYPES)}, got {self.storage_type!r}")
        if self.storage_type in ("s3", "r2") and not self.bucket_name:
            raise ValueError("BUCKET_NAME environment variable is required for s3/r2 storage")
        if self.storage_type == "r2" and not self.r2_endpoint_url:
            raise ValueError("Either R2_ENDPOINT_URL or R2_ACCOUNT_ID must be set for R2 storage")
        if self.max_bytes <= 0:
            raise ValueError("MAX_OUTPUT_BYTES must be > 0")
        if not self.allowed_widths or any(w <= 0 for w in self.allowed_widths):
            raise ValueError("ALLOWED_WIDTHS must be a non-empty list of positive integers")
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ValueError(f"LOG_LEVEL is not a valid logging level: {self.log_level!r}")


def load_settings() -> Settings:
    """Read Settings from the environment (and a .env file, if present)."""
    load_dotenv()

    storage_type = os.getenv("STORAGE_TYPE", "local").lower()
    bucket_name = (
        os.getenv("BUCKET_NAME")
        or os.getenv("AWS_S3_BUCKET_NAME")
        or os.getenv("R2_BUCKET_NAME")
    )

    r2_endpoint_url = os.getenv("R2_ENDPOINT_URL")
    r2_account_id = os.getenv("R2_ACCOUNT_ID")
    if not r2_endpoint_url and r2_account_id:
        r2_endpoint_url = f"https://{r2_account_id}.r2.cloudflarestorage.com"

    widths = _env_list("ALLOWED_WIDTHS")
    try:
        allowed_widths = frozenset(int(w) for w in widths) if widths else ALLOWED_WIDTHS
    except ValueError:
        raise ValueError(f"ALLOWED_WIDTHS must be comma-separated integers, got {os.getenv('ALLOWED_WIDTHS')!r}")

    return Settings(
        storage_type=storage_type,
        local_storage_dir=Path(os.getenv("LOCAL_STORAGE_DIR", "uploads")),
        bucket_name=bucket_name,
        aws_region=os.getenv("AWS_S3_REGION") or os.getenv("AWS_REGION") or "us-east-1",
        r2_endpoint_url=r2_endpoint_url,
        max_bytes=_env_int("MAX_OUTPUT_BYTES", MAX_OUTPUT_BYTES),
        allowed_widths=allowed_widths,
        cache_control=os.getenv("CACHE_CONTROL", CACHE_CONTROL_IMMUTABLE),
        allowed_origins=_env_list("ALLOWED_ORIGINS"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
