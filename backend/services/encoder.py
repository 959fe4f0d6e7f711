"""
Budget-constrained re-encoding.

Each supported container format owns a fixed parameter ladder ordered from
highest fidelity to smallest output. encode_within_budget walks the ladder in
order and returns the first encoding whose byte length fits max_bytes.
"""

import io
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from PIL import Image

from .errors import EncodeBudgetExceeded

logger = logging.getLogger(__name__)

MAX_OUTPUT_BYTES = 10 * 1024 * 1024  # 10MB

JPEG_QUALITY_LADDER: Tuple[int, ...] = (95, 90, 85, 80, 75, 70, 65, 60)
# zlib default effort first, then maximum effort
PNG_COMPRESS_LADDER: Tuple[int, ...] = (6, 9)

_JPEG_MODES = {"L", "RGB", "CMYK"}


class ImageFormat(Enum):
    JPEG = "JPEG"
    PNG = "PNG"

    @property
    def content_type(self) -> str:
        return _CONTENT_TYPES[self]

    @property
    def ladder(self) -> Tuple[int, ...]:
        return JPEG_QUALITY_LADDER if self is ImageFormat.JPEG else PNG_COMPRESS_LADDER

    @classmethod
    def from_pillow(cls, name: Optional[str]) -> Optional["ImageFormat"]:
        """Map a Pillow decoder name to a supported format, or None."""
        name = (name or "").upper()
        # Pillow reports multi-picture JPEGs (common from phone cameras) as MPO
        if name == "MPO":
            return cls.JPEG
        for fmt in cls:
            if fmt.value == name:
                return fmt
        return None


_CONTENT_TYPES = {
    ImageFormat.JPEG: "image/jpeg",
    ImageFormat.PNG: "image/png",
}


@dataclass(frozen=True)
class EncodedArtifact:
    data: bytes
    image_format: ImageFormat
    width: int
    height: int
    parameter: int

    @property
    def content_type(self) -> str:
        return self.image_format.content_type

    @property
    def size(self) -> int:
        return len(self.data)


def _save_options(image: Image.Image, image_format: ImageFormat, parameter: int) -> Dict[str, Any]:
    options: Dict[str, Any] = {}
    if image_format is ImageFormat.JPEG:
        options.update(quality=parameter, optimize=True, progressive=True)
    else:
        options["compress_level"] = parameter
        if parameter >= 9:
            options["optimize"] = True

    icc_profile = (image.info or {}).get("icc_profile")
    if icc_profile:
        options["icc_profile"] = icc_profile
    return options


def encode_once(image: Image.Image, image_format: ImageFormat, parameter: int) -> bytes:
    """Encode image with a single ladder parameter."""
    if image_format is ImageFormat.JPEG and image.mode not in _JPEG_MODES:
        image = image.convert("RGB")

    out = io.BytesIO()
    image.save(out, format=image_format.value, **_save_options(image, image_format, parameter))
    return out.getvalue()


def encode_within_budget(
    image: Image.Image,
    image_format: ImageFormat,
    max_bytes: int = MAX_OUTPUT_BYTES,
) -> EncodedArtifact:
    """
    Encode image in image_format, trying each ladder step in order.

    Returns the first EncodedArtifact whose size is <= max_bytes. Raises
    EncodeBudgetExceeded when the whole ladder is over budget.
    """
    if max_bytes <= 0:
        raise ValueError("max_bytes must be > 0")

    width, height = image.size
    smallest: Optional[int] = None
    for parameter in image_format.ladder:
        data = encode_once(image, image_format, parameter)
        size = len(data)
        if size <= max_bytes:
            logger.debug(
                f"Encoded {image_format.value} {width}x{height} with parameter={parameter}: {size} bytes"
            )
            return EncodedArtifact(
                data=data,
                image_format=image_format,
                width=width,
                height=height,
                parameter=parameter,
            )
        smallest = size if smallest is None else min(smallest, size)

    raise EncodeBudgetExceeded(
        f"cannot satisfy {max_bytes} byte limit for {image_format.value} at {width}x{height}",
        smallest_size=smallest,
    )
