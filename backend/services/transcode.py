"""
Decode a source image and produce a budget-constrained resized copy.

Flow: decode -> plan geometry -> resample -> encode ladder. When the whole
ladder is over budget, the working geometry shrinks by DOWNSCALE_FACTOR and the
resample/encode pair runs again, until either side would drop below
MIN_DIMENSION.
"""

import io
import logging
import math
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError

from .encoder import MAX_OUTPUT_BYTES, EncodedArtifact, ImageFormat, encode_within_budget
from .errors import BudgetUnsatisfiable, EncodeBudgetExceeded, UnsupportedFormat
from .geometry import TargetGeometry, plan_geometry
from .resample import resample
from .resize_request import ResizeRequest

logger = logging.getLogger(__name__)

DOWNSCALE_FACTOR = 0.9
MIN_DIMENSION = 32  # px


@dataclass(frozen=True)
class SourceImage:
    image: Image.Image
    image_format: ImageFormat

    @property
    def width(self) -> int:
        return self.image.size[0]

    @property
    def height(self) -> int:
        return self.image.size[1]


def decode_image(image_bytes: bytes) -> SourceImage:
    """
    Decode image bytes, detecting the container from the data itself.
    Raises UnsupportedFormat for empty, corrupt or non JPEG/PNG input.
    """
    if not image_bytes:
        raise UnsupportedFormat("empty image")

    try:
        im = Image.open(io.BytesIO(image_bytes))
        image_format = ImageFormat.from_pillow(im.format)
        if image_format is None:
            raise UnsupportedFormat(f"unsupported image format: {im.format}")
        im.load()
    except UnsupportedFormat:
        raise
    except Image.DecompressionBombError as e:
        raise UnsupportedFormat(f"image too large to decode: {e}") from e
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as e:
        raise UnsupportedFormat(f"decode error (jpeg/png only): {e}") from e

    logger.info(f"Decoded {image_format.value} image {im.size[0]}x{im.size[1]} mode={im.mode}")
    return SourceImage(image=im, image_format=image_format)


def max_downscale_attempts(
    geometry: TargetGeometry,
    shrink_factor: float = DOWNSCALE_FACTOR,
    min_dimension: int = MIN_DIMENSION,
) -> int:
    """Upper bound on resample/encode rounds transcode can run for geometry."""
    smallest = min(geometry.width, geometry.height)
    if smallest < min_dimension:
        return 1
    return 1 + int(math.ceil(math.log(min_dimension / smallest, shrink_factor)))


def transcode(
    source: SourceImage,
    geometry: TargetGeometry,
    max_bytes: int = MAX_OUTPUT_BYTES,
    shrink_factor: float = DOWNSCALE_FACTOR,
    min_dimension: int = MIN_DIMENSION,
) -> EncodedArtifact:
    """
    Resample source to geometry and encode it within max_bytes, shrinking the
    working geometry on every exhausted ladder.

    Raises BudgetUnsatisfiable once a shrink would put either side below
    min_dimension.
    """
    if not 0 < shrink_factor < 1:
        raise ValueError("shrink_factor must be between 0 and 1")

    working = geometry
    attempt = 0
    while True:
        attempt += 1
        resized = resample(source.image, working.width, working.height)
        try:
            artifact = encode_within_budget(resized, source.image_format, max_bytes=max_bytes)
        except EncodeBudgetExceeded as e:
            shrunk = working.scaled(shrink_factor)
            logger.info(
                f"Attempt {attempt}: {source.image_format.value} {working} over budget "
                f"(smallest={e.smallest_size} bytes, limit={max_bytes}); next size {shrunk}"
            )
            if shrunk.width < min_dimension or shrunk.height < min_dimension:
                raise BudgetUnsatisfiable(
                    f"cannot satisfy {max_bytes} byte limit for {source.image_format.value} "
                    f"above {min_dimension}px (last tried {working})"
                ) from e
            working = shrunk
            continue

        if attempt > 1:
            logger.info(f"Downscaled from {geometry} to {working} to fit {max_bytes} bytes")
        return artifact


def transcode_image_bytes(
    image_bytes: bytes,
    request: ResizeRequest,
    max_bytes: int = MAX_OUTPUT_BYTES,
) -> EncodedArtifact:
    """Decode, plan and transcode in one call."""
    source = decode_image(image_bytes)
    geometry = plan_geometry(source.width, source.height, request.width, request.height)
    logger.info(
        f"Planned {source.width}x{source.height} -> {geometry} "
        f"(requested width={request.width}, height={request.height})"
    )
    return transcode(source, geometry, max_bytes=max_bytes)
