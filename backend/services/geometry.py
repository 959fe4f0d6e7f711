import math
from dataclasses import dataclass
from typing import Optional

from .errors import InvalidDimensions


@dataclass(frozen=True)
class TargetGeometry:
    width: int
    height: int

    def scaled(self, factor: float) -> "TargetGeometry":
        """Shrink both dimensions by factor, rounding down."""
        return TargetGeometry(
            width=int(math.floor(self.width * factor)),
            height=int(math.floor(self.height * factor)),
        )

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def plan_geometry(
    source_width: int,
    source_height: int,
    requested_width: int,
    requested_height: Optional[int] = None,
) -> TargetGeometry:
    """
    Compute the output size for a resize request without ever upscaling.

    Width only: the width is clamped to the source width and the height follows
    the source aspect ratio. Width and height: the requested box is clamped to
    the source, first by width then by height, scaling the other side by the
    same ratio each time.

    Raises InvalidDimensions when any input is non-positive or a computed side
    rounds to zero.
    """
    if source_width <= 0 or source_height <= 0:
        raise InvalidDimensions(f"invalid source dimensions: {source_width}x{source_height}")
    if requested_width <= 0 or (requested_height is not None and requested_height <= 0):
        raise InvalidDimensions(
            f"invalid requested dimensions: width={requested_width}, height={requested_height}"
        )

    if requested_height is None:
        width = min(requested_width, source_width)
        height = _round_half_up(source_height * width / source_width)
    else:
        w = float(requested_width)
        h = float(requested_height)
        if w > source_width:
            h = h * source_width / w
            w = float(source_width)
        if h > source_height:
            w = w * source_height / h
            h = float(source_height)
        width = min(_round_half_up(w), source_width)
        height = min(_round_half_up(h), source_height)

    if width <= 0 or height <= 0:
        raise InvalidDimensions(
            f"calculated invalid target size {width}x{height} "
            f"for source {source_width}x{source_height}"
        )

    return TargetGeometry(width=int(width), height=int(height))
