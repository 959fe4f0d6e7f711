"""
Turn an incoming request into a validated (key, width, height) tuple.

Two encodings are accepted:
- trailing path segment: /photos/cat.jpg/460
- query parameters:      /photos/cat.jpg?w=460&h=300
"""

from dataclasses import dataclass
from typing import AbstractSet, Optional, Tuple, Union
from urllib.parse import parse_qs, unquote, urlparse

from .errors import InvalidRequest

ALLOWED_WIDTHS = frozenset({240, 300, 460, 700, 1040})

DimensionValue = Union[int, str, None]


@dataclass(frozen=True)
class ResizeRequest:
    key: str
    width: int
    height: Optional[int] = None


def _parse_dimension(value: DimensionValue, name: str) -> Optional[int]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise InvalidRequest(f"{name} must be an integer")
    try:
        return int(str(value).strip())
    except ValueError:
        raise InvalidRequest(f"{name} must be an integer, got {value!r}")


def _validate_key(key: Optional[str]) -> str:
    key = (key or "").strip().strip("/")
    if not key:
        raise InvalidRequest("object key is required")
    if any(part in ("", ".", "..") for part in key.split("/")):
        raise InvalidRequest("object key must be a relative path without empty or '..' segments")
    return key


def parse_resize_request(
    key: Optional[str],
    width: DimensionValue,
    height: DimensionValue = None,
    allowed_widths: AbstractSet[int] = ALLOWED_WIDTHS,
) -> ResizeRequest:
    """Validate raw request values. Raises InvalidRequest before anything is fetched."""
    clean_key = _validate_key(key)

    parsed_width = _parse_dimension(width, "width")
    if parsed_width is None or parsed_width not in allowed_widths:
        allowed = ",".join(str(w) for w in sorted(allowed_widths))
        raise InvalidRequest(f"width must be one of {allowed}")

    parsed_height = _parse_dimension(height, "height")
    if parsed_height is not None and parsed_height <= 0:
        raise InvalidRequest("height must be a positive integer")

    return ResizeRequest(key=clean_key, width=parsed_width, height=parsed_height)


def split_request_path(
    path: str,
    width: DimensionValue = None,
    height: DimensionValue = None,
) -> Tuple[str, DimensionValue, DimensionValue]:
    """
    Split a request path into (key, width, height).

    When width is supplied separately (query parameter) the whole path is the
    key; otherwise the last path segment is taken as the width. path must
    already be percent-decoded.
    """
    path = (path or "").strip("/")
    if width not in (None, ""):
        return path, width, height

    key, _, trailing = path.rpartition("/")
    return key, trailing or None, height


def split_request_url(url: str) -> Tuple[str, DimensionValue, DimensionValue]:
    """Same as split_request_path for a full URL, reading w/h from its query string."""
    parsed = urlparse(url or "")
    query = parse_qs(parsed.query)
    width = (query.get("w") or query.get("width") or [None])[0]
    height = (query.get("h") or query.get("height") or [None])[0]
    return split_request_path(unquote(parsed.path), width, height)
