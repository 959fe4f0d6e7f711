"""
Exceptions raised by the image resize pipeline.

User-facing errors derive from ImageServiceError and carry the HTTP status the
pipeline delivers for them. EncodeBudgetExceeded and ResponseWriteFailure are
internal: the first is a signal from the encoder to the downscale loop, the
second is propagated to the invoking runtime and never written back.
"""

from typing import Optional


class ImageServiceError(Exception):
    """Base class for failures that are delivered back to the caller."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRequest(ImageServiceError):
    status_code = 400


class NotFound(ImageServiceError):
    status_code = 404


class UpstreamFailure(ImageServiceError):
    status_code = 502


class UnsupportedFormat(ImageServiceError):
    status_code = 415


class InvalidDimensions(ImageServiceError):
    status_code = 400


class BudgetUnsatisfiable(ImageServiceError):
    status_code = 500


class EncodeBudgetExceeded(Exception):
    """Every step of an encode ladder produced more than max_bytes."""

    def __init__(self, message: str, smallest_size: Optional[int] = None):
        super().__init__(message)
        self.smallest_size = smallest_size


class ResponseWriteFailure(Exception):
    """The delivery collaborator rejected the response write."""
