"""Exception hierarchy shared by services and the HTTP layer.

Services raise these exceptions; ``globestamp.api.errors`` maps each of
them to an HTTP status code. Validation and rate-limit failures are raised
before any side effect takes place. Upstream failures may be raised after a
partial side effect (for example a stored object whose record insert
failed) and are never rolled back automatically.

Example:
    Handle a denied stamp:
        >>> from globestamp.core import errors
        >>> try:
        ...     pipeline.submit(image_data, bounds, "user-1")
        ... except errors.RateLimited as exc:
        ...     print(f"retry in {exc.retry_after:.0f}s")
"""

from __future__ import annotations


class GlobeStampError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidArgument(GlobeStampError, ValueError):
    """Malformed geometry or numeric input."""


class RequestValidationFailed(GlobeStampError):
    """A submitted payload failed validation and must be fixed by the client."""


class MissingField(RequestValidationFailed):
    """A required request field was absent or empty."""


class InvalidFormat(RequestValidationFailed):
    """The image payload is not a base64 PNG data URL or not a PNG."""


class TooLarge(RequestValidationFailed):
    """The decoded image exceeds the configured size limit."""

    def __init__(self, message: str, size: int, limit: int) -> None:
        super().__init__(message)
        self.size = size
        self.limit = limit


class RateLimited(GlobeStampError):
    """The actor exhausted a quota class.

    Attributes:
        retry_after: Seconds until the quota window resets.
    """

    def __init__(self, message: str, retry_after: float) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class NotFound(GlobeStampError):
    """A referenced record does not exist."""


class Conflict(GlobeStampError):
    """The requested state transition has already happened."""


class PermissionDenied(GlobeStampError):
    """The actor does not own the referenced record."""


class UpstreamFailure(GlobeStampError):
    """Storage, persistence or provider error surfaced as a server error."""


class StorageError(UpstreamFailure):
    """Object storage rejected an upload or lookup."""


class PersistenceError(UpstreamFailure):
    """The relational store rejected an insert, update or select."""


class EnhancementFailed(UpstreamFailure):
    """The image-edit provider call failed.

    Attributes:
        original_image_data: The caller's image, echoed back so clients can
            fall back to the pre-enhancement drawing.
    """

    def __init__(self, message: str, original_image_data: str | None) -> None:
        super().__init__(message)
        self.original_image_data = original_image_data


class EnhancementTimeout(EnhancementFailed):
    """The provider did not answer within the deadline."""


class NoEnhancementResult(EnhancementFailed):
    """The provider answered without an image."""
