"""Validation of submitted PNG drawings.

Drawings arrive as base64 data URLs. Validation happens in a fixed order
so that cheap checks reject a payload before expensive ones run:

1. The payload must start with ``data:image/png;base64,``. Anything else
   is rejected before base64 decoding is attempted.
2. The base64 body must decode.
3. The decoded buffer must not exceed the size limit (5 MiB by default).
4. The buffer must start with the 8-byte PNG signature.

Only the signature is checked; chunk structure after it is not parsed.

Example:
    >>> from globestamp.services import image_validation
    >>> buffer = image_validation.validate_png_payload(
    ...     "data:image/png;base64,iVBORw0KGgo=",
    ... )
    >>> buffer[:4]
    b'\\x89PNG'
"""

from __future__ import annotations

import base64
import binascii

from globestamp.core import errors

DATA_URL_PREFIX = "data:image/png;base64,"
PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
MAX_IMAGE_BYTES = 5 * 1024 * 1024


def decode_data_url(image_data: object) -> bytes:
    """Strip the PNG data-URL prefix and decode the base64 body.

    Args:
        image_data: Caller-supplied payload.

    Returns:
        Decoded bytes.

    Raises:
        InvalidFormat: If the payload is not a string with the PNG data-URL
            prefix, or its body is not valid base64.
    """
    if not isinstance(image_data, str) or not image_data.startswith(
        DATA_URL_PREFIX
    ):
        raise errors.InvalidFormat("Invalid image format (PNG only)")

    try:
        return base64.b64decode(image_data[len(DATA_URL_PREFIX):])
    except (binascii.Error, ValueError) as exc:
        raise errors.InvalidFormat("Invalid base64 image data") from exc


def check_size(buffer: bytes, max_bytes: int = MAX_IMAGE_BYTES) -> None:
    """Raise TooLarge if the decoded image exceeds ``max_bytes``."""
    if len(buffer) > max_bytes:
        limit_mb = max_bytes / (1024 * 1024)
        raise errors.TooLarge(
            f"Image too large (max {limit_mb:g}MB)",
            size=len(buffer),
            limit=max_bytes,
        )


def is_png(buffer: bytes) -> bool:
    return len(buffer) >= len(PNG_SIGNATURE) and buffer.startswith(PNG_SIGNATURE)


def check_png_signature(buffer: bytes) -> None:
    """Raise InvalidFormat unless the buffer starts with the PNG signature."""
    if not is_png(buffer):
        raise errors.InvalidFormat("Invalid PNG data")


def validate_png_payload(
    image_data: object,
    max_bytes: int = MAX_IMAGE_BYTES,
    require_signature: bool = True,
) -> bytes:
    """Run the full validation chain and return the decoded image.

    Args:
        image_data: Base64 PNG data URL.
        max_bytes: Maximum decoded size in bytes.
        require_signature: Whether to verify the PNG signature. The
            enhancement path only checks prefix and size.

    Returns:
        The decoded PNG bytes.

    Raises:
        InvalidFormat: On a bad prefix, undecodable body or bad signature.
        TooLarge: If the decoded image exceeds ``max_bytes``.
    """
    buffer = decode_data_url(image_data)
    check_size(buffer, max_bytes)
    if require_signature:
        check_png_signature(buffer)
    return buffer
