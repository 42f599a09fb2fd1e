"""Mapping of application exceptions to HTTP responses.

Every error body has the shape ``{"error": "<message>"}``. Rate-limited
responses add a ``retryAfter`` field and a ``Retry-After`` header in whole
seconds. Enhancement failures add ``enhancedImageData`` holding the
caller's original image so clients can fall back to it.

Example:
    Register the handlers on an application:
        >>> app = fastapi.FastAPI()
        >>> register_exception_handlers(app)
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

from fastapi import exceptions, responses

from globestamp.core import errors

if TYPE_CHECKING:
    import fastapi

_STATUS_CODES: tuple[tuple[type[errors.GlobeStampError], int], ...] = (
    (errors.TooLarge, 413),
    (errors.RequestValidationFailed, 400),
    (errors.InvalidArgument, 400),
    (errors.PermissionDenied, 403),
    (errors.NotFound, 404),
    (errors.Conflict, 409),
    (errors.RateLimited, 429),
    (errors.NoEnhancementResult, 502),
    (errors.UpstreamFailure, 500),
)


def status_code_for(exc: errors.GlobeStampError) -> int:
    """Return the HTTP status code for an application exception."""
    for exc_type, status_code in _STATUS_CODES:
        if isinstance(exc, exc_type):
            return status_code
    return 500


async def _handle_app_error(
    request: fastapi.Request,
    exc: errors.GlobeStampError,
) -> responses.JSONResponse:
    return responses.JSONResponse(
        {"error": exc.message},
        status_code=status_code_for(exc),
    )


async def _handle_rate_limited(
    request: fastapi.Request,
    exc: errors.RateLimited,
) -> responses.JSONResponse:
    retry_after = max(0, math.ceil(exc.retry_after))
    return responses.JSONResponse(
        {"error": exc.message, "retryAfter": retry_after},
        status_code=429,
        headers={"Retry-After": str(retry_after)},
    )


async def _handle_enhancement_failed(
    request: fastapi.Request,
    exc: errors.EnhancementFailed,
) -> responses.JSONResponse:
    return responses.JSONResponse(
        {"error": exc.message, "enhancedImageData": exc.original_image_data},
        status_code=status_code_for(exc),
    )


async def _handle_request_validation(
    request: fastapi.Request,
    exc: exceptions.RequestValidationError,
) -> responses.JSONResponse:
    return responses.JSONResponse(
        {
            "error": "Invalid request body",
            "details": [str(error.get("msg")) for error in exc.errors()],
        },
        status_code=400,
    )


def register_exception_handlers(app: fastapi.FastAPI) -> None:
    """Install the application's exception handlers on ``app``."""
    app.add_exception_handler(errors.GlobeStampError, _handle_app_error)
    app.add_exception_handler(errors.RateLimited, _handle_rate_limited)
    app.add_exception_handler(errors.EnhancementFailed, _handle_enhancement_failed)
    app.add_exception_handler(
        exceptions.RequestValidationError, _handle_request_validation
    )
