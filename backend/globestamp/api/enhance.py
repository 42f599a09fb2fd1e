"""Image enhancement API endpoint.

Runs a drawing through the external image-edit provider. Enhancement is
best-effort: every failure response after validation carries the
original image in ``enhancedImageData`` so the client can keep using it.

Example:
    >>> response = client.post(
    ...     "/api/enhance",
    ...     json={"imageData": image_data, "style": "watercolor",
    ...           "userId": "guest-42"},
    ... )
    >>> response.json()["enhancedImageData"][:22]
    'data:image/png;base64,'
"""

from typing import Any

import fastapi

from globestamp.api import schemas
from globestamp.core import config
from globestamp.services import enhance, enhance_provider, rate_limit

router = fastapi.APIRouter(prefix="/api", tags=["enhance"])

ANONYMOUS_ACTOR = "anonymous"


def _get_pipeline(
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
    limiter: rate_limit.RateLimiter = fastapi.Depends(rate_limit.get_rate_limiter),  # noqa: B008
) -> enhance.EnhancementPipeline:
    """Resolve the enhancement pipeline dependency."""
    return enhance.EnhancementPipeline(
        limiter=limiter,
        provider=enhance_provider.get_image_edit_provider(settings),
        max_image_bytes=settings.max_image_bytes,
        timeout=settings.enhance_timeout_seconds,
        size=settings.enhance_size,
    )


def _actor_key(user_id: str | None, request: fastapi.Request) -> str:
    """Pick the key the daily quota is charged to.

    Uses the supplied user id, then the X-Forwarded-For header, then a
    shared anonymous key.
    """
    if user_id:
        return user_id
    return request.headers.get("x-forwarded-for") or ANONYMOUS_ACTOR


@router.post("/enhance")
async def enhance_drawing(
    body: schemas.EnhanceRequest,
    request: fastapi.Request,
    pipeline: enhance.EnhancementPipeline = fastapi.Depends(_get_pipeline),  # noqa: B008
) -> dict[str, Any]:
    """Enhance a drawing with an optional style.

    Args:
        body: Image data URL, optional style and optional user id.
        request: Incoming request, used for the anonymous actor key.
        pipeline: Enhancement pipeline (injected via FastAPI Depends).

    Returns:
        Dictionary with the enhanced image as a PNG data URL.

    Raises:
        RateLimited: 429 when the daily quota is exhausted.
        EnhancementTimeout: 500 when the provider misses its deadline.
        NoEnhancementResult: 502 when the provider returns no image.
    """
    result = await pipeline.enhance(
        body.image_data,
        body.style,
        _actor_key(body.user_id, request),
    )
    return {"success": True, "enhancedImageData": result.image_data}
