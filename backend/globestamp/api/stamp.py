"""Drawing submission and retrieval API endpoints.

This module exposes the stamping entry point, which validates a PNG
drawing, uploads it, and records it as a claim on a region of the globe.
It also lists recent drawings and records an enhanced image for an
existing drawing.

Example:
    Stamp a drawing:
        >>> response = client.post(
        ...     "/api/stamp",
        ...     json={
        ...         "imageData": "data:image/png;base64,iVBORw0KGgo...",
        ...         "bounds": {
        ...             "north": 1.0, "south": -1.0,
        ...             "east": 1.0, "west": -1.0,
        ...             "center": {"lat": 0.0, "long": 0.0},
        ...         },
        ...         "userId": "guest-42",
        ...     },
        ... )
        >>> response.json()["drawing"]["enhanced"]
        False

    A denied stamp answers 429 with a Retry-After header:
        >>> response.status_code, response.headers["Retry-After"]
        (429, '3600')
"""

from typing import Any

import fastapi

from globestamp.api import schemas
from globestamp.core import config
from globestamp.db import database
from globestamp.services import rate_limit, realtime, stamp, storage

router = fastapi.APIRouter(prefix="/api", tags=["drawings"])


def _get_pipeline(
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
    limiter: rate_limit.RateLimiter = fastapi.Depends(rate_limit.get_rate_limiter),  # noqa: B008
    bus: realtime.RealtimeBus = fastapi.Depends(realtime.get_bus),  # noqa: B008
) -> stamp.StampPipeline:
    """Resolve the stamp pipeline dependency.

    Args:
        settings: Application settings (injected via FastAPI Depends).
        limiter: Process-wide rate limiter.
        bus: Process-wide realtime bus notified of inserts.

    Returns:
        StampPipeline wired to local object storage and PostgreSQL.
    """
    return stamp.StampPipeline(
        limiter=limiter,
        storage=storage.get_object_storage(settings),
        drawings=database.get_drawing_repository(settings, bus),
        activity=database.get_activity_repository(settings, bus),
        bucket=settings.storage_bucket,
        max_image_bytes=settings.max_image_bytes,
    )


def _get_drawing_repo(
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
    bus: realtime.RealtimeBus = fastapi.Depends(realtime.get_bus),  # noqa: B008
) -> database.DrawingRepositoryProtocol:
    return database.get_drawing_repository(settings, bus)


def _result_to_dict(result: stamp.StampResult) -> dict[str, Any]:
    return {
        "success": True,
        "drawing": result.drawing.to_dict(),
        "activityRecorded": result.activity_recorded,
    }


@router.post("/stamp")
async def stamp_drawing(
    body: schemas.StampRequest,
    pipeline: stamp.StampPipeline = fastapi.Depends(_get_pipeline),  # noqa: B008
) -> dict[str, Any]:
    """Claim a region with a PNG drawing.

    Args:
        body: Image data URL, claimed bounds and actor key.
        pipeline: Stamp pipeline (injected via FastAPI Depends).

    Returns:
        Dictionary with the persisted drawing and whether its
        ``drawing_created`` activity was recorded.

    Raises:
        MissingField: 400 when a field is absent.
        InvalidFormat: 400 when the image is not a PNG data URL.
        TooLarge: 413 when the image exceeds the size limit.
        RateLimited: 429 when the hourly quota is exhausted.
        UpstreamFailure: 500 when storage or persistence fails.
    """
    bounds = body.bounds.to_model() if body.bounds is not None else None
    result = pipeline.submit(body.image_data, bounds, body.user_id)
    return _result_to_dict(result)


@router.get("/drawings")
async def list_drawings(
    limit: int = fastapi.Query(50, ge=1, le=500),
    repo: database.DrawingRepositoryProtocol = fastapi.Depends(_get_drawing_repo),  # noqa: B008
) -> list[dict[str, Any]]:
    """List the most recent drawings, newest first."""
    return [drawing.to_dict() for drawing in repo.recent(limit)]


@router.post("/drawings/{drawing_id}/enhanced")
async def mark_drawing_enhanced(
    drawing_id: str,
    body: schemas.MarkEnhancedRequest,
    pipeline: stamp.StampPipeline = fastapi.Depends(_get_pipeline),  # noqa: B008
) -> dict[str, Any]:
    """Persist an enhanced image for an existing drawing.

    The drawing's previous image URL is kept as ``original_image_url``
    and a ``drawing_enhanced`` activity is appended.

    Raises:
        NotFound: 404 when the drawing does not exist.
        PermissionDenied: 403 when the drawing belongs to another user.
        Conflict: 409 when the drawing was already enhanced.
    """
    result = pipeline.mark_enhanced(drawing_id, body.image_data, body.user_id)
    return _result_to_dict(result)
