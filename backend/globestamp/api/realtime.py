"""Live activity and drawing feeds.

Clients bootstrap the activity feed with ``GET /api/activity`` or by
connecting to ``/ws/activity``, which first sends the newest records and
then every new insert. ``/ws/drawings`` streams new drawings, optionally
restricted to a lat/long rectangle given as ``north``, ``south``,
``east`` and ``west`` query parameters.

Messages are JSON objects:
    {"type": "bootstrap", "records": [...]}
    {"type": "insert", "record": {...}}

Records may be delivered more than once; clients deduplicate on ``id``.
"""

import asyncio
import contextlib
from collections.abc import Callable
from typing import Any

import fastapi

from globestamp.core import config, errors
from globestamp.db import database
from globestamp.db import models as db_models
from globestamp.services import realtime

router = fastapi.APIRouter(tags=["realtime"])

POLICY_VIOLATION = 1008


def _get_activity_repo(
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
    bus: realtime.RealtimeBus = fastapi.Depends(realtime.get_bus),  # noqa: B008
) -> database.ActivityRepositoryProtocol:
    """Resolve the activity repository dependency."""
    return database.get_activity_repository(settings, bus)


@router.get("/api/activity")
async def list_activity(
    limit: int = fastapi.Query(50, ge=1, le=500),
    repo: database.ActivityRepositoryProtocol = fastapi.Depends(_get_activity_repo),  # noqa: B008
) -> list[dict[str, Any]]:
    """Return the newest activity records, newest first."""
    return [activity.to_dict() for activity in repo.recent(limit)]


async def _pump(
    websocket: fastapi.WebSocket,
    subscription: realtime.Subscription,
    handle: Callable[[Any], dict[str, Any] | None],
) -> None:
    """Forward subscription records until the client disconnects."""

    async def forward() -> None:
        with contextlib.suppress(fastapi.WebSocketDisconnect):
            while True:
                message = handle(await subscription.get())
                if message is not None:
                    await websocket.send_json(message)

    async def watch() -> None:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                return

    tasks = [asyncio.create_task(forward()), asyncio.create_task(watch())]
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
    for task in done:
        task.result()


@router.websocket("/ws/activity")
async def activity_stream(
    websocket: fastapi.WebSocket,
    limit: int | None = None,
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
    repo: database.ActivityRepositoryProtocol = fastapi.Depends(_get_activity_repo),  # noqa: B008
    bus: realtime.RealtimeBus = fastapi.Depends(realtime.get_bus),  # noqa: B008
) -> None:
    """Stream the bounded activity view: bootstrap, then live inserts.

    ``limit`` defaults to ``settings.activity_feed_limit`` and is clamped
    to [1, 500].
    """
    await websocket.accept()
    size = limit if limit is not None else settings.activity_feed_limit
    feed = realtime.ActivityFeed(max(1, min(size, 500)))

    def handle(record: db_models.Activity) -> dict[str, Any]:
        feed.apply(record)
        return {"type": "insert", "record": record.to_dict()}

    with bus.subscribe(realtime.ACTIVITY_TABLE) as subscription:
        feed.bootstrap(repo.recent(feed.limit))
        await websocket.send_json(
            {
                "type": "bootstrap",
                "records": [activity.to_dict() for activity in feed.items],
            }
        )
        await _pump(websocket, subscription, handle)


def _region(
    north: float | None,
    south: float | None,
    east: float | None,
    west: float | None,
) -> db_models.Bounds | None:
    """Build the regional filter from query parameters.

    Raises:
        InvalidArgument: If only some edges are given or they are invalid.
    """
    edges = (north, south, east, west)
    if all(edge is None for edge in edges):
        return None
    if north is None or south is None or east is None or west is None:
        raise errors.InvalidArgument("north, south, east and west are required")
    return db_models.Bounds(
        north=north,
        south=south,
        east=east,
        west=west,
        center=db_models.GeoPoint(
            lat=(north + south) / 2,
            long=db_models.wrap_longitude((east + west) / 2),
        ),
    )


@router.websocket("/ws/drawings")
async def drawing_stream(
    websocket: fastapi.WebSocket,
    north: float | None = None,
    south: float | None = None,
    east: float | None = None,
    west: float | None = None,
    bus: realtime.RealtimeBus = fastapi.Depends(realtime.get_bus),  # noqa: B008
) -> None:
    """Stream new drawings, filtered to a region when one is given."""
    try:
        bounds = _region(north, south, east, west)
    except errors.InvalidArgument as exc:
        await websocket.close(code=POLICY_VIOLATION, reason=exc.message)
        return

    regional = realtime.RegionalDrawingFeed(bounds) if bounds else None

    def handle(drawing: db_models.Drawing) -> dict[str, Any] | None:
        if regional is not None and not regional.matches(drawing):
            return None
        return {"type": "insert", "record": drawing.to_dict()}

    with bus.subscribe(realtime.DRAWINGS_TABLE) as subscription:
        await websocket.accept()
        await _pump(websocket, subscription, handle)
