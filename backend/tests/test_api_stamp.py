"""API endpoint tests for stamping and listing drawings.

This module exercises /api/stamp, /api/drawings and
/api/drawings/{drawing_id}/enhanced through the FastAPI test client,
covering the success contract and the mapping of each failure to its
HTTP status and error body.

The pipeline and repositories are in-memory implementations injected
using dependency overrides.

See Also:
    - backend/globestamp/api/stamp.py for the endpoints,
    - backend/globestamp/api/errors.py for the status mapping.
"""

from __future__ import annotations

import base64
from typing import TYPE_CHECKING, Any

import pytest
from fastapi import testclient

from globestamp import main
from globestamp.api import stamp as api_stamp
from globestamp.core import errors
from globestamp.db import database
from globestamp.services import image_validation, rate_limit, stamp, storage

if TYPE_CHECKING:
    from collections.abc import Iterator


class FailingStorage(storage.InMemoryObjectStorage):
    def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: str,
        overwrite: bool = False,
    ) -> str:
        raise errors.StorageError("bucket unavailable")


BOUNDS: dict[str, Any] = {
    "north": 10.0,
    "south": -10.0,
    "east": 15.0,
    "west": -5.0,
    "center": {"lat": 0.0, "long": 5.0},
}


@pytest.fixture
def objects() -> storage.InMemoryObjectStorage:
    return storage.InMemoryObjectStorage("http://localhost:8000/storage")


@pytest.fixture
def drawings() -> database.InMemoryDrawingRepository:
    return database.InMemoryDrawingRepository()


@pytest.fixture
def activity() -> database.InMemoryActivityRepository:
    return database.InMemoryActivityRepository()


@pytest.fixture
def pipeline(
    objects: storage.InMemoryObjectStorage,
    drawings: database.InMemoryDrawingRepository,
    activity: database.InMemoryActivityRepository,
) -> stamp.StampPipeline:
    return stamp.StampPipeline(
        limiter=rate_limit.RateLimiter(),
        storage=objects,
        drawings=drawings,
        activity=activity,
    )


@pytest.fixture
def client(
    pipeline: stamp.StampPipeline,
    drawings: database.InMemoryDrawingRepository,
) -> Iterator[testclient.TestClient]:
    app = main.create_app()
    app.dependency_overrides[api_stamp._get_pipeline] = lambda: pipeline
    app.dependency_overrides[api_stamp._get_drawing_repo] = lambda: drawings
    try:
        yield testclient.TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _stamp(
    client: testclient.TestClient,
    image_data: str | None,
    user_id: str | None = "guest-42",
    bounds: dict[str, Any] | None = BOUNDS,
) -> Any:
    body: dict[str, Any] = {"imageData": image_data, "bounds": bounds}
    if user_id is not None:
        body["userId"] = user_id
    return client.post("/api/stamp", json=body)


def test_stamp_success(
    client: testclient.TestClient,
    png_data_url: str,
    activity: database.InMemoryActivityRepository,
) -> None:
    """Test that a valid stamp returns the drawing."""
    response = _stamp(client, png_data_url)
    assert response.status_code == 200
    payload = response.json()
    assert payload["success"] is True
    assert payload["activityRecorded"] is True
    drawing = payload["drawing"]
    assert drawing["user_id"] == "guest-42"
    assert drawing["enhanced"] is False
    assert drawing["latitude"] == 0.0
    assert drawing["longitude"] == 5.0
    assert drawing["bounds"] == BOUNDS
    assert drawing["image_url"].startswith(
        "http://localhost:8000/storage/drawings/guest-42/"
    )
    [record] = activity.recent(10)
    assert record.drawing_id == drawing["id"]


@pytest.mark.parametrize(
    "body",
    [
        {},
        {"bounds": BOUNDS, "userId": "guest-42"},
        {"imageData": "data:image/png;base64,AA==", "userId": "guest-42"},
        {"imageData": "data:image/png;base64,AA==", "bounds": BOUNDS},
    ],
)
def test_stamp_missing_fields(
    client: testclient.TestClient, body: dict[str, Any]
) -> None:
    """Test that absent fields answer 400."""
    response = client.post("/api/stamp", json=body)
    assert response.status_code == 400
    assert response.json() == {"error": "Missing required fields"}


def test_stamp_invalid_format(
    client: testclient.TestClient, objects: storage.InMemoryObjectStorage
) -> None:
    """Test that a non-PNG data URL answers 400."""
    response = _stamp(client, "data:image/jpeg;base64,/9j/4AAQ")
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid image format (PNG only)"}
    assert objects.objects == {}


def test_stamp_too_large(
    client: testclient.TestClient,
    objects: storage.InMemoryObjectStorage,
    png_bytes: bytes,
) -> None:
    """Test that an image over 5 MiB answers 413 without an upload."""
    oversized = png_bytes + b"\x00" * (5 * 1024 * 1024)
    payload = image_validation.DATA_URL_PREFIX + base64.b64encode(oversized).decode()
    response = _stamp(client, payload)
    assert response.status_code == 413
    assert response.json() == {"error": "Image too large (max 5MB)"}
    assert objects.objects == {}


def test_stamp_rate_limited(client: testclient.TestClient, png_data_url: str) -> None:
    """Test that the eleventh stamp in an hour answers 429 with Retry-After."""
    for _ in range(10):
        assert _stamp(client, png_data_url).status_code == 200

    response = _stamp(client, png_data_url)
    assert response.status_code == 429
    payload = response.json()
    assert payload["error"] == "Rate limit exceeded"
    assert 0 < payload["retryAfter"] <= 3600
    assert response.headers["Retry-After"] == str(payload["retryAfter"])


def test_stamp_invalid_bounds(client: testclient.TestClient, png_data_url: str) -> None:
    """Test that out-of-range coordinates answer 400."""
    bounds = dict(BOUNDS, north=120.0)
    response = _stamp(client, png_data_url, bounds=bounds)
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid request body"


def test_stamp_center_outside_bounds(
    client: testclient.TestClient, png_data_url: str
) -> None:
    """Test that a center latitude outside [south, north] answers 400."""
    bounds = dict(BOUNDS, center={"lat": 20.0, "long": 5.0})
    response = _stamp(client, png_data_url, bounds=bounds)
    assert response.status_code == 400
    assert "center latitude" in response.json()["error"]


def test_stamp_storage_failure(
    png_data_url: str,
    drawings: database.InMemoryDrawingRepository,
    activity: database.InMemoryActivityRepository,
) -> None:
    """Test that an upload failure answers 500 and writes nothing."""
    app = main.create_app()
    failing = stamp.StampPipeline(
        limiter=rate_limit.RateLimiter(),
        storage=FailingStorage(),
        drawings=drawings,
        activity=activity,
    )
    app.dependency_overrides[api_stamp._get_pipeline] = lambda: failing
    response = _stamp(testclient.TestClient(app), png_data_url)
    assert response.status_code == 500
    assert response.json() == {"error": "bucket unavailable"}
    assert drawings.recent(10) == []


def test_list_drawings(client: testclient.TestClient, png_data_url: str) -> None:
    """Test listing recent drawings."""
    assert client.get("/api/drawings").json() == []
    first = _stamp(client, png_data_url).json()["drawing"]
    second = _stamp(client, png_data_url).json()["drawing"]

    response = client.get("/api/drawings", params={"limit": 10})
    assert response.status_code == 200
    ids = [drawing["id"] for drawing in response.json()]
    assert sorted(ids) == sorted([first["id"], second["id"]])

    assert client.get("/api/drawings", params={"limit": 0}).status_code == 400


def test_mark_enhanced(client: testclient.TestClient, png_data_url: str) -> None:
    """Test enhancing an owned drawing once."""
    drawing = _stamp(client, png_data_url).json()["drawing"]
    url = f"/api/drawings/{drawing['id']}/enhanced"

    response = client.post(url, json={"imageData": png_data_url, "userId": "guest-42"})
    assert response.status_code == 200
    enhanced = response.json()["drawing"]
    assert enhanced["enhanced"] is True
    assert enhanced["original_image_url"] == drawing["image_url"]

    again = client.post(url, json={"imageData": png_data_url, "userId": "guest-42"})
    assert again.status_code == 409


def test_mark_enhanced_errors(client: testclient.TestClient, png_data_url: str) -> None:
    """Test unknown drawings and foreign owners."""
    drawing = _stamp(client, png_data_url).json()["drawing"]

    missing = client.post(
        "/api/drawings/missing/enhanced",
        json={"imageData": png_data_url, "userId": "guest-42"},
    )
    assert missing.status_code == 404

    foreign = client.post(
        f"/api/drawings/{drawing['id']}/enhanced",
        json={"imageData": png_data_url, "userId": "someone-else"},
    )
    assert foreign.status_code == 403
    assert foreign.json() == {"error": "Drawing belongs to another user"}
