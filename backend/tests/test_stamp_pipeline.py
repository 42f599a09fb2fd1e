"""Tests for the stamp submission pipeline.

Key coverage:
    - End-to-end stamping: upload, drawing row and one creation activity.
    - Validation and rate limiting before any side effect.
    - Upstream failures: storage, persistence, and best-effort activity.
    - Enhancing an existing drawing.

Storage and repositories are the in-memory implementations; failures are
injected with small subclasses.
"""

from __future__ import annotations

import base64

import pytest

from globestamp.core import errors
from globestamp.db import database
from globestamp.db import models as db_models
from globestamp.services import image_validation, rate_limit, stamp, storage


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


class FailingDrawingRepository(database.InMemoryDrawingRepository):
    def add(self, drawing: db_models.Drawing) -> db_models.Drawing:
        raise errors.PersistenceError("insert failed")


class FailingActivityRepository(database.InMemoryActivityRepository):
    def add(self, activity: db_models.Activity) -> db_models.Activity:
        raise errors.PersistenceError("activity insert failed")


def _pipeline(
    objects: storage.InMemoryObjectStorage | None = None,
    drawings: database.DrawingRepositoryProtocol | None = None,
    activity: database.ActivityRepositoryProtocol | None = None,
    limiter: rate_limit.RateLimiter | None = None,
) -> stamp.StampPipeline:
    return stamp.StampPipeline(
        limiter=limiter if limiter is not None else rate_limit.RateLimiter(),
        storage=objects if objects is not None else storage.InMemoryObjectStorage(),
        drawings=(
            drawings if drawings is not None else database.InMemoryDrawingRepository()
        ),
        activity=(
            activity if activity is not None else database.InMemoryActivityRepository()
        ),
    )


def test_submit_creates_drawing_and_activity(
    png_data_url: str, png_bytes: bytes, bounds: db_models.Bounds
) -> None:
    """Test a successful stamp end to end."""
    objects = storage.InMemoryObjectStorage("http://localhost:8000/storage")
    drawings = database.InMemoryDrawingRepository()
    activity = database.InMemoryActivityRepository()
    pipeline = _pipeline(objects, drawings, activity)

    result = pipeline.submit(png_data_url, bounds, "user-1")

    assert result.activity_recorded
    drawing = result.drawing
    assert drawing.enhanced is False
    assert drawing.user_id == "user-1"
    assert drawing.bounds == bounds
    assert drawings.get(drawing.id) == drawing

    [(bucket, path)] = objects.objects.keys()
    assert bucket == "drawings"
    assert path.startswith("user-1/") and path.endswith(".png")
    assert objects.objects[(bucket, path)].data == png_bytes
    assert objects.objects[(bucket, path)].content_type == "image/png"
    assert drawing.image_url == f"http://localhost:8000/storage/drawings/{path}"

    [record] = activity.recent(50)
    assert record is result.activity
    assert record.action is db_models.ActivityAction.DRAWING_CREATED
    assert record.drawing_id == drawing.id
    assert record.user_id == "user-1"
    assert record.metadata["location"] == bounds


@pytest.mark.parametrize(
    ("image_data", "use_bounds", "actor_key"),
    [
        (None, True, "user-1"),
        ("", True, "user-1"),
        ("x", False, "user-1"),
        ("x", True, ""),
    ],
)
def test_submit_requires_fields(
    bounds: db_models.Bounds,
    image_data: str | None,
    use_bounds: bool,
    actor_key: str,
) -> None:
    """Test that absent fields are rejected without charging the quota."""
    limiter = rate_limit.RateLimiter()
    pipeline = _pipeline(limiter=limiter)
    with pytest.raises(errors.MissingField, match="Missing required fields"):
        pipeline.submit(image_data, bounds if use_bounds else None, actor_key)
    assert len(limiter) == 0


def test_submit_rejects_oversized_without_upload(
    png_bytes: bytes, bounds: db_models.Bounds
) -> None:
    """Test that an image over 5 MiB is rejected before storage is touched."""
    objects = storage.InMemoryObjectStorage()
    drawings = database.InMemoryDrawingRepository()
    pipeline = _pipeline(objects, drawings)
    oversized = png_bytes + b"\x00" * (5 * 1024 * 1024)
    payload = image_validation.DATA_URL_PREFIX + base64.b64encode(oversized).decode()

    with pytest.raises(errors.TooLarge):
        pipeline.submit(payload, bounds, "user-1")
    assert objects.objects == {}
    assert drawings.recent(10) == []


def test_submit_rejects_non_png(bounds: db_models.Bounds) -> None:
    """Test that a JPEG payload is rejected as InvalidFormat."""
    objects = storage.InMemoryObjectStorage()
    pipeline = _pipeline(objects)
    with pytest.raises(errors.InvalidFormat):
        pipeline.submit("data:image/jpeg;base64,/9j/4AAQ", bounds, "user-1")
    assert objects.objects == {}


def test_submit_rate_limited_after_ten(
    png_data_url: str, bounds: db_models.Bounds
) -> None:
    """Test that the eleventh stamp in an hour is denied with a retry delay."""
    objects = storage.InMemoryObjectStorage()
    pipeline = _pipeline(objects)
    for _ in range(10):
        pipeline.submit(png_data_url, bounds, "user-1")

    with pytest.raises(errors.RateLimited) as exc_info:
        pipeline.submit(png_data_url, bounds, "user-1")
    assert 0 < exc_info.value.retry_after <= 3600
    assert len(objects.objects) == 10

    pipeline.submit(png_data_url, bounds, "user-2")
    assert len(objects.objects) == 11


def test_rejected_payload_still_charges_quota(
    png_data_url: str, bounds: db_models.Bounds
) -> None:
    """Test that the quota is charged before the payload is validated."""
    pipeline = _pipeline(
        limiter=rate_limit.RateLimiter(
            rate_limit.default_policies(stamp_hourly_limit=1)
        )
    )
    with pytest.raises(errors.InvalidFormat):
        pipeline.submit("not-a-data-url", bounds, "user-1")
    with pytest.raises(errors.RateLimited):
        pipeline.submit(png_data_url, bounds, "user-1")


def test_submit_storage_failure(png_data_url: str, bounds: db_models.Bounds) -> None:
    """Test that an upload failure aborts before any row is written."""
    drawings = database.InMemoryDrawingRepository()
    activity = database.InMemoryActivityRepository()
    pipeline = _pipeline(FailingStorage(), drawings, activity)
    with pytest.raises(errors.StorageError):
        pipeline.submit(png_data_url, bounds, "user-1")
    assert drawings.recent(10) == []
    assert activity.recent(10) == []


def test_submit_insert_failure_leaves_orphan(
    png_data_url: str,
    bounds: db_models.Bounds,
    caplog: pytest.LogCaptureFixture,
) -> None:
    """Test that a failed insert is raised and the stored image is kept."""
    objects = storage.InMemoryObjectStorage()
    activity = database.InMemoryActivityRepository()
    pipeline = _pipeline(objects, FailingDrawingRepository(), activity)

    with pytest.raises(errors.PersistenceError):
        pipeline.submit(png_data_url, bounds, "user-1")
    assert len(objects.objects) == 1
    assert activity.recent(10) == []
    assert "orphaned" in caplog.text


def test_submit_activity_failure_is_best_effort(
    png_data_url: str, bounds: db_models.Bounds
) -> None:
    """Test that the drawing is returned when the activity append fails."""
    drawings = database.InMemoryDrawingRepository()
    pipeline = _pipeline(drawings=drawings, activity=FailingActivityRepository())

    result = pipeline.submit(png_data_url, bounds, "user-1")

    assert not result.activity_recorded
    assert result.activity_error == "activity insert failed"
    assert drawings.get(result.drawing.id) == result.drawing


def test_mark_enhanced(png_data_url: str, bounds: db_models.Bounds) -> None:
    """Test that enhancing stores a new image and appends an activity."""
    objects = storage.InMemoryObjectStorage()
    activity = database.InMemoryActivityRepository()
    pipeline = _pipeline(objects, activity=activity)
    original = pipeline.submit(png_data_url, bounds, "user-1").drawing

    result = pipeline.mark_enhanced(original.id, png_data_url, "user-1")

    assert result.drawing.enhanced is True
    assert result.drawing.original_image_url == original.image_url
    assert result.drawing.image_url != original.image_url
    assert len(objects.objects) == 2
    actions = [record.action for record in activity.recent(10)]
    assert sorted(a.value for a in actions) == ["drawing_created", "drawing_enhanced"]


def test_mark_enhanced_errors(png_data_url: str, bounds: db_models.Bounds) -> None:
    """Test unknown drawings, foreign owners and repeated enhancement."""
    pipeline = _pipeline()
    drawing = pipeline.submit(png_data_url, bounds, "user-1").drawing

    with pytest.raises(errors.NotFound):
        pipeline.mark_enhanced("missing", png_data_url, "user-1")
    with pytest.raises(errors.PermissionDenied):
        pipeline.mark_enhanced(drawing.id, png_data_url, "user-2")
    with pytest.raises(errors.MissingField):
        pipeline.mark_enhanced(drawing.id, None, "user-1")

    pipeline.mark_enhanced(drawing.id, png_data_url, "user-1")
    with pytest.raises(errors.Conflict):
        pipeline.mark_enhanced(drawing.id, png_data_url, "user-1")
