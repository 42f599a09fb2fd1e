"""Submission pipeline turning a drawing payload into a claimed region.

``StampPipeline.submit`` runs these steps in order and stops at the first
failure:

1. Require image data, bounds and an actor key.
2. Charge one unit of the actor's hourly stamp quota.
3. Validate the PNG data URL: prefix, decoded size, PNG signature.
4. Upload the image to ``{actor_key}/{uuid}.png`` without overwriting.
5. Persist the Drawing with ``enhanced=False``.
6. Append a ``drawing_created`` Activity.

Nothing is stored before step 4. A failed upload or insert is raised as
``UpstreamFailure`` and not retried; an upload whose insert then fails is
left in storage and logged. Step 6 is best-effort: its outcome is reported
in ``StampResult`` separately from the drawing.

Example:
    >>> pipeline = StampPipeline(limiter, storage, drawings, activity)
    >>> result = pipeline.submit(image_data, bounds, "user-1")
    >>> result.drawing.enhanced
    False
    >>> result.activity.action
    <ActivityAction.DRAWING_CREATED: 'drawing_created'>
"""

from __future__ import annotations

import dataclasses
import logging
import uuid
from typing import TYPE_CHECKING

from globestamp.core import errors
from globestamp.db import models as db_models
from globestamp.services import image_validation, rate_limit

if TYPE_CHECKING:
    from globestamp.db import database
    from globestamp.services import storage

logger = logging.getLogger(__name__)

PNG_CONTENT_TYPE = "image/png"


@dataclasses.dataclass(frozen=True)
class StampResult:
    """Outcome of a submission.

    Attributes:
        drawing: The persisted drawing.
        activity: The appended activity record, or None if appending failed.
        activity_error: Error message when the activity append failed.
    """

    drawing: db_models.Drawing
    activity: db_models.Activity | None
    activity_error: str | None = None

    @property
    def activity_recorded(self) -> bool:
        return self.activity is not None


class StampPipeline:
    """Validated, rate-limited ingestion of drawings."""

    def __init__(
        self,
        limiter: rate_limit.RateLimiter,
        storage: storage.ObjectStorageProtocol,
        drawings: database.DrawingRepositoryProtocol,
        activity: database.ActivityRepositoryProtocol,
        bucket: str = "drawings",
        max_image_bytes: int = image_validation.MAX_IMAGE_BYTES,
    ) -> None:
        self.limiter = limiter
        self.storage = storage
        self.drawings = drawings
        self.activity = activity
        self.bucket = bucket
        self.max_image_bytes = max_image_bytes

    def submit(
        self,
        image_data: object,
        bounds: db_models.Bounds | None,
        actor_key: str | None,
    ) -> StampResult:
        """Stamp a drawing onto a region.

        Args:
            image_data: Base64 PNG data URL.
            bounds: Region claimed by the drawing.
            actor_key: Opaque identifier of the submitter.

        Returns:
            StampResult with the persisted drawing and the activity outcome.

        Raises:
            MissingField: If any input is absent or empty.
            RateLimited: If the hourly stamp quota is exhausted.
            InvalidFormat: If the payload is not a PNG data URL.
            TooLarge: If the decoded image exceeds the size limit.
            StorageError: If the upload fails.
            PersistenceError: If the drawing insert fails.
        """
        if not image_data or bounds is None or not actor_key:
            raise errors.MissingField("Missing required fields")

        decision = self.limiter.check(actor_key, rate_limit.QuotaClass.HOURLY_STAMP)
        if not decision.allowed:
            raise errors.RateLimited(
                "Rate limit exceeded", retry_after=decision.retry_after
            )

        try:
            buffer = image_validation.validate_png_payload(
                image_data, self.max_image_bytes
            )
        except errors.RequestValidationFailed as exc:
            logger.info("Rejected stamp from %s: %s", actor_key, exc)
            raise

        image_url = self._store(actor_key, buffer)

        drawing = db_models.Drawing(
            id=str(uuid.uuid4()),
            user_id=actor_key,
            image_url=image_url,
            bounds=bounds,
            enhanced=False,
        )
        try:
            drawing = self.drawings.add(drawing)
        except errors.UpstreamFailure:
            logger.warning(
                "Drawing insert failed; stored image left orphaned at %s",
                image_url,
            )
            raise

        logger.info(
            "Stamped drawing %s for %s at (%.4f, %.4f)",
            drawing.id,
            actor_key,
            drawing.latitude,
            drawing.longitude,
        )
        return self._record_activity(
            drawing, actor_key, db_models.ActivityAction.DRAWING_CREATED
        )

    def mark_enhanced(
        self,
        drawing_id: str,
        image_data: object,
        actor_key: str | None,
    ) -> StampResult:
        """Replace a drawing's image with its enhanced version.

        The previous image URL is kept in ``original_image_url``. A drawing
        can be enhanced only once.

        Raises:
            MissingField: If image data or actor key is absent.
            InvalidFormat: If the payload is not a PNG data URL.
            TooLarge: If the decoded image exceeds the size limit.
            NotFound: If the drawing does not exist.
            PermissionDenied: If the drawing belongs to another actor.
            Conflict: If the drawing was already enhanced.
            StorageError: If the upload fails.
            PersistenceError: If the update fails.
        """
        if not image_data or not actor_key:
            raise errors.MissingField("Missing required fields")

        buffer = image_validation.validate_png_payload(
            image_data, self.max_image_bytes
        )

        drawing = self.drawings.get(drawing_id)
        if drawing is None:
            raise errors.NotFound(f"Drawing {drawing_id} not found")
        if drawing.user_id != actor_key:
            raise errors.PermissionDenied("Drawing belongs to another user")
        if drawing.enhanced:
            raise errors.Conflict(f"Drawing {drawing_id} already enhanced")

        image_url = self._store(actor_key, buffer)
        drawing = self.drawings.mark_enhanced(drawing_id, image_url)
        logger.info("Drawing %s enhanced by %s", drawing_id, actor_key)
        return self._record_activity(
            drawing, actor_key, db_models.ActivityAction.DRAWING_ENHANCED
        )

    def _store(self, actor_key: str, buffer: bytes) -> str:
        path = f"{actor_key}/{uuid.uuid4()}.png"
        try:
            self.storage.upload(
                self.bucket, path, buffer, PNG_CONTENT_TYPE, overwrite=False
            )
        except errors.StorageError:
            logger.warning("Upload of %s/%s failed", self.bucket, path)
            raise
        return self.storage.get_public_url(self.bucket, path)

    def _record_activity(
        self,
        drawing: db_models.Drawing,
        actor_key: str,
        action: db_models.ActivityAction,
    ) -> StampResult:
        activity = db_models.Activity(
            id=str(uuid.uuid4()),
            drawing_id=drawing.id,
            user_id=actor_key,
            action=action,
            metadata={"location": drawing.bounds},
        )
        try:
            activity = self.activity.add(activity)
        except errors.UpstreamFailure as exc:
            logger.warning(
                "Activity %s for drawing %s not recorded: %s",
                action.value,
                drawing.id,
                exc,
            )
            return StampResult(drawing, None, str(exc))
        return StampResult(drawing, activity)
