"""Data models for drawings, activity and region bounds.

This module defines the core data structures shared by the coordinate
math, the submission pipeline, the repositories and the realtime feeds.
GeoPoint and Bounds are value types embedded in both Drawing and
Activity.metadata. A Drawing is immutable after creation except for its
``enhanced`` flag. Activity records are append-only.

Example:
    Creating a Drawing for a claimed region:
        >>> from globestamp.db.models import Bounds, Drawing, GeoPoint
        >>> bounds = Bounds(
        ...     north=10.0,
        ...     south=-10.0,
        ...     east=15.0,
        ...     west=-5.0,
        ...     center=GeoPoint(lat=0.0, long=5.0),
        ... )
        >>> drawing = Drawing(
        ...     id="d-1",
        ...     user_id="guest-42",
        ...     image_url="http://localhost:8000/storage/drawings/guest-42/x.png",
        ...     bounds=bounds,
        ... )
        >>> drawing.latitude, drawing.longitude
        (0.0, 5.0)
"""

from __future__ import annotations

import dataclasses
import datetime
import enum
import math
from typing import Any

from globestamp.core import errors


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(tz=datetime.UTC)


def wrap_longitude(long: float) -> float:
    """Normalize a longitude into [-180, 180) by wrapping modulo 360."""
    return ((long + 180) % 360 + 360) % 360 - 180


class ActivityAction(str, enum.Enum):
    """Kinds of activity appended to the activity stream."""

    DRAWING_CREATED = "drawing_created"
    DRAWING_ENHANCED = "drawing_enhanced"


@dataclasses.dataclass(frozen=True)
class GeoPoint:
    """A latitude/longitude pair in degrees."""

    lat: float
    long: float

    def to_dict(self) -> dict[str, float]:
        return {"lat": self.lat, "long": self.long}


@dataclasses.dataclass(frozen=True)
class Bounds:
    """Axis-aligned lat/long rectangle plus its center point.

    ``east < west`` is valid and means the box crosses the ±180° seam.

    Raises:
        InvalidArgument: If a value is non-finite, north/south fall outside
            [-90, 90], or the center latitude is not within [south, north].
    """

    north: float
    south: float
    east: float
    west: float
    center: GeoPoint

    def __post_init__(self) -> None:
        values = (
            self.north,
            self.south,
            self.east,
            self.west,
            self.center.lat,
            self.center.long,
        )
        if not all(math.isfinite(v) for v in values):
            raise errors.InvalidArgument("Bounds values must be finite numbers")
        if not (-90 <= self.south <= 90 and -90 <= self.north <= 90):
            raise errors.InvalidArgument("Bounds north/south must be in [-90, 90]")
        if not self.south <= self.center.lat <= self.north:
            raise errors.InvalidArgument(
                "Bounds center latitude must lie between south and north"
            )

    @property
    def crosses_antimeridian(self) -> bool:
        return self.west > self.east

    def to_dict(self) -> dict[str, Any]:
        return {
            "north": self.north,
            "south": self.south,
            "east": self.east,
            "west": self.west,
            "center": self.center.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Bounds:
        """Build Bounds from its JSON form (as stored in JSONB columns)."""
        center = data["center"]
        return cls(
            north=float(data["north"]),
            south=float(data["south"]),
            east=float(data["east"]),
            west=float(data["west"]),
            center=GeoPoint(lat=float(center["lat"]), long=float(center["long"])),
        )


@dataclasses.dataclass
class Drawing:
    """A stamped drawing claiming a region of the globe.

    Attributes:
        id: Unique identifier (UUID string).
        user_id: Actor key of the submitter.
        image_url: Public URL of the stored PNG.
        bounds: Claimed region.
        enhanced: Whether the image was replaced by an enhanced version.
            Transitions false→true at most once.
        original_image_url: URL of the pre-enhancement image, set when
            ``enhanced`` flips.
        created_at: Insertion timestamp (UTC).
    """

    id: str
    user_id: str
    image_url: str
    bounds: Bounds
    enhanced: bool = False
    original_image_url: str | None = None
    created_at: datetime.datetime = dataclasses.field(default_factory=_utcnow)

    @property
    def latitude(self) -> float:
        return self.bounds.center.lat

    @property
    def longitude(self) -> float:
        return self.bounds.center.long

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "image_url": self.image_url,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "bounds": self.bounds.to_dict(),
            "enhanced": self.enhanced,
            "original_image_url": self.original_image_url,
            "created_at": self.created_at.isoformat(),
        }


@dataclasses.dataclass(frozen=True)
class Activity:
    """An append-only entry in the activity stream."""

    id: str
    drawing_id: str
    user_id: str
    action: ActivityAction
    metadata: dict[str, Any] = dataclasses.field(default_factory=dict)
    created_at: datetime.datetime = dataclasses.field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        metadata = dict(self.metadata)
        location = metadata.get("location")
        if isinstance(location, Bounds):
            metadata["location"] = location.to_dict()
        return {
            "id": self.id,
            "drawing_id": self.drawing_id,
            "user_id": self.user_id,
            "action": self.action.value,
            "metadata": metadata,
            "created_at": self.created_at.isoformat(),
        }
