"""Request bodies accepted by the HTTP API.

Field names follow the camelCase JSON used by browser clients
(``imageData``, ``userId``). Presence of required fields is checked by
the pipelines rather than by Pydantic so that a missing field is reported
as a 400 ``Missing required fields`` like any other rejected submission.
"""

from __future__ import annotations

import pydantic

from globestamp.db import models as db_models


class GeoPointPayload(pydantic.BaseModel):
    lat: float = pydantic.Field(ge=-90, le=90)
    long: float = pydantic.Field(ge=-180, le=180)


class BoundsPayload(pydantic.BaseModel):
    """Region rectangle plus center as sent by clients."""

    north: float = pydantic.Field(ge=-90, le=90)
    south: float = pydantic.Field(ge=-90, le=90)
    east: float = pydantic.Field(ge=-180, le=180)
    west: float = pydantic.Field(ge=-180, le=180)
    center: GeoPointPayload

    def to_model(self) -> db_models.Bounds:
        """Convert to the domain Bounds, normalizing longitudes.

        Raises:
            InvalidArgument: If the center latitude is outside [south, north].
        """
        return db_models.Bounds(
            north=self.north,
            south=self.south,
            east=db_models.wrap_longitude(self.east),
            west=db_models.wrap_longitude(self.west),
            center=db_models.GeoPoint(
                lat=self.center.lat,
                long=db_models.wrap_longitude(self.center.long),
            ),
        )


class _CamelCaseRequest(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(populate_by_name=True)


class StampRequest(_CamelCaseRequest):
    image_data: str | None = pydantic.Field(default=None, alias="imageData")
    bounds: BoundsPayload | None = None
    user_id: str | None = pydantic.Field(default=None, alias="userId")


class EnhanceRequest(_CamelCaseRequest):
    image_data: str | None = pydantic.Field(default=None, alias="imageData")
    style: str | None = None
    user_id: str | None = pydantic.Field(default=None, alias="userId")


class MarkEnhancedRequest(_CamelCaseRequest):
    image_data: str | None = pydantic.Field(default=None, alias="imageData")
    user_id: str | None = pydantic.Field(default=None, alias="userId")
