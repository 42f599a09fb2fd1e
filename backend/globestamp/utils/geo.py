"""Coordinate conversions between texture, sphere and geographic space.

Lat/long conventions:
    - Latitude: -90 (south) to 90 (north).
    - Longitude: -180 (west) to 180 (east), normalized into [-180, 180).

UV conventions:
    - U grows west to east: longitude -180 → 0, 180 → 1.
    - V grows north to south: latitude 90 → 0, -90 → 1.

All functions are pure and raise ``InvalidArgument`` on non-finite input.

Example:
    >>> from globestamp.utils import geo
    >>> geo.lat_long_to_uv(0, 0)
    UV(u=0.5, v=0.5)
    >>> geo.uv_to_lat_long(0.5, 0.5)
    GeoPoint(lat=0.0, long=0.0)
    >>> round(geo.haversine_distance(0, 0, 0, 1), 2)
    111.19
"""

from __future__ import annotations

import math
from typing import NamedTuple

from globestamp.core import errors
from globestamp.db import models

EARTH_RADIUS_KM = 6371.0
MIN_RADIUS_KM = 10.0
MAX_RADIUS_KM = 500.0
MIN_ZOOM = 1
MAX_ZOOM = 20
DEFAULT_SPHERE_RADIUS = 5.0


class UV(NamedTuple):
    u: float
    v: float


def _require_finite(name: str, *values: float) -> None:
    if not all(math.isfinite(v) for v in values):
        raise errors.InvalidArgument(f"{name}: inputs must be finite numbers")


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def lat_long_to_uv(lat: float, long: float) -> UV:
    """Convert geographic coordinates to texture UV coordinates.

    Latitude is clamped to [-90, 90] and longitude wrapped into
    [-180, 180) before mapping.

    Args:
        lat: Latitude in degrees.
        long: Longitude in degrees.

    Returns:
        UV pair with both components in [0, 1].

    Raises:
        InvalidArgument: If either input is non-finite.
    """
    _require_finite("lat_long_to_uv", lat, long)

    clamped_lat = _clamp(lat, -90.0, 90.0)
    wrapped_long = models.wrap_longitude(long)

    u = (wrapped_long + 180) / 360
    v = 1 - (clamped_lat + 90) / 180
    return UV(u, v)


def uv_to_lat_long(u: float, v: float) -> models.GeoPoint:
    """Convert texture UV coordinates to geographic coordinates.

    Out-of-range UV values collapse to the nearest edge instead of
    raising, so the mapping is lossy at the boundary.
    """
    _require_finite("uv_to_lat_long", u, v)

    clamped_u = _clamp(u, 0.0, 1.0)
    clamped_v = _clamp(v, 0.0, 1.0)

    long = clamped_u * 360 - 180
    lat = (1 - clamped_v) * 180 - 90
    return models.GeoPoint(lat=lat, long=long)


def cartesian_to_lat_long(
    x: float,
    y: float,
    z: float,
    radius: float = DEFAULT_SPHERE_RADIUS,
) -> models.GeoPoint:
    """Convert a point on a sphere of the given radius to lat/long.

    Args:
        x: Cartesian X coordinate.
        y: Cartesian Y coordinate (polar axis).
        z: Cartesian Z coordinate.
        radius: Sphere radius; must be positive.

    Returns:
        GeoPoint in degrees.

    Raises:
        InvalidArgument: If any value is non-finite or radius is not positive.
    """
    _require_finite("cartesian_to_lat_long", x, y, z)
    if not math.isfinite(radius) or radius <= 0:
        raise errors.InvalidArgument(
            "cartesian_to_lat_long: radius must be a positive number"
        )

    lat = math.degrees(math.asin(y / radius))
    long = math.degrees(math.atan2(z, x))
    return models.GeoPoint(lat=lat, long=long)


def calculate_region_bounds(
    center_lat: float,
    center_long: float,
    radius_km: float,
) -> models.Bounds:
    """Calculate the bounding box of a square region around a center.

    Uses the small-angle approximation ``Δlat = radius / R`` (in degrees)
    and ``Δlong = Δlat / cos(lat)``. North/south are clamped to ±90 and
    east/west are wrapped, so east may be smaller than west when the box
    crosses the antimeridian.

    Near the poles ``cos(lat)`` approaches zero and ``Δlong`` grows without
    bound; the resulting east/west are still wrapped but no longer
    describe a meaningful square.

    Args:
        center_lat: Center latitude in degrees, within [-90, 90].
        center_long: Center longitude in degrees.
        radius_km: Half-width of the region in kilometers; must be positive.

    Returns:
        Bounds with ``south <= center_lat <= north``.

    Raises:
        InvalidArgument: If an input is non-finite, radius_km is not
            positive, or center_lat is outside [-90, 90].

    Example:
        >>> bounds = calculate_region_bounds(0, 0, 100)
        >>> round(bounds.north, 4)
        0.8993
    """
    _require_finite("calculate_region_bounds", center_lat, center_long, radius_km)
    if radius_km <= 0:
        raise errors.InvalidArgument(
            "calculate_region_bounds: radius_km must be positive"
        )
    if not -90 <= center_lat <= 90:
        raise errors.InvalidArgument(
            "calculate_region_bounds: center_lat must be in [-90, 90]"
        )

    lat_delta = (radius_km / EARTH_RADIUS_KM) * (180 / math.pi)
    long_delta = lat_delta / math.cos(center_lat * math.pi / 180)

    return models.Bounds(
        north=min(90.0, center_lat + lat_delta),
        south=max(-90.0, center_lat - lat_delta),
        east=models.wrap_longitude(center_long + long_delta),
        west=models.wrap_longitude(center_long - long_delta),
        center=models.GeoPoint(
            lat=center_lat,
            long=models.wrap_longitude(center_long),
        ),
    )


def haversine_distance(
    lat1: float,
    long1: float,
    lat2: float,
    long2: float,
) -> float:
    """Great-circle distance between two points in kilometers."""
    _require_finite("haversine_distance", lat1, long1, lat2, long2)

    d_lat = math.radians(lat2 - lat1)
    d_long = math.radians(long2 - long1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(d_long / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def zoom_level_to_radius(zoom_level: float) -> float:
    """Convert a zoom level to a drawing radius in kilometers.

    Zoom is clamped to [1, 20]; each level halves the radius starting at
    500 km, floored at 10 km.
    """
    _require_finite("zoom_level_to_radius", zoom_level)

    clamped = _clamp(zoom_level, MIN_ZOOM, MAX_ZOOM)
    radius = MAX_RADIUS_KM / 2 ** (clamped - 1)
    return max(MIN_RADIUS_KM, radius)
