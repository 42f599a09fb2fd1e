"""Location label endpoint for activity entries.

Example:
    >>> client.get("/api/location-name", params={"lat": 48.86, "long": 2.35}).json()
    {'lat': 48.86, 'long': 2.35, 'name': 'Paris, France'}
"""

from typing import Any

import fastapi

from globestamp.services import geocoding

router = fastapi.APIRouter(prefix="/api", tags=["location"])


@router.get("/location-name")
async def location_name(
    lat: float = fastapi.Query(..., ge=-90, le=90),
    long: float = fastapi.Query(..., ge=-180, le=180),
    resolver: geocoding.LocationNameResolver = fastapi.Depends(  # noqa: B008
        geocoding.get_location_resolver
    ),
) -> dict[str, Any]:
    """Resolve a coordinate to a "city, country" label.

    Raises:
        UpstreamFailure: 500 when the geocoder cannot be reached.
    """
    name = await resolver.resolve(lat, long)
    return {"lat": lat, "long": long, "name": name}
