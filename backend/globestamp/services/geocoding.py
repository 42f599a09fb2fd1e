"""Reverse geocoding of drawing centers into human-readable labels.

Activity entries carry raw coordinates; clients label them with a
"city, country" name resolved through a Nominatim-compatible endpoint.
Nominatim's usage policy requires an identifying ``User-Agent`` on every
request, taken from ``Settings.geocoder_user_agent``.

Resolved names are cached per process. Keys are coordinates rounded to
two decimals (roughly 1 km), so nearby drawings share one lookup. The
cache is bounded and evicts the least recently used entry.

Example:
    >>> resolver = LocationNameResolver(user_agent="GlobeStamp/0.1")
    >>> await resolver.resolve(48.8566, 2.3522)
    'Paris, France'
"""

from __future__ import annotations

import collections
import functools
import logging
import math
from typing import Any

import httpx

from globestamp.core import config, errors

logger = logging.getLogger(__name__)

UNKNOWN_LOCATION = "Unknown location"
DEFAULT_CACHE_SIZE = 1024


def cache_key(lat: float, long: float) -> tuple[float, float]:
    """Round coordinates to the precision names are cached at."""
    return (round(lat, 2), round(long, 2))


def format_location_name(data: dict[str, Any]) -> str:
    """Build a label from a Nominatim ``jsonv2`` reverse response.

    Prefers ``"<city>, <country>"`` where the city falls back to town,
    village and then the place name. Without both parts the full display
    name is used, then ``UNKNOWN_LOCATION``.
    """
    address = data.get("address")
    if not isinstance(address, dict):
        address = {}
    city = (
        address.get("city")
        or address.get("town")
        or address.get("village")
        or data.get("name")
    )
    country = address.get("country")
    if city and country:
        return f"{city}, {country}"
    return data.get("display_name") or UNKNOWN_LOCATION


class LocationNameResolver:
    """Resolves coordinates to labels with a bounded in-process cache."""

    def __init__(
        self,
        user_agent: str,
        base_url: str = "https://nominatim.openstreetmap.org",
        cache_size: int = DEFAULT_CACHE_SIZE,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the resolver.

        Args:
            user_agent: Identifying User-Agent sent with each lookup.
            base_url: Geocoder root; ``/reverse`` is appended.
            cache_size: Maximum number of cached names.
            client: Optional shared client. A short-lived client is created
                per lookup when omitted.
        """
        if cache_size < 1:
            raise ValueError("cache_size must be positive")
        self.user_agent = user_agent
        self.base_url = base_url.rstrip("/")
        self.cache_size = cache_size
        self._client = client
        self._cache: collections.OrderedDict[tuple[float, float], str] = (
            collections.OrderedDict()
        )

    def __len__(self) -> int:
        return len(self._cache)

    async def resolve(self, lat: float, long: float) -> str:
        """Return the label for a coordinate, using the cache when possible.

        Raises:
            InvalidArgument: If lat or long is not a finite number.
            UpstreamFailure: If the geocoder is unreachable, answers non-2xx
                or returns a body that is not a JSON object.
        """
        if not (math.isfinite(lat) and math.isfinite(long)):
            raise errors.InvalidArgument(
                "get_location_name: lat and long must be finite numbers"
            )

        key = cache_key(lat, long)
        cached = self._cache.get(key)
        if cached is not None:
            self._cache.move_to_end(key)
            return cached

        if self._client is not None:
            name = await self._lookup(self._client, lat, long)
        else:
            async with httpx.AsyncClient(timeout=10.0) as client:
                name = await self._lookup(client, lat, long)

        self._cache[key] = name
        self._cache.move_to_end(key)
        while len(self._cache) > self.cache_size:
            self._cache.popitem(last=False)
        return name

    async def _lookup(
        self,
        client: httpx.AsyncClient,
        lat: float,
        long: float,
    ) -> str:
        try:
            response = await client.get(
                f"{self.base_url}/reverse",
                params={"format": "jsonv2", "lat": str(lat), "lon": str(long)},
                headers={"User-Agent": self.user_agent},
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            logger.warning("Geocoder answered %s", exc.response.status_code)
            raise errors.UpstreamFailure(
                f"get_location_name: request failed ({exc.response.status_code})"
            ) from exc
        except httpx.HTTPError as exc:
            raise errors.UpstreamFailure(
                f"get_location_name: geocoder unreachable: {exc}"
            ) from exc
        except ValueError as exc:
            raise errors.UpstreamFailure(
                "get_location_name: geocoder returned invalid JSON"
            ) from exc

        if not isinstance(data, dict):
            raise errors.UpstreamFailure(
                "get_location_name: geocoder returned a malformed body"
            )
        return format_location_name(data)


async def get_location_name(
    lat: float,
    long: float,
    client: httpx.AsyncClient | None = None,
) -> str:
    """Resolve a label with a one-off, uncached lookup using default settings."""
    settings = config.get_settings()
    resolver = LocationNameResolver(
        user_agent=settings.geocoder_user_agent,
        base_url=settings.geocoder_base_url,
        client=client,
    )
    return await resolver.resolve(lat, long)


@functools.lru_cache
def get_location_resolver() -> LocationNameResolver:
    """Return the process-wide resolver, so its cache is shared."""
    settings = config.get_settings()
    return LocationNameResolver(
        user_agent=settings.geocoder_user_agent,
        base_url=settings.geocoder_base_url,
        cache_size=settings.location_cache_size,
    )
