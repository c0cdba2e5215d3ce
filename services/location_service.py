from __future__ import annotations

import logging

import httpx
from pydantic import ValidationError

from core.cache import TTLCache
from core.settings import LOCATION_CACHE_TTL_SECONDS
from schemas.country import LocationSignal

logger = logging.getLogger(__name__)

LOCATION_CACHE_KEY = "location:visitor"


class GeolocationService:
    """IP geolocation of the current visitor, cached for 30 days by default.

    Lookups never raise: any failure yields `None` so country selection can
    fall through to its next rule.
    """

    def __init__(
        self,
        url: str,
        cache: TTLCache,
        *,
        ttl_seconds: int = LOCATION_CACHE_TTL_SECONDS,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url
        self._cache = cache
        self._ttl_seconds = ttl_seconds
        self._timeout = timeout
        self._transport = transport

    async def get_location(self) -> LocationSignal | None:
        cached = self._cache.get(LOCATION_CACHE_KEY)
        if cached:
            try:
                return LocationSignal.model_validate(cached)
            except ValidationError:
                self._cache.delete(LOCATION_CACHE_KEY)

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.get(self._url)
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError) as err:
            logger.warning("geolocation lookup failed: %s", err)
            return None

        if not isinstance(payload, dict) or payload.get("error"):
            logger.warning("geolocation lookup returned no location")
            return None

        try:
            signal = LocationSignal.model_validate(payload)
        except ValidationError as err:
            logger.warning("geolocation payload rejected: %s", err)
            return None

        self._cache.set(LOCATION_CACHE_KEY, signal.model_dump(), self._ttl_seconds)
        return signal

    async def refresh(self) -> LocationSignal | None:
        self.clear_cache()
        return await self.get_location()

    def clear_cache(self) -> None:
        self._cache.delete(LOCATION_CACHE_KEY)
