"""
Reverse geocoding against a Google-compatible endpoint.

Lookups are cached in an injected :class:`KeyValueStore`.  Any failure
(no API key, HTTP error, ``ZERO_RESULTS``) yields ``None`` and the caller
falls back to a coordinate label.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

import httpx

from slidebid.infrastructure.cache import KeyValueStore

logger = logging.getLogger(__name__)


class GeocodingProvider(Protocol):
    async def reverse_geocode(self, lat: float, lon: float) -> Optional[str]: ...


class GoogleGeocoder:
    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: Optional[str],
        cache: KeyValueStore,
        *,
        url: str = "https://maps.googleapis.com/maps/api/geocode/json",
        cache_ttl_seconds: int = 86_400,
    ):
        self.client = client
        self.api_key = api_key
        self.cache = cache
        self.url = url
        self.cache_ttl_seconds = cache_ttl_seconds

    @staticmethod
    def cache_key(lat: float, lon: float) -> str:
        # ~1 m precision; nearby pickups share an entry.
        return f"geocode:{lat:.5f},{lon:.5f}"

    async def reverse_geocode(self, lat: float, lon: float) -> Optional[str]:
        if not self.api_key:
            logger.warning("Geocoding API key not configured")
            return None

        key = self.cache_key(lat, lon)
        try:
            cached = await self.cache.get(key)
        except Exception:
            logger.exception("Geocoding cache read failed for %s", key)
            cached = None
        if cached:
            return cached

        try:
            response = await self.client.get(
                self.url, params={"latlng": f"{lat},{lon}", "key": self.api_key}
            )
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Reverse geocoding %s,%s failed: %s", lat, lon, exc)
            return None

        results = body.get("results") or []
        if body.get("status") != "OK" or not results:
            logger.warning(
                "Reverse geocoding %s,%s returned %s", lat, lon, body.get("status")
            )
            return None

        address = results[0].get("formatted_address")
        if not address:
            return None
        try:
            await self.cache.set(key, address, self.cache_ttl_seconds)
        except Exception:
            logger.exception("Geocoding cache write failed for %s", key)
        return address
