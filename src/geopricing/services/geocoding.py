"""Address geocoding through the Google Geocoding API."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

import httpx

from ..config import settings
from ..errors import ConfigurationError, GeocodingFailure
from ..models.domain import Location

GOOGLE_GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"

logger = logging.getLogger(__name__)


class GeocodingClient(Protocol):
    async def geocode(self, address: str) -> Location: ...

    async def aclose(self) -> None: ...


def _component(components: list[dict[str, Any]], *types: str) -> str | None:
    for wanted in types:
        for component in components:
            if wanted in component.get("types", []):
                return component.get("long_name")
    return None


class GoogleGeocodingClient:
    def __init__(
        self,
        api_key: str | None = None,
        *,
        region: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key or settings.google_maps_api_key
        if not self.api_key:
            raise ConfigurationError("Google Maps API key is not configured.")
        self.region = region if region is not None else settings.geocoding_region
        self.timeout = timeout if timeout is not None else settings.provider_timeout_seconds
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(self.timeout, connect=5.0))

    async def geocode(self, address: str) -> Location:
        """Resolve ``address`` to a :class:`Location` or raise :class:`GeocodingFailure`."""
        cleaned = (address or "").strip()
        if not cleaned:
            raise GeocodingFailure(address, "empty address")

        params = {"address": cleaned, "key": self.api_key}
        if self.region:
            params["region"] = self.region

        try:
            response = await asyncio.wait_for(
                self._client.get(GOOGLE_GEOCODE_URL, params=params),
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, asyncio.TimeoutError, ValueError) as exc:
            logger.warning(f"Geocoding request failed for '{cleaned}': {exc!r}")
            raise GeocodingFailure(cleaned, "geocoding service unavailable") from exc

        status = data.get("status")
        results = data.get("results") or []
        if status != "OK" or not results:
            logger.info(f"Geocoding returned {status} for '{cleaned}'")
            raise GeocodingFailure(cleaned, str(status))

        best = results[0]
        components = best.get("address_components", [])
        try:
            point = best["geometry"]["location"]
            lat, lng = float(point["lat"]), float(point["lng"])
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning(f"Geocoding returned no usable location for '{cleaned}': {exc!r}")
            raise GeocodingFailure(cleaned, "malformed response") from exc
        return Location(
            lat=lat,
            lng=lng,
            address=best.get("formatted_address", cleaned),
            city=_component(components, "locality", "postal_town", "administrative_area_level_3"),
            region=_component(components, "administrative_area_level_1"),
            postal_code=_component(components, "postal_code"),
        )

    async def aclose(self) -> None:
        await self._client.aclose()
