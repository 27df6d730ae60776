"""Async HTTP clients for distance-matrix providers (Google Distance Matrix, OSRM table)."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Protocol, Sequence

import httpx

from ...config import settings
from ...errors import ConfigurationError, DistanceMatrixError
from ...models.domain import DriveTimeOptions, Location

GOOGLE_DISTANCE_MATRIX_URL = "https://maps.googleapis.com/maps/api/distancematrix/json"

# Google rejects more than 25 destinations per origin in one request.
PROVIDER_MAX_DESTINATIONS = 25

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class MatrixElement:
    duration_seconds: float
    distance_meters: float
    duration_text: str
    distance_text: str


class DistanceMatrixClient(Protocol):
    """One origin to many destinations. ``None`` marks an unroutable destination."""

    async def matrix(
        self,
        origin: Location,
        destinations: Sequence[Location],
        options: DriveTimeOptions,
    ) -> list[MatrixElement | None]: ...

    async def aclose(self) -> None: ...


def format_duration(seconds: float) -> str:
    minutes = int(round(seconds / 60.0))
    if minutes < 60:
        return f"{minutes} min" if minutes == 1 else f"{minutes} mins"
    hours, rest = divmod(minutes, 60)
    label = f"{hours} hour" if hours == 1 else f"{hours} hours"
    return f"{label} {rest} mins" if rest else label


def format_distance(meters: float) -> str:
    if meters < 1000:
        return f"{int(round(meters))} m"
    return f"{meters / 1000.0:.1f} km"


class _RetryingHTTPClient:
    """Shared GET-with-retry loop; timeouts and network errors back off exponentially."""

    def __init__(
        self,
        *,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.timeout = timeout if timeout is not None else settings.provider_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.provider_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.provider_backoff_seconds
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(self.timeout, connect=5.0))

    async def _get_json(self, url: str, params: dict[str, Any]) -> dict:
        attempt = 0
        while True:
            try:
                response = await self._client.get(url, params=params)
                response.raise_for_status()
                return response.json()
            except httpx.HTTPStatusError as exc:
                # Client errors will not improve on retry.
                if exc.response.status_code < 500:
                    raise DistanceMatrixError(f"Provider rejected request: HTTP {exc.response.status_code}") from exc
                attempt += 1
                if attempt > self.max_retries:
                    raise DistanceMatrixError(f"Provider error: HTTP {exc.response.status_code}") from exc
                await asyncio.sleep(self.backoff_seconds * attempt)
            except httpx.TimeoutException as exc:
                attempt += 1
                if attempt > self.max_retries:
                    logger.warning(f"Provider request timed out after {self.max_retries} retries: {exc}")
                    raise DistanceMatrixError("Provider request timed out") from exc
                wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                logger.debug(f"Provider timeout, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries})")
                await asyncio.sleep(wait_time)
            except (httpx.NetworkError, httpx.RemoteProtocolError) as exc:
                attempt += 1
                if attempt > self.max_retries:
                    raise DistanceMatrixError(f"Failed to reach provider: {exc}") from exc
                wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                logger.debug(f"Provider network error, retrying in {wait_time:.1f}s: {exc}")
                await asyncio.sleep(wait_time)
            except ValueError as exc:
                raise DistanceMatrixError(f"Provider returned invalid JSON: {exc}") from exc

    async def aclose(self) -> None:
        await self._client.aclose()


class GoogleDistanceMatrixClient(_RetryingHTTPClient):
    def __init__(self, api_key: str | None = None, **kwargs: Any) -> None:
        self.api_key = api_key or settings.google_maps_api_key
        if not self.api_key:
            raise ConfigurationError("Google Maps API key is not configured.")
        super().__init__(**kwargs)

    async def matrix(
        self,
        origin: Location,
        destinations: Sequence[Location],
        options: DriveTimeOptions,
    ) -> list[MatrixElement | None]:
        if not destinations:
            return []
        if len(destinations) > PROVIDER_MAX_DESTINATIONS:
            raise ValueError(f"At most {PROVIDER_MAX_DESTINATIONS} destinations per request.")

        params: dict[str, Any] = {
            "origins": f"{origin.lat},{origin.lng}",
            "destinations": "|".join(f"{d.lat},{d.lng}" for d in destinations),
            "mode": "driving",
            "units": "metric",
            "departure_time": "now",
            "traffic_model": options.traffic_model,
            "key": self.api_key,
        }
        avoid = [name for name, flag in (("highways", options.avoid_highways), ("tolls", options.avoid_tolls)) if flag]
        if avoid:
            params["avoid"] = "|".join(avoid)

        data = await self._get_json(GOOGLE_DISTANCE_MATRIX_URL, params)
        status = data.get("status")
        if status != "OK":
            raise DistanceMatrixError(f"Distance Matrix API status: {status}")

        rows = data.get("rows") or [{}]
        elements = rows[0].get("elements", [])
        results: list[MatrixElement | None] = []
        for index in range(len(destinations)):
            element = elements[index] if index < len(elements) else None
            if not element or element.get("status") != "OK":
                results.append(None)
                continue
            duration = element.get("duration_in_traffic") or element["duration"]
            distance = element["distance"]
            results.append(
                MatrixElement(
                    duration_seconds=float(duration["value"]),
                    distance_meters=float(distance["value"]),
                    duration_text=duration.get("text") or format_duration(duration["value"]),
                    distance_text=distance.get("text") or format_distance(distance["value"]),
                )
            )
        return results


class OSRMDistanceMatrixClient(_RetryingHTTPClient):
    """OSRM ``table`` service with the origin as the single source."""

    def __init__(self, base_url: str | None = None, profile: str | None = None, **kwargs: Any) -> None:
        self.base_url = base_url or settings.osrm_base_url
        if not self.base_url:
            raise ConfigurationError("OSRM base URL is not configured.")
        self.profile = profile or settings.osrm_profile
        super().__init__(**kwargs)

    async def matrix(
        self,
        origin: Location,
        destinations: Sequence[Location],
        options: DriveTimeOptions,
    ) -> list[MatrixElement | None]:
        if not destinations:
            return []

        coordinates = [origin, *destinations]
        coordinate_str = ";".join(f"{c.lng},{c.lat}" for c in coordinates)
        params = {
            "annotations": "duration,distance",
            "sources": "0",
            "destinations": ";".join(str(i) for i in range(1, len(coordinates))),
        }
        url = f"{self.base_url}/table/v1/{self.profile}/{coordinate_str}"
        data = await self._get_json(url, params)
        if data.get("code", "Ok") != "Ok":
            raise DistanceMatrixError(f"OSRM table request failed: {data.get('message', data.get('code'))}")
        if "durations" not in data or "distances" not in data:
            raise DistanceMatrixError("OSRM response missing durations/distances.")

        durations = data["durations"][0] if data["durations"] else []
        distances = data["distances"][0] if data["distances"] else []
        results: list[MatrixElement | None] = []
        for index in range(len(destinations)):
            duration = durations[index] if index < len(durations) else None
            distance = distances[index] if index < len(distances) else None
            if duration is None or distance is None:
                results.append(None)
                continue
            results.append(
                MatrixElement(
                    duration_seconds=float(duration),
                    distance_meters=float(distance),
                    duration_text=format_duration(duration),
                    distance_text=format_distance(distance),
                )
            )
        return results


def build_distance_matrix_client() -> DistanceMatrixClient:
    """Create the configured provider client. Raises ConfigurationError on missing credentials."""
    if settings.distance_provider == "osrm":
        return OSRMDistanceMatrixClient()
    return GoogleDistanceMatrixClient()


async def check_health(client: DistanceMatrixClient) -> bool:
    """Probe the provider with a single short route (downtown Toronto)."""
    origin = Location(lat=43.6532, lng=-79.3832)
    destination = Location(lat=43.6426, lng=-79.3871)
    try:
        elements = await client.matrix(origin, [destination], DriveTimeOptions())
    except DistanceMatrixError:
        return False
    return bool(elements) and elements[0] is not None
