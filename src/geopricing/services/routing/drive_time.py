"""Drive-time resolution with caching and a geometric fallback.

Resolution order for one origin/destination pair:

1. cache hit younger than the TTL  -> ``from_cache=True``
2. distance-matrix provider        -> cached, ``from_cache=False``
3. provider error / timeout / no route -> Haversine x routing factor at the
   configured urban speed, ``estimated=True`` and never cached.

Only building the provider client can fail (missing credentials); once a
resolver exists, its methods always return a usable result.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Sequence

from ...config import settings
from ...errors import DriveTimeDegraded
from ...models.domain import DriveTimeOptions, DriveTimeResult, Location
from ..cache import DriveTimeCache, drive_time_cache_key
from ..geospatial import haversine_km
from .distance_matrix import PROVIDER_MAX_DESTINATIONS, DistanceMatrixClient, MatrixElement, format_distance

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DriveTimeResolver:
    def __init__(
        self,
        client: DistanceMatrixClient,
        cache: DriveTimeCache | None = None,
        *,
        ttl_seconds: int | None = None,
        timeout_seconds: float | None = None,
        fallback_speed_kmh: float | None = None,
        routing_factor: float | None = None,
        max_destinations_per_request: int | None = None,
        max_parallel_requests: int | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.client = client
        self.cache = cache
        self.ttl_seconds = ttl_seconds or settings.drive_time_cache_ttl_seconds
        self.timeout_seconds = timeout_seconds or settings.provider_timeout_seconds
        self.fallback_speed_kmh = fallback_speed_kmh or settings.fallback_speed_kmh
        self.routing_factor = routing_factor or settings.routing_factor
        self.chunk_size = min(
            max_destinations_per_request or settings.max_destinations_per_request,
            PROVIDER_MAX_DESTINATIONS,
        )
        self.max_parallel_requests = max_parallel_requests or settings.max_parallel_requests
        self._clock = clock

    async def compute_drive_time(
        self,
        origin: Location,
        destination: Location,
        options: DriveTimeOptions | None = None,
    ) -> DriveTimeResult:
        options = options or DriveTimeOptions()
        key = drive_time_cache_key(origin.cache_key(), destination.cache_key())

        if options.use_cache:
            cached = await self._read_cache(key)
            if cached is not None:
                return cached

        try:
            elements = await asyncio.wait_for(
                self.client.matrix(origin, [destination], options),
                timeout=self.timeout_seconds,
            )
            element = elements[0] if elements else None
            if element is None:
                raise DriveTimeDegraded("No route found between origin and destination")
        except Exception as exc:
            logger.warning(f"Drive time degraded to estimate for {key}: {exc!r}")
            return self.estimate(origin, destination)

        result = self._from_element(element)
        if options.use_cache:
            await self._write_cache(key, result)
        return result

    async def compute_batch_drive_times(
        self,
        origin: Location,
        destinations: Sequence[Location],
        options: DriveTimeOptions | None = None,
    ) -> list[DriveTimeResult]:
        """Resolve many destinations from one origin, preserving input order."""
        options = options or DriveTimeOptions()
        results: list[DriveTimeResult | None] = [None] * len(destinations)
        pending: list[int] = []

        for index, destination in enumerate(destinations):
            if options.use_cache:
                key = drive_time_cache_key(origin.cache_key(), destination.cache_key())
                cached = await self._read_cache(key)
                if cached is not None:
                    results[index] = cached
                    continue
            pending.append(index)

        chunks = [pending[i : i + self.chunk_size] for i in range(0, len(pending), self.chunk_size)]
        if chunks:
            logger.info(
                f"Resolving {len(pending)} drive times in {len(chunks)} chunk(s) "
                f"(max {self.max_parallel_requests} concurrent)"
            )
        semaphore = asyncio.Semaphore(self.max_parallel_requests)

        async def run_chunk(indices: list[int]) -> None:
            batch = [destinations[i] for i in indices]
            async with semaphore:
                try:
                    elements = await asyncio.wait_for(
                        self.client.matrix(origin, batch, options),
                        timeout=self.timeout_seconds,
                    )
                except Exception as exc:
                    logger.warning(f"Drive time chunk of {len(batch)} failed, using estimates: {exc!r}")
                    elements = [None] * len(batch)
            for offset, index in enumerate(indices):
                element = elements[offset] if offset < len(elements) else None
                if element is None:
                    results[index] = self.estimate(origin, destinations[index])
                    continue
                result = self._from_element(element)
                if options.use_cache:
                    key = drive_time_cache_key(origin.cache_key(), destinations[index].cache_key())
                    await self._write_cache(key, result)
                results[index] = result

        await asyncio.gather(*(run_chunk(chunk) for chunk in chunks))
        return [result for result in results if result is not None]

    def estimate(self, origin: Location, destination: Location) -> DriveTimeResult:
        """Straight-line distance stretched by the routing factor at the urban average speed."""
        straight_km = haversine_km(origin.lat, origin.lng, destination.lat, destination.lng)
        road_km = straight_km * self.routing_factor
        minutes = max(0, int(round(road_km / self.fallback_speed_kmh * 60.0)))
        return DriveTimeResult(
            minutes=minutes,
            distance_km=round(road_km, 3),
            distance_text=f"{format_distance(road_km * 1000.0)} (estimated)",
            duration_text=f"{minutes} mins (estimated)",
            from_cache=False,
            estimated=True,
            calculated_at=self._clock(),
        )

    def _from_element(self, element: MatrixElement) -> DriveTimeResult:
        return DriveTimeResult(
            minutes=max(0, int(round(element.duration_seconds / 60.0))),
            distance_km=element.distance_meters / 1000.0,
            distance_text=element.distance_text,
            duration_text=element.duration_text,
            from_cache=False,
            estimated=False,
            calculated_at=self._clock(),
        )

    async def _read_cache(self, key: str) -> DriveTimeResult | None:
        if self.cache is None:
            return None
        try:
            payload = await self.cache.get(key)
        except Exception as exc:
            logger.warning(f"Drive-time cache read failed for {key}: {exc}")
            return None
        if not payload:
            return None
        try:
            calculated_at = datetime.fromisoformat(payload["calculatedAt"])
            age = (self._clock() - calculated_at).total_seconds()
            if age >= self.ttl_seconds:
                await self.cache.evict(key)
                return None
            return DriveTimeResult(
                minutes=int(payload["minutes"]),
                distance_km=float(payload["distanceKm"]),
                distance_text=payload["distanceText"],
                duration_text=payload["durationText"],
                from_cache=True,
                estimated=False,
                calculated_at=calculated_at,
            )
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning(f"Ignoring malformed drive-time cache entry {key}: {exc}")
            await self.cache.evict(key)
            return None

    async def _write_cache(self, key: str, result: DriveTimeResult) -> None:
        if self.cache is None:
            return
        payload: dict[str, Any] = {
            "minutes": result.minutes,
            "distanceKm": result.distance_km,
            "distanceText": result.distance_text,
            "durationText": result.duration_text,
            "calculatedAt": (result.calculated_at or self._clock()).isoformat(),
        }
        try:
            await self.cache.set(key, payload, self.ttl_seconds)
        except Exception as exc:
            logger.warning(f"Drive-time cache write failed for {key}: {exc}")
