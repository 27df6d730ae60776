"""Drive-time cache backends.

The resolver only depends on the :class:`DriveTimeCache` protocol, so the
process-local map and the shared Redis cache are interchangeable. Values are
plain JSON-compatible dicts of the shape::

    {"minutes", "distanceKm", "distanceText", "durationText", "calculatedAt"}
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Protocol

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from ..config import settings

logger = logging.getLogger(__name__)

CACHE_PREFIX = "drivetime"


def drive_time_cache_key(origin_key: str, destination_key: str) -> str:
    return f"{CACHE_PREFIX}:{origin_key}:{destination_key}"


class DriveTimeCache(Protocol):
    async def get(self, key: str) -> dict[str, Any] | None: ...

    async def set(self, key: str, value: dict[str, Any], ttl_seconds: int) -> None: ...

    async def evict(self, key: str) -> None: ...

    async def close(self) -> None: ...


class InMemoryDriveTimeCache:
    """Process-local TTL cache bounded by entry count (oldest entries evicted first)."""

    def __init__(
        self,
        max_entries: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.max_entries = max_entries or settings.drive_time_cache_max_entries
        self._clock = clock
        self._entries: OrderedDict[str, tuple[dict[str, Any], float]] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    async def get(self, key: str) -> dict[str, Any] | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if now >= expires_at:
                del self._entries[key]
                return None
            return dict(value)

    async def set(self, key: str, value: dict[str, Any], ttl_seconds: int) -> None:
        expires_at = self._clock() + ttl_seconds
        with self._lock:
            self._entries[key] = (dict(value), expires_at)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"Drive-time cache full, evicted {evicted}")

    async def evict(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [key for key, (_, expires_at) in self._entries.items() if now >= expires_at]
            for key in expired:
                del self._entries[key]
        return len(expired)

    async def close(self) -> None:
        with self._lock:
            self._entries.clear()


class RedisDriveTimeCache:
    """Shared cache backed by Redis; failures are logged and treated as misses."""

    def __init__(self, url: str | None = None, client: aioredis.Redis | None = None) -> None:
        if client is None:
            redis_url = url or settings.redis_url
            if not redis_url:
                raise ValueError("Redis URL is not configured.")
            client = aioredis.from_url(redis_url, decode_responses=True)
        self._client = client

    async def get(self, key: str) -> dict[str, Any] | None:
        try:
            cached = await self._client.get(key)
        except RedisError as exc:
            logger.warning(f"Cache retrieval error for {key}: {exc}")
            return None
        if not cached:
            return None
        try:
            return json.loads(cached)
        except json.JSONDecodeError:
            logger.warning(f"Discarding malformed cache entry {key}")
            await self.evict(key)
            return None

    async def set(self, key: str, value: dict[str, Any], ttl_seconds: int) -> None:
        try:
            await self._client.setex(key, ttl_seconds, json.dumps(value))
        except RedisError as exc:
            logger.warning(f"Cache storage error for {key}: {exc}")

    async def evict(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except RedisError as exc:
            logger.warning(f"Cache eviction error for {key}: {exc}")

    async def close(self) -> None:
        await self._client.aclose()


def build_cache() -> InMemoryDriveTimeCache | RedisDriveTimeCache:
    if settings.redis_url:
        logger.info("Using Redis drive-time cache")
        return RedisDriveTimeCache(settings.redis_url)
    return InMemoryDriveTimeCache()
