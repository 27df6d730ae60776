import asyncio
from datetime import datetime, timedelta, timezone

from geopricing.errors import DistanceMatrixError
from geopricing.models.domain import DriveTimeOptions, Location
from geopricing.services.cache import InMemoryDriveTimeCache, drive_time_cache_key
from geopricing.services.routing.distance_matrix import MatrixElement
from geopricing.services.routing.drive_time import DriveTimeResolver

ORIGIN = Location(lat=43.6532, lng=-79.3832, address="Shop")
# 0.036 degrees of latitude is about 4.0 km in a straight line.
CUSTOMER = Location(lat=43.6892, lng=-79.3832, address="Customer")


class DummyMatrix:
    def __init__(self, seconds: float = 720.0, fail_sizes: tuple[int, ...] = (), error: Exception | None = None):
        self.seconds = seconds
        self.fail_sizes = fail_sizes
        self.error = error
        self.calls: list[int] = []

    async def matrix(self, origin, destinations, options):
        self.calls.append(len(destinations))
        if self.error is not None:
            raise self.error
        if len(destinations) in self.fail_sizes:
            raise DistanceMatrixError("chunk failed")
        return [MatrixElement(self.seconds, 6000.0, "12 mins", "6.0 km") for _ in destinations]

    async def aclose(self):
        return None


class Clock:
    def __init__(self):
        self.now = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now


def _resolver(client, cache=None, clock=None, **kwargs):
    return DriveTimeResolver(
        client,
        cache,
        ttl_seconds=900,
        timeout_seconds=kwargs.pop("timeout_seconds", 1.0),
        fallback_speed_kmh=40.0,
        routing_factor=1.3,
        max_destinations_per_request=25,
        max_parallel_requests=2,
        clock=clock or Clock(),
        **kwargs,
    )


def test_provider_result_is_cached():
    client = DummyMatrix()
    cache = InMemoryDriveTimeCache(max_entries=10)
    resolver = _resolver(client, cache)

    first = asyncio.run(resolver.compute_drive_time(ORIGIN, CUSTOMER))
    second = asyncio.run(resolver.compute_drive_time(ORIGIN, CUSTOMER))

    assert first.minutes == 12
    assert not first.from_cache
    assert second.from_cache
    assert second.minutes == 12
    assert client.calls == [1]
    assert len(cache) == 1


def test_cache_entry_is_not_served_after_ttl():
    client = DummyMatrix()
    cache = InMemoryDriveTimeCache(max_entries=10)
    clock = Clock()
    resolver = _resolver(client, cache, clock)

    asyncio.run(resolver.compute_drive_time(ORIGIN, CUSTOMER))
    clock.now += timedelta(seconds=899)
    assert asyncio.run(resolver.compute_drive_time(ORIGIN, CUSTOMER)).from_cache

    clock.now += timedelta(seconds=2)
    refreshed = asyncio.run(resolver.compute_drive_time(ORIGIN, CUSTOMER))

    assert not refreshed.from_cache
    assert client.calls == [1, 1]


def test_use_cache_false_bypasses_cache():
    client = DummyMatrix()
    cache = InMemoryDriveTimeCache(max_entries=10)
    resolver = _resolver(client, cache)
    options = DriveTimeOptions(use_cache=False)

    asyncio.run(resolver.compute_drive_time(ORIGIN, CUSTOMER, options))
    asyncio.run(resolver.compute_drive_time(ORIGIN, CUSTOMER, options))

    assert client.calls == [1, 1]
    assert len(cache) == 0


def test_provider_failure_falls_back_to_estimate():
    cache = InMemoryDriveTimeCache(max_entries=10)
    resolver = _resolver(DummyMatrix(error=DistanceMatrixError("OVER_QUERY_LIMIT")), cache)

    result = asyncio.run(resolver.compute_drive_time(ORIGIN, CUSTOMER))

    assert result.estimated
    assert not result.from_cache
    assert result.minutes == 8
    assert result.duration_text.endswith("(estimated)")
    assert len(cache) == 0


def test_unexpected_provider_error_falls_back_to_estimate():
    for error in (OSError("connection reset"), RuntimeError("client closed")):
        resolver = _resolver(DummyMatrix(error=error))

        result = asyncio.run(resolver.compute_drive_time(ORIGIN, CUSTOMER))

        assert result.estimated
        assert result.minutes == 8


def test_unexpected_provider_error_in_batch_uses_estimates():
    resolver = _resolver(DummyMatrix(error=RuntimeError("client closed")))

    results = asyncio.run(resolver.compute_batch_drive_times(ORIGIN, [CUSTOMER, CUSTOMER]))

    assert [result.estimated for result in results] == [True, True]


def test_provider_timeout_falls_back_to_estimate():
    class SlowMatrix(DummyMatrix):
        async def matrix(self, origin, destinations, options):
            await asyncio.sleep(1)
            return await super().matrix(origin, destinations, options)

    resolver = _resolver(SlowMatrix(), timeout_seconds=0.01)

    result = asyncio.run(resolver.compute_drive_time(ORIGIN, CUSTOMER))

    assert result.estimated
    assert result.minutes == 8


def test_unroutable_destination_falls_back_to_estimate():
    class NoRoute(DummyMatrix):
        async def matrix(self, origin, destinations, options):
            return [None for _ in destinations]

    result = asyncio.run(_resolver(NoRoute()).compute_drive_time(ORIGIN, CUSTOMER))

    assert result.estimated


def test_batch_chunks_and_substitutes_failed_chunk():
    client = DummyMatrix(fail_sizes=(5,))
    resolver = _resolver(client)
    destinations = [Location(lat=43.66 + index * 0.001, lng=-79.38) for index in range(30)]

    results = asyncio.run(resolver.compute_batch_drive_times(ORIGIN, destinations))

    assert len(results) == 30
    assert sorted(client.calls) == [5, 25]
    assert all(not result.estimated for result in results[:25])
    assert all(result.estimated for result in results[25:])


def test_batch_uses_cache_for_known_destinations():
    client = DummyMatrix()
    cache = InMemoryDriveTimeCache(max_entries=10)
    resolver = _resolver(client, cache)
    asyncio.run(resolver.compute_drive_time(ORIGIN, CUSTOMER))

    results = asyncio.run(resolver.compute_batch_drive_times(ORIGIN, [CUSTOMER, Location(lat=43.7, lng=-79.4)]))

    assert results[0].from_cache
    assert not results[1].from_cache
    assert client.calls == [1, 1]


def test_in_memory_cache_evicts_oldest_when_full():
    cache = InMemoryDriveTimeCache(max_entries=2)

    async def fill():
        for key in ("a", "b", "c"):
            await cache.set(key, {"minutes": 1}, 900)
        return [await cache.get(key) for key in ("a", "b", "c")]

    a, b, c = asyncio.run(fill())

    assert a is None
    assert b == {"minutes": 1}
    assert c == {"minutes": 1}


def test_in_memory_cache_purges_expired_entries():
    now = [1000.0]
    cache = InMemoryDriveTimeCache(max_entries=10, clock=lambda: now[0])
    asyncio.run(cache.set("a", {"minutes": 1}, 900))
    asyncio.run(cache.set("b", {"minutes": 2}, 60))

    now[0] += 61

    assert cache.purge_expired() == 1
    assert len(cache) == 1


def test_cache_key_rounds_to_four_decimals():
    origin = Location(lat=43.653212, lng=-79.383245)
    destination = Location(lat=43.7, lng=-79.4)

    key = drive_time_cache_key(origin.cache_key(), destination.cache_key())

    assert key == "drivetime:43.6532,-79.3832:43.7000,-79.4000"
