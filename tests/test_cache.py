import asyncio

from redis.exceptions import ConnectionError as RedisConnectionError

from geopricing.services.cache import RedisDriveTimeCache


class DummyRedis:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.closed = False

    async def get(self, key):
        if self.fail:
            raise RedisConnectionError("down")
        return self.data.get(key)

    async def setex(self, key, ttl, value):
        if self.fail:
            raise RedisConnectionError("down")
        self.data[key] = value
        self.ttls[key] = ttl

    async def delete(self, key):
        self.data.pop(key, None)

    async def aclose(self):
        self.closed = True


def test_redis_cache_round_trips_json_with_ttl():
    redis = DummyRedis()
    cache = RedisDriveTimeCache(client=redis)

    async def run():
        await cache.set("drivetime:a:b", {"minutes": 12, "distanceKm": 6.0}, 900)
        value = await cache.get("drivetime:a:b")
        await cache.close()
        return value

    assert asyncio.run(run()) == {"minutes": 12, "distanceKm": 6.0}
    assert redis.ttls["drivetime:a:b"] == 900
    assert redis.closed


def test_redis_errors_are_treated_as_misses():
    cache = RedisDriveTimeCache(client=DummyRedis(fail=True))

    async def run():
        await cache.set("k", {"minutes": 1}, 900)
        return await cache.get("k")

    assert asyncio.run(run()) is None


def test_malformed_redis_entry_is_evicted():
    redis = DummyRedis()
    redis.data["k"] = "not json"
    cache = RedisDriveTimeCache(client=redis)

    assert asyncio.run(cache.get("k")) is None
    assert "k" not in redis.data
