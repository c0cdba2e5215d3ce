from __future__ import annotations

import redis

from core.cache import MemoryTTLCache, RedisTTLCache, build_cache


class _FakeRedis:
    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    def get(self, key: str):
        return self.store.get(key)

    def setex(self, key: str, ttl: int, value: str) -> None:
        self.store[key] = value
        self.ttls[key] = ttl

    def delete(self, key: str) -> None:
        self.store.pop(key, None)


class _BrokenRedis:
    def get(self, key: str):
        raise redis.ConnectionError("down")

    def setex(self, key: str, ttl: int, value: str) -> None:
        raise redis.ConnectionError("down")

    def delete(self, key: str) -> None:
        raise redis.ConnectionError("down")


def test_memory_cache_expires_entries():
    now = [100.0]
    cache = MemoryTTLCache(clock=lambda: now[0])

    cache.set("countries", ["FR"], 10)
    assert cache.get("countries") == ["FR"]

    now[0] = 110.0
    assert cache.get("countries") is None


def test_memory_cache_delete_is_idempotent():
    cache = MemoryTTLCache()
    cache.set("location", {"country_code": "CM"}, 60)

    cache.delete("location")
    cache.delete("location")

    assert cache.get("location") is None


def test_redis_cache_stores_json_with_prefix_and_ttl():
    client = _FakeRedis()
    cache = RedisTTLCache(client, prefix="checkout")

    cache.set("countries:catalog", [{"iso_code": "CM"}], 86400)

    assert client.ttls["checkout:countries:catalog"] == 86400
    assert cache.get("countries:catalog") == [{"iso_code": "CM"}]

    cache.delete("countries:catalog")
    assert cache.get("countries:catalog") is None


def test_redis_failures_are_cache_misses():
    cache = RedisTTLCache(_BrokenRedis())

    cache.set("location:visitor", {"country_code": "CM"}, 60)
    cache.delete("location:visitor")

    assert cache.get("location:visitor") is None


def test_build_cache_defaults_to_memory():
    assert isinstance(build_cache("memory"), MemoryTTLCache)
    assert isinstance(build_cache("redis", "redis://127.0.0.1:6379/0"), RedisTTLCache)
