from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable, Protocol

import redis

logger = logging.getLogger(__name__)


class TTLCache(Protocol):
    def get(self, key: str) -> Any | None:
        ...

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class MemoryTTLCache:
    """Process-local cache; one instance per owner so tests never share state."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[Any, float]] = {}

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        self._entries[key] = (value, self._clock() + ttl_seconds)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)


class RedisTTLCache:
    def __init__(self, client: redis.Redis, *, prefix: str = "checkout") -> None:
        self._client = client
        self._prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    def get(self, key: str) -> Any | None:
        try:
            raw = self._client.get(self._key(key))
        except redis.RedisError as err:
            logger.warning("cache read failed for %s: %s", key, err)
            return None

        if not raw:
            return None

        try:
            return json.loads(raw)  # type: ignore[arg-type]
        except json.JSONDecodeError:
            return None

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        try:
            self._client.setex(self._key(key), ttl_seconds, json.dumps(value, default=str))
        except redis.RedisError as err:
            logger.warning("cache write failed for %s: %s", key, err)

    def delete(self, key: str) -> None:
        try:
            self._client.delete(self._key(key))
        except redis.RedisError as err:
            logger.warning("cache delete failed for %s: %s", key, err)


def build_cache(backend: str, redis_url: str | None = None) -> TTLCache:
    if backend == "redis":
        if not redis_url:
            raise RuntimeError("REDIS_URL is required when CACHE_BACKEND=redis")
        client = redis.Redis.from_url(redis_url, socket_connect_timeout=2, decode_responses=True)
        return RedisTTLCache(client)
    return MemoryTTLCache()
