from __future__ import annotations

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from services.errors import CacheUnavailableError
from storage.cache import MemoryCache, RedisCache


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class BrokenRedis:
    def get(self, key):
        raise RedisConnectionError("connection refused")

    def set(self, key, value, ex=None, nx=False):
        raise RedisConnectionError("connection refused")

    def delete(self, key):
        raise RedisConnectionError("connection refused")

    def ping(self):
        raise RedisConnectionError("connection refused")

    def close(self) -> None:
        pass


class RecordingRedis:
    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.values: dict[str, str] = {}

    def get(self, key):
        return self.values.get(key)

    def set(self, key, value, ex=None, nx=False):
        if nx and key in self.values:
            return None
        self.calls.append((key, value, ex))
        self.values[key] = value
        return True

    def delete(self, key):
        self.values.pop(key, None)

    def ping(self):
        return True

    def close(self) -> None:
        pass


def test_memory_cache_overwrites_and_reads() -> None:
    cache = MemoryCache()

    cache.set("latest:dev-1", "first")
    cache.set("latest:dev-1", "second")

    assert cache.get("latest:dev-1") == "second"
    assert cache.get("latest:dev-2") is None


def test_memory_cache_expires_entries_with_ttl() -> None:
    clock = FakeClock()
    cache = MemoryCache(clock=clock)
    cache.set("alert:dev-1:HIGH_TEMPERATURE", "1", ttl=60)
    cache.set("latest:dev-1", "forever")

    clock.now = 59.9
    assert cache.get("alert:dev-1:HIGH_TEMPERATURE") == "1"

    clock.now = 60.0
    assert cache.get("alert:dev-1:HIGH_TEMPERATURE") is None
    assert cache.get("latest:dev-1") == "forever"


def test_redis_cache_passes_expiry_through() -> None:
    client = RecordingRedis()
    cache = RedisCache(client)  # type: ignore[arg-type]

    cache.set("latest:dev-1", "{}")
    cache.set("alert:dev-1:HIGH_HUMIDITY", "1", ttl=60)

    assert client.calls == [("latest:dev-1", "{}", None), ("alert:dev-1:HIGH_HUMIDITY", "1", 60)]
    assert cache.get("latest:dev-1") == "{}"
    cache.ping()


def test_memory_cache_add_only_claims_absent_or_expired_keys() -> None:
    clock = FakeClock()
    cache = MemoryCache(clock=clock)

    assert cache.add("alert:dev-1:HIGH_TEMPERATURE", "first", ttl=60) is True
    assert cache.add("alert:dev-1:HIGH_TEMPERATURE", "second", ttl=60) is False
    assert cache.get("alert:dev-1:HIGH_TEMPERATURE") == "first"

    clock.now = 60.0
    assert cache.add("alert:dev-1:HIGH_TEMPERATURE", "third", ttl=60) is True

    cache.delete("alert:dev-1:HIGH_TEMPERATURE")
    assert cache.get("alert:dev-1:HIGH_TEMPERATURE") is None


def test_redis_cache_add_uses_set_if_absent() -> None:
    client = RecordingRedis()
    cache = RedisCache(client)  # type: ignore[arg-type]

    assert cache.add("alert:dev-1:HIGH_HUMIDITY", "1", ttl=60) is True
    assert cache.add("alert:dev-1:HIGH_HUMIDITY", "2", ttl=60) is False
    assert client.calls == [("alert:dev-1:HIGH_HUMIDITY", "1", 60)]

    cache.delete("alert:dev-1:HIGH_HUMIDITY")
    assert cache.get("alert:dev-1:HIGH_HUMIDITY") is None


@pytest.mark.parametrize(
    "operation",
    [
        lambda cache: cache.get("latest:dev-1"),
        lambda cache: cache.set("latest:dev-1", "{}"),
        lambda cache: cache.add("alert:dev-1:HIGH_TEMPERATURE", "1", ttl=60),
        lambda cache: cache.delete("alert:dev-1:HIGH_TEMPERATURE"),
        lambda cache: cache.ping(),
    ],
)
def test_redis_errors_become_cache_unavailable(operation) -> None:
    cache = RedisCache(BrokenRedis())  # type: ignore[arg-type]

    with pytest.raises(CacheUnavailableError):
        operation(cache)
