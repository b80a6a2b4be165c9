"""Key/value cache adapters used for latest-reading lookups and shared alert dedup."""

from __future__ import annotations

import logging
import time
from functools import lru_cache
from threading import Lock
from typing import Callable, Dict, Optional, Protocol, Tuple

import redis
from redis.exceptions import RedisError

from services.errors import CacheUnavailableError
from settings import get_settings

logger = logging.getLogger(__name__)


class Cache(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> None: ...

    def add(self, key: str, value: str, ttl: Optional[int] = None) -> bool: ...

    def delete(self, key: str) -> None: ...

    def ping(self) -> None: ...

    def close(self) -> None: ...


class RedisCache:
    """Cache backed by a Redis server."""

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisCache":
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=5,
        )
        logger.info("Redis cache configured: %s", url.split("@")[-1])
        return cls(client)

    def get(self, key: str) -> Optional[str]:
        try:
            return self._client.get(key)
        except RedisError as exc:
            raise CacheUnavailableError(f"Cache read failed for {key!r}: {exc}") from exc

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        try:
            self._client.set(key, value, ex=ttl)
        except RedisError as exc:
            raise CacheUnavailableError(f"Cache write failed for {key!r}: {exc}") from exc

    def add(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        """Set ``key`` only when absent; True when this call created it."""
        try:
            return bool(self._client.set(key, value, ex=ttl, nx=True))
        except RedisError as exc:
            raise CacheUnavailableError(f"Cache write failed for {key!r}: {exc}") from exc

    def delete(self, key: str) -> None:
        try:
            self._client.delete(key)
        except RedisError as exc:
            raise CacheUnavailableError(f"Cache delete failed for {key!r}: {exc}") from exc

    def ping(self) -> None:
        try:
            self._client.ping()
        except RedisError as exc:
            raise CacheUnavailableError(f"Cache ping failed: {exc}") from exc

    def close(self) -> None:
        self._client.close()


class MemoryCache:
    """In-process cache used when no Redis URL is configured."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._entries: Dict[str, Tuple[str, Optional[float]]] = {}
        self._clock = clock
        self._lock = Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at is not None and self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        expires_at = self._clock() + ttl if ttl else None
        with self._lock:
            self._entries[key] = (value, expires_at)

    def add(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and (entry[1] is None or now < entry[1]):
                return False
            self._entries[key] = (value, now + ttl if ttl else None)
            return True

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def ping(self) -> None:
        return None

    def close(self) -> None:
        with self._lock:
            self._entries.clear()


@lru_cache
def build_default_cache(url: Optional[str] = None) -> Cache:
    settings = get_settings()
    redis_url = settings.redis_url if url is None else url
    if not redis_url:
        logger.warning("REDIS_URL not set; using in-process cache")
        return MemoryCache()
    return RedisCache.from_url(redis_url)
