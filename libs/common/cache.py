"""Small TTL cache abstraction, injected where a cache is needed.

Two backends share the same async interface:
- ``MemoryTTLCache``: per-process, bounded, with an injectable clock so tests
  can expire entries deterministically.
- ``RedisCache``: shared across workers when ``REDIS_URL`` is configured.

Usage:
    cache = build_cache(get_settings())
    await cache.set("signed:media/a.pdf", url, ttl_seconds=300)
    url = await cache.get("signed:media/a.pdf")
    await cache.delete("signed:media/a.pdf")

Cache failures never propagate: a broken backend degrades to a miss.
"""
import time
from collections import OrderedDict
from typing import Callable, Optional, Protocol

from libs.common.config import Settings
from libs.common.logging import get_logger

logger = get_logger(__name__)


class CacheBackend(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def clear(self) -> None: ...


class MemoryTTLCache:
    """Bounded in-process cache; oldest entries are evicted first."""

    def __init__(
        self,
        max_entries: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, str]] = OrderedDict()

    async def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            self._entries.pop(key, None)
            return None
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            self._entries.pop(key, None)
            return
        self._entries[key] = (self._clock() + ttl_seconds, value)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class RedisCache:
    """Redis-backed cache; keys are namespaced with ``prefix``."""

    def __init__(self, client, prefix: str = "cache:"):
        self._client = client
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    async def get(self, key: str) -> Optional[str]:
        try:
            value = await self._client.get(self._key(key))
        except Exception as e:
            logger.warning(f"Cache get failed for {key}: {e}")
            return None
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            await self.delete(key)
            return
        try:
            await self._client.set(self._key(key), value, ex=ttl_seconds)
        except Exception as e:
            logger.warning(f"Cache set failed for {key}: {e}")

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(self._key(key))
        except Exception as e:
            logger.warning(f"Cache delete failed for {key}: {e}")

    async def clear(self) -> None:
        try:
            async for key in self._client.scan_iter(match=f"{self.prefix}*"):
                await self._client.delete(key)
        except Exception as e:
            logger.warning(f"Cache clear failed for prefix {self.prefix}: {e}")


def build_cache(settings: Settings, prefix: str = "cache:") -> CacheBackend:
    """Pick the cache backend for the current settings."""
    if settings.REDIS_URL:
        from redis import asyncio as aioredis

        client = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
        return RedisCache(client, prefix=prefix)
    return MemoryTTLCache()
