"""
Key-value stores with explicit TTL.

The geocoder depends on the :class:`KeyValueStore` protocol only; the app
factory decides which implementation to inject.

* :class:`RedisKeyValueStore` -- shared cache across workers.
* :class:`MemoryKeyValueStore` -- per-process fallback, bounded to
  ``max_entries`` with oldest-first eviction.
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from typing import Callable, Optional, Protocol

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    async def delete(self, key: str) -> None: ...


class RedisKeyValueStore:
    def __init__(self, client: aioredis.Redis, prefix: str = "slidebid:"):
        self.client = client
        self.prefix = prefix

    async def get(self, key: str) -> Optional[str]:
        return await self.client.get(self.prefix + key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self.client.set(self.prefix + key, value, ex=ttl_seconds)

    async def delete(self, key: str) -> None:
        await self.client.delete(self.prefix + key)

    async def close(self) -> None:
        await self.client.aclose()


class MemoryKeyValueStore:
    def __init__(
        self,
        max_entries: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, tuple[str, float]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            self._entries.pop(key, None)
            return
        # Re-setting a key counts as a fresh insert for eviction order.
        self._entries.pop(key, None)
        self._entries[key] = (value, self._clock() + ttl_seconds)
        self._evict()

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def _evict(self) -> None:
        now = self._clock()
        expired = [k for k, (_, exp) in self._entries.items() if now >= exp]
        for key in expired:
            del self._entries[key]
        while len(self._entries) > self.max_entries:
            key, _ = self._entries.popitem(last=False)
            logger.debug("Evicted cache entry %s", key)
