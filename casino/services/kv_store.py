"""Shared TTL key-value store.

RedisStore is used whenever REDIS_URL is configured, so every worker sees
the same idempotency records and previews. MemoryStore keeps the same
contract inside one process for local runs and tests.
"""

import asyncio
import logging
import time
from typing import Callable, Dict, Optional, Tuple

from redis.asyncio import Redis


class MemoryStore:
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._data: Dict[str, Tuple[str, float]] = {}
        self._lock = asyncio.Lock()
        self._clock = clock

    def _live(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self._clock():
            del self._data[key]
            return None
        return value

    async def set_if_absent(self, key: str, value: str, ttl_seconds: float) -> bool:
        async with self._lock:
            if self._live(key) is not None:
                return False
            self._data[key] = (value, self._clock() + ttl_seconds)
            return True

    async def set(self, key: str, value: str, ttl_seconds: float) -> None:
        async with self._lock:
            self._data[key] = (value, self._clock() + ttl_seconds)

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            return self._live(key)

    async def get_and_delete(self, key: str) -> Optional[str]:
        async with self._lock:
            value = self._live(key)
            self._data.pop(key, None)
            return value

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._data.pop(key, None)

    async def purge_expired(self) -> int:
        """Drop expired keys. Run periodically by the scheduler."""
        async with self._lock:
            now = self._clock()
            expired = [key for key, (_, expires_at) in self._data.items() if expires_at <= now]
            for key in expired:
                del self._data[key]
        if expired:
            logging.debug(f"Purged {len(expired)} expired keys from the memory store")
        return len(expired)

    async def close(self) -> None:
        self._data.clear()


class RedisStore:
    def __init__(self, redis: Redis):
        self.redis = redis

    @classmethod
    def from_url(cls, url: str) -> "RedisStore":
        return cls(Redis.from_url(url, decode_responses=True, health_check_interval=30))

    async def set_if_absent(self, key: str, value: str, ttl_seconds: float) -> bool:
        return bool(await self.redis.set(key, value, nx=True, px=int(ttl_seconds * 1000)))

    async def set(self, key: str, value: str, ttl_seconds: float) -> None:
        await self.redis.set(key, value, px=int(ttl_seconds * 1000))

    async def get(self, key: str) -> Optional[str]:
        return await self.redis.get(key)

    async def get_and_delete(self, key: str) -> Optional[str]:
        return await self.redis.getdel(key)

    async def delete(self, key: str) -> None:
        await self.redis.delete(key)

    async def purge_expired(self) -> int:
        # Redis expires keys itself
        return 0

    async def close(self) -> None:
        await self.redis.aclose()
