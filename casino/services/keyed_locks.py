import asyncio
from contextlib import asynccontextmanager
from typing import Dict


class KeyedLocks:
    """One asyncio.Lock per key, dropped again once nobody holds or waits on it."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._holders: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, key: str):
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
            self._holders[key] = 0
        lock = self._locks[key]
        self._holders[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if self._holders[key] == 0:
                del self._holders[key]
                del self._locks[key]
