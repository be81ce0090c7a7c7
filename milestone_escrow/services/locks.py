"""Per-project mutual exclusion for lifecycle transitions."""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator
from weakref import WeakValueDictionary


class ProjectLockRegistry:
    """Hands out one ``asyncio.Lock`` per project id.

    Entries disappear once no coroutine holds a reference to the lock, so
    the registry does not grow with the number of projects ever touched.
    """

    def __init__(self) -> None:
        self._locks: WeakValueDictionary[int, asyncio.Lock] = WeakValueDictionary()

    def lock_for(self, project_id: int) -> asyncio.Lock:
        lock = self._locks.get(project_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[project_id] = lock
        return lock

    @asynccontextmanager
    async def hold(self, project_id: int) -> AsyncIterator[None]:
        lock = self.lock_for(project_id)
        async with lock:
            yield

    def __len__(self) -> int:
        return len(self._locks)


__all__ = ["ProjectLockRegistry"]
