"""Per-owner critical sections for balance-changing work."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)


class OwnerLockRegistry:
    """Hands out one ``asyncio.Lock`` per wallet owner.

    Serializes read-balance/append/commit for a single owner inside this
    process; the ledger's conditional version update covers other processes.
    Locks are dropped once nobody holds or waits on them.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, owner_id: str) -> AsyncIterator[None]:
        lock = self._locks.get(owner_id)
        if lock is None:
            lock = self._locks[owner_id] = asyncio.Lock()
        self._waiters[owner_id] = self._waiters.get(owner_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._waiters[owner_id] - 1
            if remaining:
                self._waiters[owner_id] = remaining
            else:
                self._waiters.pop(owner_id, None)
                self._locks.pop(owner_id, None)

    def __len__(self) -> int:
        return len(self._locks)
