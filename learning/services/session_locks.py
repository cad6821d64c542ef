"""
Per-session mutual exclusion.

One asyncio.Lock per (user, course) pair, held across a whole
load -> evaluate -> mutate -> save sequence. Locks are dropped from the
registry once nobody holds or waits for them.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator


class SessionLockRegistry:
    """Hands out per-session locks within one event loop."""

    def __init__(self):
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}
        self._users: dict[tuple[str, str], int] = {}

    @asynccontextmanager
    async def hold(self, course_id: str, user_id: str) -> AsyncIterator[None]:
        key = (user_id, course_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._users[key] = self._users.get(key, 0) + 1

        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def is_locked(self, course_id: str, user_id: str) -> bool:
        lock = self._locks.get((user_id, course_id))
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)
