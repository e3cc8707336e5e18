"""Per-user asyncio locks serializing profile mutations within one process."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class KeyedLock:
    """Lazily created ``asyncio.Lock`` per key.

    A key's lock is dropped once nobody holds or waits on it, so the table
    only tracks users with work in flight. Locks are not reentrant: code
    already holding a user's lock must call the unlocked internals rather
    than re-entering a public operation.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        # holders plus waiters per key
        self._users: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, key: object) -> AsyncIterator[None]:
        name = str(key)
        lock = self._locks.setdefault(name, asyncio.Lock())
        self._users[name] = self._users.get(name, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[name] -= 1
            if not self._users[name]:
                del self._users[name]
                del self._locks[name]

    def locked(self, key: object) -> bool:
        lock = self._locks.get(str(key))
        return lock is not None and lock.locked()
