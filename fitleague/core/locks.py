"""Mutual exclusion helpers: keyed in-process locks and PostgreSQL advisory locks."""
from __future__ import annotations

import asyncio
import hashlib
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from fitleague.database import is_postgres

logger = logging.getLogger(__name__)


def advisory_key(namespace: str, value: object) -> int:
    """Stable signed 64-bit key for pg advisory locks."""
    digest = hashlib.blake2b(f"{namespace}:{value}".encode(), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


class KeyedLock:
    """One asyncio.Lock per key, dropped once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: object) -> AsyncIterator[None]:
        name = str(key)
        lock = self._locks.setdefault(name, asyncio.Lock())
        self._waiters[name] = self._waiters.get(name, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[name] -= 1
            if self._waiters[name] == 0:
                del self._waiters[name]
                self._locks.pop(name, None)

    def is_held(self, key: object) -> bool:
        lock = self._locks.get(str(key))
        return bool(lock and lock.locked())


async def acquire_xact_lock(db: AsyncSession, namespace: str, value: object) -> None:
    """Block until the transaction-scoped advisory lock is ours. No-op off PostgreSQL."""
    if not is_postgres(db):
        return
    await db.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": advisory_key(namespace, value)})


class RunGuard:
    """Skip-if-running guard for periodic jobs.

    In-process the guard is an asyncio.Lock; on PostgreSQL a session-level
    advisory lock also keeps other processes from starting the same job.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def try_run(self, db: AsyncSession | None = None) -> AsyncIterator[bool]:
        if self._lock.locked():
            logger.info("%s already running; skipping this cycle", self.name)
            yield False
            return
        async with self._lock:
            if db is None or not is_postgres(db):
                yield True
                return
            key = advisory_key("job", self.name)
            locked = bool((await db.execute(text("SELECT pg_try_advisory_lock(:key)"), {"key": key})).scalar())
            if not locked:
                logger.info("%s lock busy in another process; skipping this cycle", self.name)
                yield False
                return
            try:
                yield True
            finally:
                await db.execute(text("SELECT pg_advisory_unlock(:key)"), {"key": key})
                await db.commit()
