"""Per-path mutual exclusion for file-mutating operations."""

import asyncio
import threading
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator

from audiopruner.utils.logger import get_logger

logger = get_logger(__name__)


def normalize_lock_key(path: str | Path) -> str:
    """Absolute, symlink-resolved form of a path used as registry key."""
    return str(Path(path).resolve())


@dataclass
class PathLock:
    """A held (or once-held) lock for one path."""

    key: str
    lock: asyncio.Lock
    released: bool = False


class PathLockRegistry:
    """Process-wide map from absolute file path to an ``asyncio.Lock``.

    Entries are created on first use and never removed. Memory therefore
    grows with the number of distinct paths ever touched (one small lock
    each); in exchange there is no window where a waiter holds a lock that
    another caller has just evicted and replaced.
    """

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, key: str) -> asyncio.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = asyncio.Lock()
                self._locks[key] = lock
            return lock

    async def acquire(self, path: str | Path) -> PathLock:
        """Wait until ``path`` is free and hold it.

        Args:
            path: File path to lock

        Returns:
            Handle to pass to :meth:`release`
        """
        key = normalize_lock_key(path)
        lock = self._lock_for(key)
        if lock.locked():
            logger.debug("Waiting for path lock", path=key)
        await lock.acquire()
        logger.debug("Path lock acquired", path=key)
        return PathLock(key=key, lock=lock)

    def release(self, handle: PathLock) -> None:
        """Release a handle. Releasing twice is harmless.

        A handle only ever releases its own acquisition, so a stale handle
        cannot free the lock for a later holder.
        """
        if handle.released:
            logger.debug("Path lock already released", path=handle.key)
            return
        handle.released = True
        try:
            handle.lock.release()
        except RuntimeError:
            logger.debug("Path lock already released", path=handle.key)
            return
        logger.debug("Path lock released", path=handle.key)

    @asynccontextmanager
    async def hold(self, path: str | Path) -> AsyncIterator[PathLock]:
        """Hold the lock for ``path`` for the duration of the block."""
        handle = await self.acquire(path)
        try:
            yield handle
        finally:
            self.release(handle)

    def held(self, path: str | Path) -> bool:
        """Whether ``path`` is currently locked."""
        with self._guard:
            lock = self._locks.get(normalize_lock_key(path))
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
