"""Per-request session directories for messaging backend credentials."""

from __future__ import annotations

import asyncio
import logging
import shutil
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

logger = logging.getLogger(__name__)


class UnsafeSessionNameError(ValueError):
    """Raised when a raw number cannot be used as a directory name."""


class SessionDirectories:
    """Maps raw caller input to credential directories under one root.

    The directory is named after the raw query value, before any
    normalization, so ``"1 (650) 253-0000"`` and ``"16502530000"`` get
    different directories.
    """

    def __init__(self, root: str | Path = ".") -> None:
        self.root = Path(root)

    def path_for(self, raw_number: str) -> Path:
        if (
            not raw_number
            or raw_number in (".", "..")
            or "/" in raw_number
            or "\\" in raw_number
            or "\x00" in raw_number
        ):
            raise UnsafeSessionNameError(raw_number)
        return self.root / raw_number

    async def remove(self, path: Path) -> bool:
        """Delete ``path`` recursively. Returns False when nothing was there."""
        return await asyncio.to_thread(remove_tree, path)


def remove_tree(path: Path) -> bool:
    if not path.exists():
        return False
    try:
        shutil.rmtree(path)
    except OSError as exc:
        logger.error("Failed to remove session directory %s: %s", path, exc)
        return False
    return True


class SessionBusyError(TimeoutError):
    """Raised when a session directory stays locked past the caller's deadline."""


class SessionLocks:
    """One asyncio.Lock per session directory, dropped once nobody holds it.

    ``deadline`` is an event-loop time; waiting for the lock past it raises
    ``SessionBusyError``.
    """

    def __init__(self) -> None:
        self._locks: dict[Path, asyncio.Lock] = {}
        self._users: dict[Path, int] = {}

    @asynccontextmanager
    async def hold(self, path: Path, deadline: float | None = None) -> AsyncIterator[None]:
        lock = self._locks.setdefault(path, asyncio.Lock())
        self._users[path] = self._users.get(path, 0) + 1
        try:
            try:
                async with asyncio.timeout_at(deadline):
                    await lock.acquire()
            except TimeoutError as exc:
                raise SessionBusyError(path) from exc
            try:
                yield
            finally:
                lock.release()
        finally:
            self._users[path] -= 1
            if not self._users[path]:
                del self._users[path]
                del self._locks[path]

    def __contains__(self, path: object) -> bool:
        return path in self._locks
