"""Per-key exclusive advisory locks.

Two layers guard each key:

- an in-process ``anyio.Lock`` so concurrent tasks in this process queue up
  without touching the filesystem, and
- an ``fcntl.flock`` on ``{lock_dir}/{key}.lock`` so separate ``nut``
  processes (two shells importing into different workspaces) serialize too.

A caller that finds the lock held waits; it never fails because of
contention.  The OS drops a flock when its holder dies, so a killed process
cannot leave a stale lock behind.
"""

from __future__ import annotations

import fcntl
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import anyio
from loguru import logger

POLL_INTERVAL = 0.05


class KeyedLock:
    def __init__(self, lock_dir: Path) -> None:
        self._lock_dir = lock_dir
        self._local: dict[str, anyio.Lock] = {}

    def path_for(self, key: str) -> Path:
        return self._lock_dir / f"{key}.lock"

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        """Hold the exclusive lock for ``key`` for the duration of the block."""
        local = self._local.setdefault(key, anyio.Lock())
        async with local:
            fd = await self._acquire_file_lock(self.path_for(key))
            try:
                yield
            finally:
                fcntl.flock(fd, fcntl.LOCK_UN)
                os.close(fd)

    async def _acquire_file_lock(self, path: Path) -> int:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o644)
        waited = False
        try:
            while True:
                try:
                    fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                except BlockingIOError:
                    if not waited:
                        logger.info("Waiting for lock {}", path)
                        waited = True
                    await anyio.sleep(POLL_INTERVAL)
                else:
                    return fd
        except BaseException:
            os.close(fd)
            raise
