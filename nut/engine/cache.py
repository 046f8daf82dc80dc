"""Shared bare-mirror cache.

Layout::

    {cache_root}/{host}/{owner}/{repo}/              bare mirror (git clone --mirror)
    {cache_root}/{host}/{owner}/{repo}/nut-state.json last known remote refs
    {cache_root}/.locks/{host}/{owner}/{repo}.lock    per-mirror advisory lock

Freshness is decided by reference comparison: ``git ls-remote`` is compared
with the ref set recorded after the last clone or fetch, and a fetch only
happens when they differ.  Repeated ``ensure_fresh`` calls against an
unchanged remote therefore cost one ls-remote each and never fetch.

The fast path (mirror present, intact and fresh) takes no lock.  Anything
that mutates a mirror runs under the per-key lock and re-checks freshness
after acquiring it, so callers racing on the same repository produce exactly
one clone or fetch.  New mirrors are built in a sibling staging directory and
renamed into place, so an interrupted clone never leaves a half-written
mirror behind.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from datetime import UTC, datetime
from functools import partial
from pathlib import Path

import anyio
from anyio import to_thread
from loguru import logger
from pydantic import ValidationError

from nut.engine.errors import MirrorCorruptError
from nut.engine.fsutil import atomic_write, rmtree, staging_path
from nut.engine.git import GitClient
from nut.engine.locks import KeyedLock
from nut.engine.models import CacheAction, CacheEntry, GitProtocol, MirrorState, RepoKey

STATE_FILE = "nut-state.json"

RemoteUrlFactory = Callable[[RepoKey], str]


def clone_url_factory(protocol: GitProtocol) -> RemoteUrlFactory:
    """Build network clone URLs (``https://host/o/r.git`` or ``git@host:o/r.git``)."""

    def _url(key: RepoKey) -> str:
        return protocol.to_clone_url(key.host, key.full_name)

    return _url


def _utcnow() -> datetime:
    return datetime.now(UTC)


class CacheManager:
    """Maintains one mirror per remote repository, shared by all workspaces."""

    def __init__(
        self,
        cache_root: Path,
        git: GitClient,
        *,
        remote_url: RemoteUrlFactory,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.cache_root = cache_root
        self.remote_url = remote_url
        self._git = git
        self._clock = clock
        self._locks = KeyedLock(cache_root / ".locks")

    def mirror_path(self, key: RepoKey) -> Path:
        return self.cache_root / key.host / key.owner / key.repo

    def _lock_key(self, key: RepoKey) -> str:
        return f"{key.host}/{key.owner}/{key.repo}"

    # -- Public API ------------------------------------------------------------

    async def ensure_fresh(self, key: RepoKey) -> CacheEntry:
        """Make sure the mirror for ``key`` exists and matches the remote.

        Raises ``RemoteUnreachableError`` if the remote cannot be listed,
        fetched or cloned.  A corrupt mirror is rebuilt from scratch.
        """
        mirror = self.mirror_path(key)
        remote = self.remote_url(key)

        if mirror.is_dir():
            try:
                await self._git.verify_mirror(mirror)
            except MirrorCorruptError:
                pass  # rebuilt below, under the lock
            else:
                state = await to_thread.run_sync(self._read_state, mirror)
                if state is not None and await self._git.ls_remote(remote, mirror) == state.refs:
                    return CacheEntry(key=key, mirror_path=mirror, last_verified_at=self._clock())

        async with self._locks.hold(self._lock_key(key)):
            return await self._refresh_locked(key, mirror, remote)

    def lookup(self, key: RepoKey) -> CacheEntry | None:
        """Return the cache entry for ``key`` without touching the network."""
        mirror = self.mirror_path(key)
        if not mirror.is_dir():
            return None
        state = self._read_state(mirror)
        return CacheEntry(
            key=key,
            mirror_path=mirror,
            last_verified_at=state.last_verified_at if state else None,
        )

    # -- Mutation (lock held) --------------------------------------------------

    async def _refresh_locked(self, key: RepoKey, mirror: Path, remote: str) -> CacheEntry:
        rebuilt = False
        if mirror.is_dir():
            try:
                await self._git.verify_mirror(mirror)
            except MirrorCorruptError as exc:
                logger.warning("{}; rebuilding mirror for {}", exc, key)
                await to_thread.run_sync(rmtree, mirror)
                rebuilt = True
            else:
                known = await to_thread.run_sync(self._read_state, mirror)
                known_refs = known.refs if known is not None else await self._git.mirror_refs(mirror)
                if not await self._git.fetch_if_stale(mirror, remote, known_refs):
                    return await self._record_unchanged(key, mirror, known or MirrorState(refs=known_refs))
                logger.info("Fetched updates into mirror {}", key)
                return await self._snapshot(key, mirror, CacheAction.FETCHED)

        await self._clone(remote, mirror)
        logger.info("Cloned mirror {} from {}", key, remote)
        return await self._snapshot(key, mirror, CacheAction.REBUILT if rebuilt else CacheAction.CLONED)

    async def _clone(self, remote: str, mirror: Path) -> None:
        staging = await to_thread.run_sync(staging_path, mirror)
        try:
            await self._git.clone_bare(remote, staging)
            await to_thread.run_sync(os.rename, staging, mirror)
        finally:
            with anyio.CancelScope(shield=True):
                await to_thread.run_sync(rmtree, staging)

    async def _snapshot(self, key: RepoKey, mirror: Path, action: CacheAction) -> CacheEntry:
        refs = await self._git.mirror_refs(mirror)
        state = MirrorState(refs=refs, last_verified_at=self._clock())
        await self._write_state(mirror, state)
        return CacheEntry(key=key, mirror_path=mirror, last_verified_at=state.last_verified_at, action=action)

    async def _record_unchanged(self, key: RepoKey, mirror: Path, state: MirrorState) -> CacheEntry:
        state = state.model_copy(update={"last_verified_at": self._clock()})
        await self._write_state(mirror, state)
        return CacheEntry(key=key, mirror_path=mirror, last_verified_at=state.last_verified_at)

    # -- State file ------------------------------------------------------------

    async def _write_state(self, mirror: Path, state: MirrorState) -> None:
        await to_thread.run_sync(partial(atomic_write, mirror / STATE_FILE, state.model_dump_json(indent=2)))

    def _read_state(self, mirror: Path) -> MirrorState | None:
        path = mirror / STATE_FILE
        try:
            return MirrorState.model_validate_json(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except ValidationError:
            logger.warning("Ignoring unreadable mirror state {}", path)
            return None
