"""Repository provisioner.

Guarantees a working clone of a repository exists in a workspace.  The
network is only touched through the cache (``ensure_fresh``); the working
clone itself is a ``git clone --local`` of the mirror, built in a staging
directory and renamed into place so an interrupted clone never leaves a
half-populated ``{owner}/{repo}`` behind.
"""

from __future__ import annotations

import os
from collections.abc import Callable, Sequence

import anyio
from anyio import to_thread
from loguru import logger

from nut.engine.cache import CacheManager
from nut.engine.errors import NutError
from nut.engine.fsutil import rmtree, staging_path
from nut.engine.git import GitClient
from nut.engine.models import ProvisionResult, ProvisionSummary, RepoKey, RepositoryClone, Workspace
from nut.engine.pool import fan_out
from nut.engine.workspaces import WorkspaceStore


class RepositoryProvisioner:
    def __init__(
        self,
        store: WorkspaceStore,
        cache: CacheManager,
        git: GitClient,
        *,
        host: str = "github.com",
        parallel: int = 8,
    ) -> None:
        self._store = store
        self._cache = cache
        self._git = git
        self._host = host
        self._parallel = parallel

    async def provision(self, workspace: Workspace, repo_name: str, *, update: bool = False) -> RepositoryClone:
        """Provision one repository.  Errors propagate to the caller."""
        key = RepoKey.parse(repo_name, self._host)
        clone, _ = await self._provision(workspace, key, update=update)
        await to_thread.run_sync(self._store.add_repositories, workspace, [key.full_name])
        return clone

    async def provision_many(
        self,
        workspace: Workspace,
        repo_names: Sequence[str],
        *,
        update: bool = False,
        on_result: Callable[[ProvisionResult], None] | None = None,
    ) -> ProvisionSummary:
        """Provision a batch with bounded concurrency.

        Each repository succeeds or fails on its own; failures are attached to
        that repository's result.  Successful repositories are recorded in the
        workspace in input order.  If the batch is cancelled part-way, the
        repositories that already finished are still recorded, so the record
        always matches the clones on disk.
        """
        names = list(dict.fromkeys(repo_names))
        done: dict[int, ProvisionResult] = {}

        async def _one(name: str) -> ProvisionResult:
            try:
                key = RepoKey.parse(name, self._host)
                clone, created = await self._provision(workspace, key, update=update)
            except (NutError, OSError) as exc:
                logger.warning("Provisioning {} failed: {}", name, exc)
                return ProvisionResult(repo_name=name, error=str(exc))
            return ProvisionResult(repo_name=key.full_name, clone=clone, created=created)

        def _collect(index: int, result: ProvisionResult) -> None:
            done[index] = result
            if on_result:
                on_result(result)

        try:
            results = await fan_out(names, _one, limit=self._parallel, on_result=_collect)
        finally:
            succeeded = [done[i].repo_name for i in sorted(done) if not done[i].failed]
            if succeeded:
                with anyio.CancelScope(shield=True):
                    await to_thread.run_sync(self._store.add_repositories, workspace, succeeded)
        return ProvisionSummary(results=results)

    async def _provision(self, workspace: Workspace, key: RepoKey, *, update: bool) -> tuple[RepositoryClone, bool]:
        entry = await self._cache.ensure_fresh(key)
        dest = workspace.clone_path(key.full_name)
        clone = RepositoryClone(name=key.full_name, workspace_id=workspace.id, local_path=dest, origin=entry)

        if await to_thread.run_sync((dest / ".git").exists):
            if update:
                logger.info("Updating {} from mirror", key.full_name)
                await self._git.update_clone(dest, entry.mirror_path)
            return clone, False

        staging = await to_thread.run_sync(staging_path, dest)
        try:
            await self._git.clone_local(entry.mirror_path, staging, origin_url=self._cache.remote_url(key))
            await to_thread.run_sync(os.rename, staging, dest)
        finally:
            with anyio.CancelScope(shield=True):
                await to_thread.run_sync(rmtree, staging)
        logger.info("Cloned {} into workspace {}", key.full_name, workspace.id)
        return clone, True
