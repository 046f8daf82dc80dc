"""Status aggregator: branch and change counts for every clone in a workspace."""

from __future__ import annotations

import os

from anyio import to_thread
from loguru import logger

from nut.engine.errors import NutError
from nut.engine.git import GitClient
from nut.engine.models import StatusReport, Workspace, WorkspaceStatus
from nut.engine.pool import fan_out
from nut.engine.workspaces import WorkspaceStore


def default_parallelism() -> int:
    return os.cpu_count() or 4


class StatusAggregator:
    def __init__(self, store: WorkspaceStore, git: GitClient, *, parallel: int | None = None) -> None:
        self._store = store
        self._git = git
        self._parallel = parallel or default_parallelism()

    async def collect(self, workspace: Workspace) -> WorkspaceStatus:
        """Inspect every clone concurrently; entries come back in canonical order.

        A clone that cannot be inspected yields an entry with ``error`` set
        instead of counts and does not affect the others.
        """
        names = await to_thread.run_sync(self._store.clone_names, workspace)

        async def _one(name: str) -> StatusReport:
            try:
                tree = await self._git.working_tree_status(workspace.clone_path(name))
            except (NutError, OSError) as exc:
                logger.warning("Cannot inspect {}: {}", name, exc)
                return StatusReport(repo_name=name, error=str(exc))
            return StatusReport(
                repo_name=name,
                branch=tree.branch,
                staged_count=tree.staged,
                modified_count=tree.modified,
                untracked_count=tree.untracked,
            )

        entries = await fan_out(names, _one, limit=self._parallel)
        return WorkspaceStatus.from_entries(entries)
