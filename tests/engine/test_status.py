from __future__ import annotations

import subprocess
from pathlib import Path

import anyio
import pytest

from nut.engine.git import GitClient, TreeStatus
from nut.engine.models import Workspace
from nut.engine.status import StatusAggregator
from nut.engine.workspaces import WorkspaceStore

pytestmark = pytest.mark.git


@pytest.fixture
def workspace(store: WorkspaceStore) -> Workspace:
    return store.create("status")


async def test_untracked_and_clean(store, workspace, make_clone) -> None:
    x = make_clone(workspace.directory, "org/x")
    make_clone(workspace.directory, "org/y")
    (x / "notes.txt").write_text("todo\n")

    report = await StatusAggregator(store, GitClient()).collect(workspace)

    assert report.total == 2
    assert report.clean_count == 1
    assert [e.repo_name for e in report.entries] == ["org/x", "org/y"]
    x_entry, y_entry = report.entries
    assert x_entry.branch == "main"
    assert (x_entry.staged_count, x_entry.modified_count, x_entry.untracked_count) == (0, 0, 1)
    assert x_entry.has_changes
    assert y_entry.is_clean
    assert [e.repo_name for e in report.changed] == ["org/x"]


async def test_staged_and_modified(store, workspace, make_clone) -> None:
    path = make_clone(workspace.directory, "org/x")
    (path / "README.md").write_text("changed\n")
    (path / "new.py").write_text("x = 1\n")
    subprocess.run(["git", "add", "new.py"], cwd=path, check=True)

    report = await StatusAggregator(store, GitClient()).collect(workspace)

    entry = report.entries[0]
    assert (entry.staged_count, entry.modified_count, entry.untracked_count) == (1, 1, 0)


async def test_detached_head(store, workspace, make_clone) -> None:
    path = make_clone(workspace.directory, "org/x")
    subprocess.run(["git", "checkout", "-q", "--detach"], cwd=path, check=True)

    report = await StatusAggregator(store, GitClient()).collect(workspace)

    assert report.entries[0].branch.startswith("(detached at ")
    assert report.clean_count == 1


async def test_missing_clone_is_reported_not_raised(store, workspace, make_clone) -> None:
    make_clone(workspace.directory, "org/y")
    store.add_repositories(workspace, ["org/gone", "org/y"])

    report = await StatusAggregator(store, GitClient()).collect(workspace)

    assert [e.repo_name for e in report.entries] == ["org/gone", "org/y"]
    assert report.entries[0].error is not None
    assert "missing" in report.entries[0].error
    assert report.clean_count == 1
    assert [e.repo_name for e in report.errored] == ["org/gone"]


async def test_empty_workspace(store, workspace) -> None:
    report = await StatusAggregator(store, GitClient()).collect(workspace)

    assert report.total == 0
    assert report.entries == []


class SlowFirstGit(GitClient):
    """Earlier repositories answer later, so completion order is reversed."""

    def __init__(self, delays: dict[str, float]) -> None:
        self.delays = delays
        self.finished: list[str] = []

    async def working_tree_status(self, path: Path) -> TreeStatus:
        name = f"{path.parent.name}/{path.name}"
        await anyio.sleep(self.delays[name])
        self.finished.append(name)
        return TreeStatus(branch="main")


async def test_entries_follow_canonical_order(store, workspace) -> None:
    names = ["org/a", "org/b", "org/c", "org/d"]
    for name in names:
        (workspace.directory / name / ".git").mkdir(parents=True)
    git = SlowFirstGit({"org/a": 0.08, "org/b": 0.06, "org/c": 0.04, "org/d": 0.0})

    report = await StatusAggregator(store, git, parallel=4).collect(workspace)

    assert git.finished == list(reversed(names))
    assert [e.repo_name for e in report.entries] == names
