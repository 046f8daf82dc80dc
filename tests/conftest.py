"""Shared test fixtures: throwaway git remotes, an isolated config file, and a
workspace store rooted in ``tmp_path``.

Tests that shell out to git are marked ``@pytest.mark.git`` and skipped when
no git binary is available.
"""

from __future__ import annotations

import os
import shutil
import subprocess
from collections.abc import Iterator
from pathlib import Path

import pytest

from nut.engine.git import GitClient
from nut.engine.models import RepoKey
from nut.engine.settings import _get_settings_cached
from nut.engine.workspaces import WorkspaceStore


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    if shutil.which("git") is not None:
        return
    skip = pytest.mark.skip(reason="git binary not available")
    for item in items:
        if "git" in item.keywords:
            item.add_marker(skip)


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Keep tests away from the user's ``~/.nut.json``, git identity and entered workspace."""
    for name in list(os.environ):
        if name.startswith("NUT_") or name == "GITHUB_TOKEN":
            monkeypatch.delenv(name)
    monkeypatch.setenv("NUT_CONFIG_FILE", str(tmp_path / "nut.json"))
    monkeypatch.setenv("GIT_AUTHOR_NAME", "nut tests")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "tests@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "nut tests")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "tests@example.com")
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    _get_settings_cached.cache_clear()
    yield
    _get_settings_cached.cache_clear()


def run_git(cwd: Path, *args: str) -> str:
    result = subprocess.run(["git", *args], cwd=cwd, check=True, capture_output=True, text=True)
    return result.stdout


# ---------------------------------------------------------------------------
# Remotes
# ---------------------------------------------------------------------------


class Remotes:
    """Local repositories standing in for network remotes, addressed by ``owner/repo``."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def path(self, full_name: str) -> Path:
        return self.root / full_name

    def create(self, full_name: str) -> Path:
        path = self.path(full_name)
        path.mkdir(parents=True)
        run_git(path, "init", "-q", "-b", "main")
        self.commit(full_name, "README.md")
        return path

    def commit(self, full_name: str, filename: str, content: str = "hello\n") -> str:
        path = self.path(full_name)
        (path / filename).write_text(content)
        run_git(path, "add", filename)
        run_git(path, "commit", "-q", "-m", f"add {filename}")
        return run_git(path, "rev-parse", "HEAD").strip()

    def git(self, full_name: str, *args: str) -> str:
        return run_git(self.path(full_name), *args)

    def url(self, key: RepoKey) -> str:
        return str(self.path(key.full_name))


@pytest.fixture
def remotes(tmp_path: Path) -> Remotes:
    return Remotes(tmp_path / "remotes")


class CountingGit(GitClient):
    """GitClient that records how often the network-touching operations run."""

    def __init__(self) -> None:
        self.clones = 0
        self.fetches = 0
        self.ls_remotes = 0

    async def clone_bare(self, remote: str, dest: Path) -> None:
        self.clones += 1
        await super().clone_bare(remote, dest)

    async def fetch(self, mirror: Path, remote: str) -> None:
        self.fetches += 1
        await super().fetch(mirror, remote)

    async def ls_remote(self, remote: str, cwd: Path) -> dict[str, str]:
        self.ls_remotes += 1
        return await super().ls_remote(remote, cwd)


@pytest.fixture
def counting_git() -> CountingGit:
    return CountingGit()


# ---------------------------------------------------------------------------
# Workspaces
# ---------------------------------------------------------------------------


@pytest.fixture
def store(tmp_path: Path) -> WorkspaceStore:
    root = tmp_path / "data"
    root.mkdir()
    return WorkspaceStore(root)


@pytest.fixture
def make_clone():
    """Create a plain git working copy at ``workspace/owner/repo`` without going through the cache."""

    def _make(workspace_dir: Path, full_name: str) -> Path:
        path = workspace_dir / full_name
        path.mkdir(parents=True)
        run_git(path, "init", "-q", "-b", "main")
        (path / "README.md").write_text("hello\n")
        run_git(path, "add", "README.md")
        run_git(path, "commit", "-q", "-m", "init")
        return path

    return _make
