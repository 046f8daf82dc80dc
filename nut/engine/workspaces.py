"""Workspace store.

Layout::

    {data_root}/{workspace_id}/.nut/workspace.json   metadata record
    {data_root}/{workspace_id}/{owner}/{repo}/       repository clones

Workspace ids are ULIDs: their lexical order is their creation order, so
listing needs no extra sort key.  Everything here is local filesystem work;
nothing contacts the network, and nothing touches the mirror cache.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from pathlib import Path

from loguru import logger
from pydantic import ValidationError
from ulid import ULID

from nut.engine.errors import InvalidWorkspaceIdError, NotInWorkspaceError, WorkspaceNotFoundError
from nut.engine.fsutil import atomic_write, rmtree
from nut.engine.models import Workspace, WorkspaceRecord

META_DIR = ".nut"
RECORD_FILE = "workspace.json"
MISSING_DESCRIPTION = "(missing description)"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def parse_workspace_id(workspace_id: str) -> ULID:
    """Validate a workspace id.  Raises ``InvalidWorkspaceIdError``."""
    try:
        return ULID.from_str(workspace_id)
    except ValueError:
        raise InvalidWorkspaceIdError(workspace_id) from None


def _is_workspace_id(name: str) -> bool:
    try:
        ULID.from_str(name)
    except ValueError:
        return False
    return True


class WorkspaceStore:
    def __init__(self, data_root: Path, *, clock: Callable[[], datetime] = _utcnow) -> None:
        self.data_root = data_root
        self._clock = clock

    def _record_path(self, directory: Path) -> Path:
        return directory / META_DIR / RECORD_FILE

    # -- Create / delete -------------------------------------------------------

    def create(self, description: str) -> Workspace:
        created_at = self._clock()
        workspace_id = str(ULID.from_datetime(created_at))
        directory = self.data_root / workspace_id
        (directory / META_DIR).mkdir(parents=True, exist_ok=False)

        workspace = Workspace(
            id=workspace_id,
            description=description,
            created_at=created_at,
            directory=directory,
        )
        self._write(workspace)
        logger.info("Created workspace {} at {}", workspace_id, directory)
        return workspace

    def delete(self, workspace_id: str) -> None:
        """Remove the workspace directory tree.  Raises ``WorkspaceNotFoundError``."""
        workspace = self.get(workspace_id)
        rmtree(workspace.directory)
        logger.info("Deleted workspace {}", workspace_id)

    # -- Query -----------------------------------------------------------------

    def get(self, workspace_id: str) -> Workspace:
        parse_workspace_id(workspace_id)
        directory = self.data_root / workspace_id
        if not directory.is_dir():
            raise WorkspaceNotFoundError(workspace_id)
        return self._load(directory)

    def list(self) -> list[Workspace]:
        """All workspaces, newest first."""
        if not self.data_root.is_dir():
            return []
        names = [p.name for p in self.data_root.iterdir() if p.is_dir() and _is_workspace_id(p.name)]
        return [self._load(self.data_root / name) for name in sorted(names, reverse=True)]

    def resolve(self, workspace_id: str | None = None, *, cwd: Path | None = None) -> Workspace:
        """Return the explicit workspace, or the one enclosing ``cwd``.

        Walks upward from ``cwd`` (default: the process CWD) looking for a
        workspace directory.  Raises ``NotInWorkspaceError`` if none is found.
        """
        if workspace_id:
            return self.get(workspace_id)

        start = (cwd or Path.cwd()).resolve()
        data_root = self.data_root.resolve()
        for candidate in (start, *start.parents):
            if candidate.parent == data_root and _is_workspace_id(candidate.name):
                return self._load(candidate)
            if self._record_path(candidate).is_file():
                return self._load(candidate)
        raise NotInWorkspaceError(str(start), str(self.data_root))

    # -- Repositories ----------------------------------------------------------

    def add_repositories(self, workspace: Workspace, names: Iterable[str]) -> Workspace:
        """Append newly provisioned repositories to the insertion-order record."""
        current = self._load(workspace.directory)
        added = [n for n in dict.fromkeys(names) if n not in current.repositories]
        if not added:
            return current
        updated = current.model_copy(update={"repositories": [*current.repositories, *added]})
        self._write(updated)
        return updated

    def clone_names(self, workspace: Workspace) -> list[str]:
        """Canonical repository order: recorded insertion order, then unrecorded clones by name."""
        current = self._load(workspace.directory)
        recorded = list(current.repositories)
        found = [name for name in self.discover_clones(workspace) if name not in recorded]
        return recorded + sorted(found)

    def discover_clones(self, workspace: Workspace) -> list[str]:
        """``owner/repo`` names of git working copies present on disk."""
        names: list[str] = []
        for owner in _visible_dirs(workspace.directory):
            names.extend(f"{owner.name}/{repo.name}" for repo in _visible_dirs(owner) if (repo / ".git").exists())
        return sorted(names)

    # -- Persistence -----------------------------------------------------------

    def _write(self, workspace: Workspace) -> None:
        atomic_write(self._record_path(workspace.directory), workspace.to_record().model_dump_json(indent=2))

    def _load(self, directory: Path) -> Workspace:
        path = self._record_path(directory)
        record: WorkspaceRecord | None = None
        if path.is_file():
            try:
                record = WorkspaceRecord.model_validate_json(path.read_text(encoding="utf-8"))
            except ValidationError:
                logger.warning("Ignoring unreadable workspace record {}", path)

        if record is None:
            record = WorkspaceRecord(
                id=directory.name,
                description=MISSING_DESCRIPTION,
                created_at=ULID.from_str(directory.name).datetime,
            )
        return Workspace(
            id=record.id,
            description=record.description,
            created_at=record.created_at,
            directory=directory,
            repositories=record.repositories,
        )


def _visible_dirs(path: Path) -> list[Path]:
    if not path.is_dir():
        return []
    return sorted(p for p in path.iterdir() if p.is_dir() and not p.name.startswith("."))
