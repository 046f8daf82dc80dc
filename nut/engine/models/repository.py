"""Repository identity and cache entry models."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from nut.engine.errors import InvalidRepositoryNameError
from nut.engine.models.enums import CacheAction


class RepoKey(BaseModel):
    """``(host, owner, repo)`` -- identifies one remote repository and its mirror."""

    model_config = ConfigDict(frozen=True)

    host: str
    owner: str
    repo: str

    @classmethod
    def parse(cls, full_name: str, host: str = "github.com") -> RepoKey:
        """Parse ``owner/repo``.  Raises ``InvalidRepositoryNameError`` otherwise."""
        parts = full_name.strip().split("/")
        if len(parts) != 2 or not all(parts) or any(p in (".", "..") for p in parts):
            raise InvalidRepositoryNameError(full_name)
        return cls(host=host, owner=parts[0], repo=parts[1])

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    def __str__(self) -> str:
        return f"{self.host}/{self.full_name}"


class MirrorState(BaseModel):
    """Sidecar record stored next to each mirror: the last known remote refs."""

    refs: dict[str, str] = Field(default_factory=dict, description="refname -> object id")
    last_verified_at: datetime | None = None


class CacheEntry(BaseModel):
    """One shared bare mirror of a remote repository."""

    key: RepoKey
    mirror_path: Path
    last_verified_at: datetime | None = None
    action: CacheAction = CacheAction.UNCHANGED
    """What the most recent ``ensure_fresh`` call did."""


class RepositoryClone(BaseModel):
    """A workspace-owned working copy cloned locally from a mirror."""

    name: str
    workspace_id: str
    local_path: Path
    origin: CacheEntry | None = None
