"""Workspace data model.

A workspace is a directory ``{data_root}/{id}/`` holding repository clones at
``{owner}/{repo}`` plus a metadata record at ``.nut/workspace.json``.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, Field


class WorkspaceRecord(BaseModel):
    """Persisted metadata (``.nut/workspace.json``)."""

    id: str
    description: str = ""
    created_at: datetime
    repositories: list[str] = Field(default_factory=list, description="Repository names in insertion order")


class Workspace(BaseModel):
    id: str
    description: str
    created_at: datetime
    directory: Path
    repositories: list[str] = Field(default_factory=list)

    def clone_path(self, repo_name: str) -> Path:
        return self.directory / repo_name

    def to_record(self) -> WorkspaceRecord:
        return WorkspaceRecord(
            id=self.id,
            description=self.description,
            created_at=self.created_at,
            repositories=list(self.repositories),
        )
