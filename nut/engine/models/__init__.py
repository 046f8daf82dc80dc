"""Data models for the workspace engine."""

from nut.engine.models.enums import CacheAction, GitProtocol
from nut.engine.models.reports import (
    ApplyResult,
    ApplySummary,
    ProvisionResult,
    ProvisionSummary,
    StatusReport,
    WorkspaceStatus,
)
from nut.engine.models.repository import CacheEntry, MirrorState, RepoKey, RepositoryClone
from nut.engine.models.workspace import Workspace, WorkspaceRecord

__all__ = [
    "ApplyResult",
    "ApplySummary",
    "CacheAction",
    "CacheEntry",
    "GitProtocol",
    "MirrorState",
    "ProvisionResult",
    "ProvisionSummary",
    "RepoKey",
    "RepositoryClone",
    "StatusReport",
    "Workspace",
    "WorkspaceRecord",
    "WorkspaceStatus",
]
