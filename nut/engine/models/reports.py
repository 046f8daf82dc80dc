"""Batch result models handed to the presentation layer.

All are plain pydantic models so a CLI or GUI can render or serialise them
without reaching into engine internals.  ``entries`` / ``results`` are always
in the workspace's canonical repository order.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, computed_field

from nut.engine.errors import PartialBatchFailureError
from nut.engine.models.repository import RepositoryClone

# -- Status ------------------------------------------------------------------


class StatusReport(BaseModel):
    repo_name: str
    branch: str | None = None
    staged_count: int = 0
    modified_count: int = 0
    untracked_count: int = 0
    error: str | None = None

    @computed_field
    @property
    def has_changes(self) -> bool:
        return self.staged_count > 0 or self.modified_count > 0 or self.untracked_count > 0

    @property
    def is_clean(self) -> bool:
        return self.error is None and not self.has_changes


class WorkspaceStatus(BaseModel):
    total: int = 0
    clean_count: int = 0
    entries: list[StatusReport] = Field(default_factory=list)

    @classmethod
    def from_entries(cls, entries: list[StatusReport]) -> WorkspaceStatus:
        return cls(
            total=len(entries),
            clean_count=sum(1 for e in entries if e.is_clean),
            entries=entries,
        )

    @property
    def changed(self) -> list[StatusReport]:
        return [e for e in self.entries if e.error is None and e.has_changes]

    @property
    def errored(self) -> list[StatusReport]:
        return [e for e in self.entries if e.error is not None]


# -- Apply -------------------------------------------------------------------


class ApplyResult(BaseModel):
    repo_name: str
    exit_code: int | None = None
    stdout: str = ""
    stderr: str = ""
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None or self.exit_code != 0


class ApplySummary(BaseModel):
    results: list[ApplyResult] = Field(default_factory=list)

    @computed_field
    @property
    def any_failed(self) -> bool:
        return any(r.failed for r in self.results)

    @property
    def failed(self) -> list[str]:
        return [r.repo_name for r in self.results if r.failed]

    def raise_for_failures(self) -> None:
        """Raise ``PartialBatchFailureError`` if any repository failed."""
        if self.any_failed:
            raise PartialBatchFailureError("apply", self.failed, len(self.results))


# -- Provision ---------------------------------------------------------------


class ProvisionResult(BaseModel):
    repo_name: str
    clone: RepositoryClone | None = None
    created: bool = False
    """True when this call performed the local clone."""
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class ProvisionSummary(BaseModel):
    results: list[ProvisionResult] = Field(default_factory=list)

    @computed_field
    @property
    def any_failed(self) -> bool:
        return any(r.failed for r in self.results)

    @property
    def failed(self) -> list[str]:
        return [r.repo_name for r in self.results if r.failed]

    def raise_for_failures(self) -> None:
        if self.any_failed:
            raise PartialBatchFailureError("import", self.failed, len(self.results))
