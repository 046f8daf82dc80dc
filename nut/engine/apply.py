"""Apply runner: run one command or script in every clone of a workspace.

Each repository's stdout and stderr are buffered until its process exits and
then written as a single labeled block::

    ==> owner/repo <==
    ...output...

Blocks are written one at a time, in canonical repository order, so output
from different repositories never interleaves.  A non-zero exit is recorded on
that repository's result; it never cancels the others.
"""

from __future__ import annotations

import os
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from anyio import to_thread
from loguru import logger

from nut.engine import processes
from nut.engine.errors import (
    ApplyMissingCommandError,
    NotExecutableError,
    ScriptPathInvalidError,
    SubprocessFailureError,
)
from nut.engine.models import ApplyResult, ApplySummary, Workspace
from nut.engine.pool import OrderedFlusher, fan_out
from nut.engine.processes import ProcessOutput
from nut.engine.workspaces import WorkspaceStore

ProcessRunner = Callable[..., Awaitable[ProcessOutput]]


@dataclass(frozen=True)
class ApplyTarget:
    """What to run: a program (on PATH or an absolute script path) plus its arguments."""

    program: str
    args: list[str] = field(default_factory=list)
    is_script: bool = False

    @classmethod
    def command(cls, argv: Sequence[str]) -> ApplyTarget:
        if not argv:
            raise ApplyMissingCommandError
        return cls(program=argv[0], args=list(argv[1:]))

    @classmethod
    def script(cls, path: str | Path, args: Sequence[str] = (), *, cwd: Path | None = None) -> ApplyTarget:
        """Resolve ``path`` against ``cwd``.  Raises ``ScriptPathInvalidError`` if it does not exist.

        Executability is checked per repository at run time.
        """
        resolved = ((cwd or Path.cwd()) / Path(path).expanduser()).resolve()
        if not resolved.is_file():
            raise ScriptPathInvalidError(str(path))
        return cls(program=str(resolved), args=list(args), is_script=True)

    @property
    def argv(self) -> list[str]:
        return [self.program, *self.args]


def render_block(result: ApplyResult) -> str:
    """Format one repository's buffered output as a single labeled block."""
    parts = [f"==> {result.repo_name} <==\n"]
    for text in (result.stdout, result.stderr):
        if text:
            parts.append(text if text.endswith("\n") else text + "\n")
    if result.error:
        parts.append(f"error: {result.error}\n")
    parts.append("\n")
    return "".join(parts)


class ApplyRunner:
    def __init__(
        self,
        store: WorkspaceStore,
        *,
        parallel: int = 8,
        runner: ProcessRunner = processes.run,
    ) -> None:
        self._store = store
        self._parallel = parallel
        self._runner = runner

    async def apply(
        self,
        workspace: Workspace,
        target: ApplyTarget,
        *,
        output: Callable[[str], None] | None = None,
    ) -> ApplySummary:
        """Run ``target`` once per clone.

        ``output`` receives one complete rendered block per repository, in
        canonical order, as soon as that repository and all before it are done.
        """
        names = await to_thread.run_sync(self._store.clone_names, workspace)
        env: Mapping[str, str] = {"NUT_WORKSPACE_ID": workspace.id}

        async def _one(name: str) -> ApplyResult:
            return await self._run_one(workspace, name, target, env)

        flusher = OrderedFlusher(lambda result: output(render_block(result))) if output else None
        results = await fan_out(
            names,
            _one,
            limit=self._parallel,
            on_result=flusher,
        )
        return ApplySummary(results=results)

    async def _run_one(
        self,
        workspace: Workspace,
        name: str,
        target: ApplyTarget,
        env: Mapping[str, str],
    ) -> ApplyResult:
        cwd = workspace.clone_path(name)
        if not cwd.is_dir():
            return ApplyResult(repo_name=name, error=f"repository clone is missing: {cwd}")
        if target.is_script and not os.access(target.program, os.X_OK):
            return ApplyResult(repo_name=name, error=str(NotExecutableError(target.program)))

        try:
            out = await self._runner(target.argv, cwd, env={**env, "NUT_REPO_NAME": name})
        except OSError as exc:
            logger.warning("Cannot run {} in {}: {}", target.program, name, exc)
            return ApplyResult(repo_name=name, error=f"Command execution failed in repository {name}: {exc}")

        error = None
        if out.exit_code != 0:
            error = str(SubprocessFailureError(name, out.exit_code))
            logger.info("{}", error)
        return ApplyResult(
            repo_name=name,
            exit_code=out.exit_code,
            stdout=out.stdout,
            stderr=out.stderr,
            error=error,
        )
