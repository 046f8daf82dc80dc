from __future__ import annotations

import os
import stat
from pathlib import Path

import pytest

from nut.engine.apply import ApplyRunner, ApplyTarget, render_block
from nut.engine.errors import ApplyMissingCommandError, PartialBatchFailureError, ScriptPathInvalidError
from nut.engine.models import ApplyResult, Workspace
from nut.engine.processes import ProcessOutput
from nut.engine.workspaces import WorkspaceStore

NAMES = ["org/a", "org/b", "org/c"]


@pytest.fixture
def workspace(store: WorkspaceStore) -> Workspace:
    ws = store.create("apply")
    for name in NAMES:
        (ws.directory / name / ".git").mkdir(parents=True)
    return ws


def _script(path: Path, body: str, *, executable: bool = True) -> Path:
    path.write_text(f"#!/bin/sh\n{body}\n")
    if executable:
        path.chmod(path.stat().st_mode | stat.S_IXUSR)
    return path


# -- Targets -------------------------------------------------------------------


def test_command_requires_argv() -> None:
    with pytest.raises(ApplyMissingCommandError):
        ApplyTarget.command([])


def test_command_keeps_arguments_verbatim() -> None:
    target = ApplyTarget.command(["git", "log", "--oneline", "-1", "--", "a b"])
    assert target.argv == ["git", "log", "--oneline", "-1", "--", "a b"]
    assert not target.is_script


def test_script_resolves_relative_path(tmp_path: Path) -> None:
    _script(tmp_path / "run.sh", "true")

    target = ApplyTarget.script("run.sh", ["x"], cwd=tmp_path)

    assert target.program == str((tmp_path / "run.sh").resolve())
    assert target.argv[1:] == ["x"]
    assert target.is_script


def test_script_must_exist(tmp_path: Path) -> None:
    with pytest.raises(ScriptPathInvalidError):
        ApplyTarget.script("nope.sh", cwd=tmp_path)


def test_render_block() -> None:
    block = render_block(ApplyResult(repo_name="org/a", exit_code=0, stdout="out", stderr="err\n"))
    assert block == "==> org/a <==\nout\nerr\n\n"

    failed = render_block(ApplyResult(repo_name="org/b", error="boom"))
    assert failed == "==> org/b <==\nerror: boom\n\n"


# -- Runner --------------------------------------------------------------------


async def test_runs_in_each_clone_with_env(store, workspace) -> None:
    target = ApplyTarget.command(["sh", "-c", 'echo "$NUT_WORKSPACE_ID $NUT_REPO_NAME"; pwd'])

    summary = await ApplyRunner(store).apply(workspace, target)

    assert [r.repo_name for r in summary.results] == NAMES
    for name, result in zip(NAMES, summary.results, strict=True):
        first, cwd = result.stdout.splitlines()
        assert first == f"{workspace.id} {name}"
        assert Path(cwd).resolve() == (workspace.directory / name).resolve()
        assert result.exit_code == 0
    assert not summary.any_failed


async def test_failure_is_isolated(store, workspace) -> None:
    target = ApplyTarget.command(["sh", "-c", 'echo ran; [ "$NUT_REPO_NAME" != org/b ] || exit 3'])

    summary = await ApplyRunner(store).apply(workspace, target)

    assert [r.stdout for r in summary.results] == ["ran\n"] * 3
    assert summary.failed == ["org/b"]
    b = summary.results[1]
    assert b.exit_code == 3
    assert "exited with status code 3" in b.error
    with pytest.raises(PartialBatchFailureError, match="apply: 2 succeeded, 1 failed"):
        summary.raise_for_failures()


async def test_output_blocks_are_ordered_and_whole(store, workspace) -> None:
    script = (
        'case "$NUT_REPO_NAME" in org/a) d=0.3;; org/b) d=0.1;; *) d=0;; esac; '
        'echo "start $NUT_REPO_NAME"; sleep $d; echo "end $NUT_REPO_NAME" >&2'
    )
    blocks: list[str] = []

    await ApplyRunner(store, parallel=3).apply(workspace, ApplyTarget.command(["sh", "-c", script]), output=blocks.append)

    assert len(blocks) == 3
    for name, block in zip(NAMES, blocks, strict=True):
        assert block == f"==> {name} <==\nstart {name}\nend {name}\n\n"


async def test_arguments_reach_the_command_verbatim(store, workspace) -> None:
    target = ApplyTarget.command(["printf", "%s|", "--", "-x", "a b", "$HOME"])

    summary = await ApplyRunner(store).apply(workspace, target)

    assert {r.stdout for r in summary.results} == {"--|-x|a b|$HOME|"}


async def test_script_runs_with_args(store, workspace, tmp_path) -> None:
    script = _script(tmp_path / "greet.sh", 'echo "$1 from $NUT_REPO_NAME"')

    summary = await ApplyRunner(store).apply(workspace, ApplyTarget.script(script, ["hi"]))

    assert [r.stdout for r in summary.results] == [f"hi from {name}\n" for name in NAMES]


async def test_script_not_executable(store, workspace, tmp_path) -> None:
    script = _script(tmp_path / "plain.sh", "echo never", executable=False)
    if os.access(script, os.X_OK):
        pytest.skip("running with permissions that ignore the execute bit")

    summary = await ApplyRunner(store).apply(workspace, ApplyTarget.script(script))

    assert summary.failed == NAMES
    assert all("not executable" in r.error for r in summary.results)
    assert all(r.exit_code is None for r in summary.results)


async def test_unknown_program_is_captured(store, workspace) -> None:
    summary = await ApplyRunner(store).apply(workspace, ApplyTarget.command(["definitely-not-a-nut-binary"]))

    assert summary.failed == NAMES
    assert all("Command execution failed" in r.error for r in summary.results)


async def test_missing_clone_does_not_stop_others(store, workspace) -> None:
    store.add_repositories(workspace, ["org/gone"])

    summary = await ApplyRunner(store).apply(workspace, ApplyTarget.command(["true"]))

    assert [r.repo_name for r in summary.results] == ["org/gone", *NAMES]
    assert summary.failed == ["org/gone"]
    assert "missing" in summary.results[0].error


async def test_signal_exit_is_reported(store, workspace) -> None:
    async def _killed(argv, cwd, *, env=None) -> ProcessOutput:
        return ProcessOutput(exit_code=-9, stdout="", stderr="")

    summary = await ApplyRunner(store, runner=_killed).apply(workspace, ApplyTarget.command(["x"]))

    assert all("terminated by signal 9" in r.error for r in summary.results)


async def test_empty_workspace(store) -> None:
    ws = store.create("empty")
    blocks: list[str] = []

    summary = await ApplyRunner(store).apply(ws, ApplyTarget.command(["true"]), output=blocks.append)

    assert summary.results == []
    assert blocks == []
    assert not summary.any_failed
