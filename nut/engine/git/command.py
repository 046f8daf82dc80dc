"""Low-level ``git`` invocation with consistent error handling."""

from __future__ import annotations

import os
from collections.abc import Sequence
from pathlib import Path

import anyio
from loguru import logger

from nut.engine.errors import GitCommandError

# Never block on an interactive credential prompt; fail fast instead.
_GIT_ENV = {"GIT_TERMINAL_PROMPT": "0", "GIT_ASKPASS": "", "SSH_ASKPASS": "", "LC_ALL": "C"}


async def git(cwd: Path, *args: str, check: bool = True) -> str:
    """Run ``git <args>`` in ``cwd`` and return stripped stdout.

    Raises ``GitCommandError`` when git cannot be spawned or (with ``check``)
    exits non-zero.
    """
    return (await git_output(cwd, args, check=check))[1].strip()


async def git_output(cwd: Path, args: Sequence[str], *, check: bool = True) -> tuple[int, str, str]:
    """Run git and return ``(returncode, stdout, stderr)`` as text."""
    logger.debug("git {} (cwd={})", " ".join(args), cwd)
    try:
        result = await anyio.run_process(
            ["git", *args],
            cwd=cwd,
            env={**os.environ, **_GIT_ENV},
            check=False,
        )
    except OSError as exc:
        raise GitCommandError(args, None, str(exc)) from exc

    stdout = result.stdout.decode("utf-8", errors="replace")
    stderr = result.stderr.decode("utf-8", errors="replace")
    if check and result.returncode != 0:
        raise GitCommandError(args, result.returncode, stderr)
    return result.returncode, stdout, stderr
