"""Process-execution collaborator.

Runs a program with captured stdout/stderr via ``anyio.run_process``.  If the
calling task is cancelled the child process is killed, so an interrupted
batch never leaves stray processes behind.
"""

from __future__ import annotations

import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

import anyio
from loguru import logger


@dataclass(frozen=True)
class ProcessOutput:
    exit_code: int
    """Exit status; negative values mean the process was killed by that signal."""
    stdout: str
    stderr: str


def _decode(data: bytes | None) -> str:
    return (data or b"").decode("utf-8", errors="replace")


async def run(
    argv: Sequence[str],
    cwd: Path,
    *,
    env: Mapping[str, str] | None = None,
) -> ProcessOutput:
    """Run ``argv`` in ``cwd`` and capture its output.

    ``env`` entries are layered over the current environment.  Raises
    ``OSError`` (e.g. ``FileNotFoundError``) if the program cannot be spawned.
    """
    full_env = {**os.environ, **env} if env else None
    logger.debug("exec {} (cwd={})", list(argv), cwd)
    result = await anyio.run_process(list(argv), cwd=cwd, env=full_env, check=False)
    return ProcessOutput(
        exit_code=result.returncode,
        stdout=_decode(result.stdout),
        stderr=_decode(result.stderr),
    )
