"""Interactive shell launched by ``nut create`` / ``nut enter``."""

from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path

from loguru import logger

from nut.engine.models import Workspace

WORKSPACE_ENV = "NUT_WORKSPACE_ID"


def shell_environment(workspace: Workspace, base: dict[str, str] | None = None) -> dict[str, str]:
    """Environment for the workspace shell: ``NUT_WORKSPACE_ID`` set, nut's bin dir first on PATH."""
    env = dict(os.environ if base is None else base)
    env[WORKSPACE_ENV] = workspace.id
    bin_dir = str(Path(sys.argv[0]).resolve().parent)
    path = env.get("PATH", "")
    if bin_dir not in path.split(os.pathsep):
        env["PATH"] = f"{bin_dir}{os.pathsep}{path}" if path else bin_dir
    return env


def enter(workspace: Workspace) -> int:
    """Run ``$SHELL`` inside the workspace directory and return its exit status."""
    shell = os.environ.get("SHELL", "/bin/sh")
    logger.debug("Entering workspace {} with {}", workspace.id, shell)
    return subprocess.run([shell], cwd=workspace.directory, env=shell_environment(workspace), check=False).returncode
