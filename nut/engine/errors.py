"""Error taxonomy.

Engine code raises these domain exceptions and never CLI exceptions; the
presentation layer decides how to render them.  Failures local to one
repository inside a batch are captured on that repository's result instead
of being raised.
"""

from __future__ import annotations

from collections.abc import Sequence


class NutError(Exception):
    """Base class for all nut errors.  ``help`` is an optional remediation hint."""

    help: str | None = None

    def __init__(self, message: str | None = None, *, help: str | None = None) -> None:  # noqa: A002
        super().__init__(message or self.__doc__ or type(self).__name__)
        if help is not None:
            self.help = help


# -- Configuration -----------------------------------------------------------


class WorkspaceDirectoryNotConfiguredError(NutError):
    """Workspace directory not configured"""

    help = "Set the workspace directory using: nut config --workspace-dir <path>"


# -- Workspace ---------------------------------------------------------------


class NotInWorkspaceError(NutError):
    """Not in a workspace"""

    help = (
        "Create a new workspace with 'nut create' or enter one with 'nut enter <id>'. "
        "You need to be inside the workspace directory or pass the workspace ID via --workspace."
    )

    def __init__(self, working_directory: str, data_directory: str) -> None:
        self.working_directory = working_directory
        self.data_directory = data_directory
        super().__init__(
            f"Not in a workspace.\n"
            f"    Current working directory: {working_directory}\n"
            f"    Data directory: {data_directory}"
        )


class AlreadyInWorkspaceError(NutError):
    """Already in workspace"""

    help = "Exit the current workspace before creating or entering a new one (for example run 'cd ~')."


class WorkspaceNotFoundError(NutError, LookupError):
    """Raised when a workspace id has no directory under the data root."""

    def __init__(self, workspace_id: str) -> None:
        self.workspace_id = workspace_id
        super().__init__(f"Workspace not found: {workspace_id}", help="Run 'nut list' to see existing workspaces.")


class InvalidWorkspaceIdError(NutError, ValueError):
    """Workspace IDs must be valid ULIDs."""

    help = "Workspace IDs must be valid ULIDs"

    def __init__(self, workspace_id: str) -> None:
        self.workspace_id = workspace_id
        super().__init__(f"Invalid workspace ID: {workspace_id}")


class InvalidRepositoryNameError(NutError, ValueError):
    help = "Must look like 'owner/repo'"

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Invalid full repository name: '{name}'.")


# -- Cache / git -------------------------------------------------------------


class GitCommandError(NutError):
    """A local git invocation failed (non-zero exit or could not be spawned)."""

    def __init__(self, args: Sequence[str], returncode: int | None, stderr: str = "") -> None:
        self.args_ = list(args)
        self.returncode = returncode
        self.stderr = stderr.strip()
        detail = f": {self.stderr}" if self.stderr else ""
        super().__init__(f"git {' '.join(self.args_)} failed (exit {returncode}){detail}")


class RemoteUnreachableError(NutError):
    """Network or authentication failure while talking to a remote."""

    def __init__(self, remote: str, detail: str = "") -> None:
        self.remote = remote
        self.detail = detail.strip()
        message = f"Remote unreachable: {remote}"
        if self.detail:
            message = f"{message}: {self.detail}"
        super().__init__(message, help="Check your network connection and git credentials.")


class MirrorCorruptError(NutError):
    """The on-disk mirror failed integrity validation."""

    def __init__(self, path: str, detail: str = "") -> None:
        self.path = path
        super().__init__(f"Mirror at {path} is corrupt{': ' + detail if detail else ''}")


# -- Apply -------------------------------------------------------------------


class ApplyMissingCommandError(NutError):
    """No command provided for apply"""

    help = "Use 'nut apply -- <command>' or 'nut apply --script <path>'"


class ScriptPathInvalidError(NutError):
    help = "Make sure the script path is correct and accessible"

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Invalid script path: {path}")


class NotExecutableError(NutError):
    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Script is not executable: {path}", help=f"Make sure the script is executable (chmod +x {path})")


class SubprocessFailureError(NutError):
    """A per-repository command exited non-zero or was killed by a signal."""

    def __init__(self, repo: str, exit_code: int) -> None:
        self.repo = repo
        self.exit_code = exit_code
        if exit_code < 0:
            reason = f"Command terminated by signal {-exit_code}"
        else:
            reason = f"Command exited with status code {exit_code}"
        super().__init__(f"Command execution failed in repository {repo}: {reason}")


class PartialBatchFailureError(NutError):
    """One or more repositories failed within an otherwise completed batch."""

    def __init__(self, operation: str, failed: Sequence[str], total: int) -> None:
        self.operation = operation
        self.failed = list(failed)
        self.total = total
        succeeded = total - len(self.failed)
        super().__init__(
            f"{operation}: {succeeded} succeeded, {len(self.failed)} failed ({', '.join(self.failed)})"
        )


# -- Import / GitHub ---------------------------------------------------------


class ImportArgumentsError(NutError, ValueError):
    help = "Use --query <query> to search for repositories OR positional arguments <owner>/<repo>, not both"


class MissingGitHubTokenError(NutError):
    """GitHub token required"""

    help = "Provide --github-token, set GITHUB_TOKEN, or run 'gh auth login'"


class GitHubApiError(NutError):
    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        super().__init__(f"GitHub API error ({status_code}): {message}")
