"""Version-control collaborator: every git operation the engine needs.

Operations that talk to a remote (``clone_bare``, ``ls_remote``, ``fetch``)
raise ``RemoteUnreachableError`` when git fails with a network or
authentication message; every other failure, including local ones such as a
full disk, stays a ``GitCommandError``.  That split lets callers tell network
trouble from a broken working copy.
"""

from __future__ import annotations

import re
from pathlib import Path

from loguru import logger

from nut.engine.errors import GitCommandError, MirrorCorruptError, RemoteUnreachableError
from nut.engine.git.command import git, git_output
from nut.engine.git.porcelain import TreeStatus, count_changes, parse_ref_listing

_REMOTE_FAILURE = re.compile(
    "|".join(
        [
            r"could not resolve (host|proxy)",
            r"unable to access '(https?|ssh|git)://",
            r"connection (refused|timed out|reset)",
            r"operation timed out",
            r"network is unreachable",
            r"no route to host",
            r"could not read from remote repository",
            r"authentication failed",
            r"permission denied \(publickey",
            r"could not read (username|password)",
            r"terminal prompts disabled",
            r"repository not found",
            r"repository '.*' does not exist",
            r"does not appear to be a git repository",
            r"ssl certificate",
            r"ssl_connect",
            r"gnutls",
            r"early eof",
            r"remote end hung up",
        ]
    ),
    re.IGNORECASE,
)


def is_remote_failure(stderr: str) -> bool:
    """Whether git's ``stderr`` describes a network, auth or missing-remote problem."""
    return _REMOTE_FAILURE.search(stderr) is not None


class GitClient:
    """Thin async wrapper around the ``git`` binary.

    Stateless; a single instance is shared by the cache, the provisioner and
    the status aggregator.  Tests substitute a subclass to count calls.
    """

    # -- Remote operations -----------------------------------------------------

    async def clone_bare(self, remote: str, dest: Path) -> None:
        """Create a bare mirror of ``remote`` at ``dest`` (which must not exist yet)."""
        await self._remote_op(remote, dest.parent, "clone", "--mirror", "--bare", remote, str(dest))

    async def ls_remote(self, remote: str, cwd: Path) -> dict[str, str]:
        """List the remote's refs (``refname -> oid``) without fetching objects."""
        out = await self._remote_op(remote, cwd, "ls-remote", remote)
        return parse_ref_listing(out)

    async def fetch(self, mirror: Path, remote: str) -> None:
        """Bring every ref of ``mirror`` in line with ``remote``, pruning deleted refs."""
        await git(mirror, "remote", "set-url", "origin", remote)
        await self._remote_op(remote, mirror, "remote", "update", "--prune")

    async def fetch_if_stale(self, mirror: Path, remote: str, known_refs: dict[str, str]) -> bool:
        """Fetch only when the remote's refs differ from ``known_refs``.  Returns whether it fetched."""
        if await self.ls_remote(remote, mirror) == known_refs:
            return False
        await self.fetch(mirror, remote)
        return True

    async def _remote_op(self, remote: str, cwd: Path, *args: str) -> str:
        try:
            return await git(cwd, *args)
        except GitCommandError as exc:
            if exc.returncode is None or not is_remote_failure(exc.stderr):
                raise
            raise RemoteUnreachableError(remote, exc.stderr) from exc

    # -- Mirror inspection -----------------------------------------------------

    async def mirror_refs(self, mirror: Path) -> dict[str, str]:
        out = await git(mirror, "for-each-ref", "--format=%(objectname) %(refname)")
        return parse_ref_listing(out)

    async def verify_mirror(self, mirror: Path) -> None:
        """Basic integrity check.  Raises ``MirrorCorruptError``."""
        if not (mirror / "HEAD").is_file() or not (mirror / "objects").is_dir():
            raise MirrorCorruptError(str(mirror), "missing HEAD or objects directory")
        code, out, err = await git_output(mirror, ["rev-parse", "--is-bare-repository"], check=False)
        if code != 0 or out.strip() != "true":
            raise MirrorCorruptError(str(mirror), err.strip() or "not a bare repository")

    # -- Working clones --------------------------------------------------------

    async def clone_local(self, source: Path, dest: Path, origin_url: str | None = None) -> None:
        """Clone ``source`` (a local mirror) into ``dest`` using hardlinks.

        When ``origin_url`` is given the clone's ``origin`` is pointed at it so
        pushes and later fetches go to the real remote, not the cache.
        """
        await git(dest.parent, "clone", "--local", str(source), str(dest))
        if origin_url:
            await git(dest, "remote", "set-url", "origin", origin_url)

    async def update_clone(self, clone: Path, mirror: Path) -> None:
        """Refresh remote-tracking branches of ``clone`` from ``mirror``.

        When the clone is on its default branch it is also fast-forwarded;
        otherwise the working tree is left untouched.
        """
        await git(clone, "fetch", "--prune", str(mirror), "+refs/heads/*:refs/remotes/origin/*")
        code, out, _ = await git_output(
            clone, ["symbolic-ref", "--short", "refs/remotes/origin/HEAD"], check=False
        )
        default_ref = out.strip()
        if code != 0 or not default_ref:
            return
        default_branch = default_ref.removeprefix("origin/")
        if await self.current_branch(clone) == default_branch:
            logger.debug("Fast-forwarding {} to {}", clone, default_ref)
            await git(clone, "merge", "--ff-only", default_ref)

    async def current_branch(self, path: Path) -> str:
        """Branch name, or ``(detached at <sha>)`` / ``(detached)`` for a detached HEAD."""
        branch = await git(path, "branch", "--show-current")
        if branch:
            return branch
        code, out, _ = await git_output(path, ["rev-parse", "--short", "HEAD"], check=False)
        sha = out.strip()
        if code == 0 and sha:
            return f"(detached at {sha})"
        return "(detached)"

    async def working_tree_status(self, path: Path) -> TreeStatus:
        if not path.is_dir():
            raise GitCommandError(["status"], None, f"repository clone is missing: {path}")
        if not (path / ".git").exists():
            raise GitCommandError(["status"], None, f"{path} is not a git working copy")
        branch = await self.current_branch(path)
        _, porcelain, _ = await git_output(path, ["status", "--porcelain"])
        staged, modified, untracked = count_changes(porcelain)
        return TreeStatus(branch=branch, staged=staged, modified=modified, untracked=untracked)
