"""Parsing of ``git status --porcelain`` output."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class TreeStatus:
    branch: str
    staged: int = 0
    modified: int = 0
    untracked: int = 0


def count_changes(porcelain: str) -> tuple[int, int, int]:
    """Return ``(staged, modified, untracked)`` counts.

    The first status column describes the index, the second the work tree.
    ``??`` marks an untracked path.  A path with both staged and unstaged
    edits counts towards both.
    """
    staged = modified = untracked = 0
    for line in porcelain.splitlines():
        if len(line) < 2:
            continue
        index_status, worktree_status = line[0], line[1]
        if index_status == "?" and worktree_status == "?":
            untracked += 1
            continue
        if index_status not in (" ", "?"):
            staged += 1
        if worktree_status not in (" ", "?"):
            modified += 1
    return staged, modified, untracked


def parse_ref_listing(listing: str) -> dict[str, str]:
    """Parse ``<oid> <refname>`` lines (ls-remote or for-each-ref) into a mapping.

    ``HEAD`` and peeled tag entries (``^{}``) are skipped so that the remote
    listing and the mirror's own refs are directly comparable.
    """
    refs: dict[str, str] = {}
    for line in listing.splitlines():
        parts = line.split(None, 1)
        if len(parts) != 2:
            continue
        oid, ref = parts[0], parts[1].strip()
        if ref == "HEAD" or ref.endswith("^{}"):
            continue
        refs[ref] = oid
    return refs
