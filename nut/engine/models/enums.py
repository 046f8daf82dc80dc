"""Shared enumerations."""

from __future__ import annotations

from enum import StrEnum


class GitProtocol(StrEnum):
    """Protocol used for the network-facing clone URL of a repository."""

    HTTPS = "https"
    SSH = "ssh"

    def to_clone_url(self, host: str, full_name: str) -> str:
        if self is GitProtocol.SSH:
            return f"git@{host}:{full_name}.git"
        return f"https://{host}/{full_name}.git"


class CacheAction(StrEnum):
    """What ``ensure_fresh`` had to do to bring a mirror up to date."""

    CLONED = "cloned"
    FETCHED = "fetched"
    UNCHANGED = "unchanged"
    REBUILT = "rebuilt"
