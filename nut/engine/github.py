"""Repository-listing collaborator backed by the GitHub REST API.

Only the batch-import path uses this: it turns a search query into an ordered
list of ``owner/repo`` names for the provisioner.  Also hosts the small ``gh``
CLI lookups (git protocol, auth token) used as configuration fallbacks.
"""

from __future__ import annotations

import shutil
import subprocess

import httpx
from loguru import logger
from pydantic import BaseModel, Field

from nut.engine.errors import GitHubApiError, MissingGitHubTokenError, RemoteUnreachableError
from nut.engine.models import GitProtocol
from nut.engine.settings import NutSettings

DEFAULT_PER_PAGE = 100


class RemoteRepository(BaseModel):
    """The subset of GitHub's repository object the import path needs."""

    full_name: str


class _SearchPage(BaseModel):
    total_count: int = 0
    items: list[RemoteRepository] = Field(default_factory=list)


class GitHubClient:
    """Async GitHub client.  Use as an async context manager.

    ``transport`` lets tests plug in ``httpx.MockTransport``.
    """

    def __init__(
        self,
        token: str,
        *,
        base_url: str = "https://api.github.com",
        transport: httpx.AsyncBaseTransport | None = None,
        per_page: int = DEFAULT_PER_PAGE,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._per_page = per_page
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            },
            transport=transport,
            timeout=30.0,
        )

    async def __aenter__(self) -> GitHubClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # -- API -------------------------------------------------------------------

    async def search(self, query: str) -> list[RemoteRepository]:
        """All repositories matching a GitHub search query, following pagination."""
        repos: list[RemoteRepository] = []
        url: str | None = "/search/repositories"
        params: dict | None = {"q": query, "per_page": self._per_page}
        while url:
            response = await self._get(url, params=params)
            page = _SearchPage.model_validate(response.json())
            repos.extend(page.items)
            next_link = response.links.get("next")
            url = next_link["url"] if next_link else None
            params = None  # the next link already carries the query
        logger.info("Search {!r} matched {} repositories", query, len(repos))
        return repos

    async def resolve(self, query: str) -> list[str]:
        """Ordered ``owner/repo`` names for a search query."""
        return [repo.full_name for repo in await self.search(query)]

    async def _get(self, url: str, *, params: dict | None = None) -> httpx.Response:
        try:
            response = await self._client.get(url, params=params)
        except httpx.TransportError as exc:
            raise RemoteUnreachableError(self._base_url, str(exc)) from exc
        if response.is_error:
            raise GitHubApiError(response.status_code, _error_message(response))
        return response


def _error_message(response: httpx.Response) -> str:
    try:
        return str(response.json().get("message", response.reason_phrase))
    except ValueError:
        return response.text or response.reason_phrase


# ---------------------------------------------------------------------------
# gh CLI fallbacks
# ---------------------------------------------------------------------------


def _gh(*args: str) -> str | None:
    """Run ``gh <args>`` and return stripped stdout, or None if gh is unavailable or fails."""
    if shutil.which("gh") is None:
        return None
    try:
        result = subprocess.run(["gh", *args], capture_output=True, text=True, check=False, timeout=10)
    except (OSError, subprocess.TimeoutExpired) as exc:
        logger.debug("gh {} failed: {}", " ".join(args), exc)
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


def resolve_git_protocol(settings: NutSettings) -> GitProtocol:
    """Configured protocol, else ``gh config get git_protocol``, else https."""
    if settings.git_protocol:
        return GitProtocol(settings.git_protocol)
    configured = _gh("config", "get", "git_protocol", "-h", settings.git_host)
    if configured in (GitProtocol.HTTPS, GitProtocol.SSH):
        return GitProtocol(configured)
    return GitProtocol.HTTPS


def resolve_token(settings: NutSettings, provided: str | None = None) -> str:
    """Explicit token, else configured token, else ``gh auth token``."""
    if provided:
        return provided
    if settings.github_token is not None:
        return settings.github_token.get_secret_value()
    token = _gh("auth", "token")
    if token:
        return token
    raise MissingGitHubTokenError(
        "No GitHub token provided and gh CLI is not authenticated. "
        "Either provide --github-token or run 'gh auth login'"
    )
