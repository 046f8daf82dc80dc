from __future__ import annotations

import httpx
import pytest

from nut.engine import github
from nut.engine.errors import GitHubApiError, MissingGitHubTokenError, RemoteUnreachableError
from nut.engine.github import GitHubClient, resolve_git_protocol, resolve_token
from nut.engine.models import GitProtocol
from nut.engine.settings import NutSettings


def _search_handler(pages: list[list[str]], seen: list[httpx.Request]):
    def _handle(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        page = int(request.url.params.get("page", "1"))
        headers = {}
        if page < len(pages):
            headers["Link"] = (
                f'<https://api.github.test/search/repositories?q=org%3Aacme&per_page=2&page={page + 1}>; rel="next"'
            )
        items = [{"full_name": name, "default_branch": "main"} for name in pages[page - 1]]
        return httpx.Response(200, json={"total_count": 5, "items": items}, headers=headers)

    return _handle


async def test_search_follows_pagination() -> None:
    seen: list[httpx.Request] = []
    transport = httpx.MockTransport(_search_handler([["acme/a", "acme/b"], ["acme/c", "acme/d"], ["acme/e"]], seen))

    async with GitHubClient("tok", base_url="https://api.github.test", transport=transport, per_page=2) as gh:
        names = await gh.resolve("org:acme")

    assert names == ["acme/a", "acme/b", "acme/c", "acme/d", "acme/e"]
    assert len(seen) == 3
    first = seen[0]
    assert first.url.path == "/search/repositories"
    assert first.url.params["q"] == "org:acme"
    assert first.url.params["per_page"] == "2"
    assert first.headers["Authorization"] == "Bearer tok"


async def test_search_without_results() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"total_count": 0, "items": []}))

    async with GitHubClient("tok", transport=transport) as gh:
        assert await gh.search("org:nobody") == []


async def test_api_error_is_mapped() -> None:
    transport = httpx.MockTransport(
        lambda request: httpx.Response(422, json={"message": "Validation Failed"}),
    )

    async with GitHubClient("tok", transport=transport) as gh:
        with pytest.raises(GitHubApiError, match="422.*Validation Failed") as exc_info:
            await gh.resolve("bad query")
    assert exc_info.value.status_code == 422


async def test_transport_error_is_unreachable() -> None:
    def _fail(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with GitHubClient("tok", transport=httpx.MockTransport(_fail)) as gh:
        with pytest.raises(RemoteUnreachableError):
            await gh.resolve("org:acme")


# -- Configuration fallbacks -----------------------------------------------------


def test_resolve_token_precedence(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(github, "_gh", lambda *args: "from-gh")

    assert resolve_token(NutSettings(github_token="configured"), "explicit") == "explicit"
    assert resolve_token(NutSettings(github_token="configured")) == "configured"
    assert resolve_token(NutSettings()) == "from-gh"


def test_resolve_token_missing(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(github, "_gh", lambda *args: None)

    with pytest.raises(MissingGitHubTokenError) as exc_info:
        resolve_token(NutSettings())
    assert "gh auth login" in exc_info.value.help


def test_resolve_git_protocol(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(github, "_gh", lambda *args: "ssh")
    assert resolve_git_protocol(NutSettings()) == GitProtocol.SSH
    assert resolve_git_protocol(NutSettings(git_protocol="https")) == GitProtocol.HTTPS

    monkeypatch.setattr(github, "_gh", lambda *args: None)
    assert resolve_git_protocol(NutSettings()) == GitProtocol.HTTPS
