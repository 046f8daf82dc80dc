"""Engine wiring.

``Engine`` bundles the store, cache and batch runners built from one
``NutSettings`` so the CLI (or any other view) never constructs them by hand.
"""

from __future__ import annotations

import functools
from dataclasses import dataclass

from nut.engine.apply import ApplyRunner
from nut.engine.cache import CacheManager, RemoteUrlFactory, clone_url_factory
from nut.engine.git import GitClient
from nut.engine.github import resolve_git_protocol
from nut.engine.models import RepoKey
from nut.engine.provisioner import RepositoryProvisioner
from nut.engine.settings import NutSettings
from nut.engine.status import StatusAggregator
from nut.engine.workspaces import WorkspaceStore


def lazy_remote_url(settings: NutSettings) -> RemoteUrlFactory:
    """Clone URL factory that asks ``gh`` for the protocol only when a URL is first needed."""

    @functools.cache
    def _factory() -> RemoteUrlFactory:
        return clone_url_factory(resolve_git_protocol(settings))

    def _url(key: RepoKey) -> str:
        return _factory()(key)

    return _url


@dataclass
class Engine:
    settings: NutSettings
    store: WorkspaceStore
    cache: CacheManager
    provisioner: RepositoryProvisioner
    status: StatusAggregator
    runner: ApplyRunner

    @classmethod
    def from_settings(cls, settings: NutSettings, *, git: GitClient | None = None) -> Engine:
        git = git or GitClient()
        store = WorkspaceStore(settings.data_root())
        cache = CacheManager(
            settings.cache_root(),
            git,
            remote_url=lazy_remote_url(settings),
        )
        return cls(
            settings=settings,
            store=store,
            cache=cache,
            provisioner=RepositoryProvisioner(
                store, cache, git, host=settings.git_host, parallel=settings.parallel
            ),
            status=StatusAggregator(store, git),
            runner=ApplyRunner(store, parallel=settings.parallel),
        )
