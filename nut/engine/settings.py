"""Configuration loaded from NUT_* environment variables and ``~/.nut.json``."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field, SecretStr, field_validator
from pydantic_settings import (
    BaseSettings,
    JsonConfigSettingsSource,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from nut.engine.errors import WorkspaceDirectoryNotConfiguredError
from nut.engine.fsutil import atomic_write

CONFIG_FILE_ENV = "NUT_CONFIG_FILE"


def config_path() -> Path:
    """Location of the user config file (``$NUT_CONFIG_FILE`` or ``~/.nut.json``)."""
    override = os.environ.get(CONFIG_FILE_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".nut.json"


class NutSettings(BaseSettings):
    """nut settings.

    Sources, highest precedence first: constructor kwargs, ``NUT_*``
    environment variables, ``.env``, the JSON config file written by
    ``nut config``, then field defaults.  For example ``NUT_PARALLEL=4``
    maps to ``parallel``.
    """

    model_config = SettingsConfigDict(
        env_prefix="NUT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    # -- Logging ---------------------------------------------------------------
    log_level: str = "WARNING"

    # -- Storage ---------------------------------------------------------------
    workspace_dir: Path | None = None
    """Data root: one subdirectory per workspace id.  Must be configured."""

    cache_dir: Path | None = None
    """Mirror cache root.  Defaults to ``~/.cache/nut``."""

    # -- Execution -------------------------------------------------------------
    parallel: int = 8
    """Worker pool cap for batch provisioning and apply."""

    # -- Remotes ---------------------------------------------------------------
    git_host: str = "github.com"
    git_protocol: Literal["https", "ssh"] | None = None
    """Clone protocol.  When unset, taken from ``gh config`` or https."""

    github_token: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("github_token", "NUT_GITHUB_TOKEN", "GITHUB_TOKEN"),
    )
    github_api_url: str = "https://api.github.com"

    # -- Session ---------------------------------------------------------------
    workspace_id: str | None = None
    """Workspace entered via ``nut enter`` (exported as ``NUT_WORKSPACE_ID``)."""

    @field_validator("parallel")
    @classmethod
    def _check_parallel(cls, value: int) -> int:
        if value <= 0:
            msg = "parallel must be greater than 0"
            raise ValueError(msg)
        return value

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            JsonConfigSettingsSource(settings_cls, json_file=config_path()),
            file_secret_settings,
        )

    # -- Helpers ---------------------------------------------------------------

    def data_root(self) -> Path:
        """Return the canonical data root, creating it if needed."""
        if self.workspace_dir is None:
            raise WorkspaceDirectoryNotConfiguredError
        return _ensure_dir(self.workspace_dir)

    def cache_root(self) -> Path:
        """Return the canonical cache root, creating it if needed."""
        return _ensure_dir(self.cache_dir or default_cache_dir())


def default_cache_dir() -> Path:
    return Path.home() / ".cache" / "nut"


def _ensure_dir(path: Path) -> Path:
    path = path.expanduser()
    path.mkdir(parents=True, exist_ok=True)
    return path.resolve()


def save_config(*, workspace_dir: Path | None = None, cache_dir: Path | None = None) -> Path:
    """Merge the given values into the JSON config file and return its path."""
    path = config_path()
    current: dict = {}
    if path.is_file():
        current = json.loads(path.read_text(encoding="utf-8") or "{}")
    if workspace_dir is not None:
        current["workspace_dir"] = str(workspace_dir)
    if cache_dir is not None:
        current["cache_dir"] = str(cache_dir)
    atomic_write(path, json.dumps(current, indent=2) + "\n")
    _get_settings_cached.cache_clear()
    return path


def get_settings() -> NutSettings:
    """Return a cached settings instance.

    Call ``_get_settings_cached.cache_clear()`` in tests to force a re-read after
    overriding env vars.
    """
    return _get_settings_cached()


def _get_settings_cached() -> NutSettings:
    """Inner function wrapped by lru_cache (allows type-safe cache_clear)."""
    return NutSettings()


from functools import lru_cache  # noqa: E402

_get_settings_cached = lru_cache(maxsize=1)(_get_settings_cached)
