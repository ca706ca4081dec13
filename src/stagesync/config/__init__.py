"""Configuration management for stagesync."""

from __future__ import annotations

import os
import textwrap
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

import yaml

from .exceptions import ConfigError, StoreFactoryError
from .models import (
    ContentSettings,
    CustomMapping,
    LoggingSettings,
    ReindexSettings,
    SearchSettings,
    StageSyncConfig,
)
from .resolver import (
    ENV_PREFIX,
    assign_path,
    expand_dotted,
    flatten_for_env,
    overrides_from_env,
    resolve_with_precedence,
)

DEFAULT_CONFIG_PATH = Path("~/.stagesync/config.yaml")
CONFIG_PATH_ENV = "STAGESYNC_CONFIG"
_CONFIG_HEADER = textwrap.dedent(
    """\
    # stagesync configuration file
    # Manage via `stagesync config edit` or `stagesync config set`.
    """
)


class ConfigManager:
    """Read, update, and resolve the stagesync configuration file.

    The file lives at ``~/.stagesync/config.yaml`` unless a path is passed in
    or the ``STAGESYNC_CONFIG`` environment variable names another one.
    Every write is validated against :class:`StageSyncConfig` first, so the
    file on disk always loads.
    """

    def __init__(
        self,
        config_path: Path | None = None,
        *,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self._env = env if env is not None else os.environ
        if config_path is None:
            configured = self._env.get(CONFIG_PATH_ENV)
            config_path = Path(configured) if configured else DEFAULT_CONFIG_PATH
        self._config_path = config_path.expanduser()

    @property
    def config_path(self) -> Path:
        return self._config_path

    def load(
        self,
        *,
        cli_overrides: Mapping[str, Any] | None = None,
        include_env: bool = True,
        ensure_file: bool = True,
        env_overrides: Mapping[str, str] | None = None,
    ) -> StageSyncConfig:
        """Return the effective configuration.

        Args:
            cli_overrides: Dotted-key overrides with the highest precedence.
            include_env: Whether ``STAGESYNC__`` variables are applied.
            ensure_file: Create the file with defaults when it is missing.
            env_overrides: Environment to read instead of the process one.

        Raises:
            ConfigError: If the file cannot be parsed or values are invalid.
        """
        if ensure_file:
            self.ensure_exists()

        env_layer = None
        if include_env:
            env_layer = overrides_from_env(env_overrides if env_overrides is not None else self._env)

        return resolve_with_precedence(
            defaults=StageSyncConfig(),
            file_overrides=self.load_file_overrides(),
            env_overrides=env_layer or None,
            cli_overrides=cli_overrides,
        )

    def load_file_overrides(self) -> dict[str, Any]:
        """Return the raw mapping stored on disk, or an empty one."""
        if not self._config_path.exists():
            return {}
        return _parse_document(self._config_path.read_text(encoding="utf-8"))

    def ensure_exists(self) -> Path:
        """Create a configuration file with defaults if one does not exist."""
        if not self._config_path.exists():
            self.save(StageSyncConfig())
        return self._config_path

    def read_text(self) -> str:
        if not self._config_path.exists():
            return ""
        return self._config_path.read_text(encoding="utf-8")

    def save(self, config: StageSyncConfig | Mapping[str, Any]) -> None:
        """Write ``config`` to disk below the standard header."""
        if isinstance(config, StageSyncConfig):
            data = config.model_dump(mode="python")
        else:
            data = dict(config)
        stamp = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        body = yaml.safe_dump(data, sort_keys=False)
        self._config_path.parent.mkdir(parents=True, exist_ok=True)
        self._config_path.write_text(
            f"{_CONFIG_HEADER}# Last updated: {stamp}\n{body}", encoding="utf-8"
        )

    def set_value(self, key: str, raw_value: str) -> dict[str, Any]:
        """Persist one dotted ``key`` with a YAML-literal value.

        Returns:
            dict[str, Any]: The file contents that were written.

        Raises:
            ConfigError: If the key, value, or resulting configuration is invalid.
        """
        segments = [segment.strip() for segment in key.split(".") if segment.strip()]
        if not segments:
            raise ConfigError("KEY must specify a dotted path such as 'search.index'.")
        try:
            value = yaml.safe_load(raw_value)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Unable to parse value: {exc}") from exc

        data = self.load_file_overrides()
        assign_path(data, segments, value)
        resolve_with_precedence(defaults=StageSyncConfig(), file_overrides=data)
        self.save(data)
        return data

    def replace_text(self, text: str) -> dict[str, Any]:
        """Validate and persist an edited configuration document.

        Raises:
            ConfigError: If ``text`` is not a valid configuration mapping.
        """
        data = _parse_document(text)
        resolve_with_precedence(defaults=StageSyncConfig(), file_overrides=data)
        self.save(data)
        return data


def _parse_document(text: str) -> dict[str, Any]:
    try:
        raw = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError("Configuration file must contain a top-level mapping.")
    return raw


__all__ = [
    "ConfigManager",
    "DEFAULT_CONFIG_PATH",
    "CONFIG_PATH_ENV",
    "ENV_PREFIX",
    "StageSyncConfig",
    "SearchSettings",
    "ReindexSettings",
    "ContentSettings",
    "LoggingSettings",
    "CustomMapping",
    "resolve_with_precedence",
    "expand_dotted",
    "assign_path",
    "overrides_from_env",
    "flatten_for_env",
    "ConfigError",
    "StoreFactoryError",
]
