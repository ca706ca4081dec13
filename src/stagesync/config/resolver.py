"""Merge configuration layers into a validated :class:`StageSyncConfig`."""

from __future__ import annotations

from collections.abc import Mapping as MappingABC
from copy import deepcopy
from typing import Any, Dict, Mapping, Sequence

import yaml
from pydantic import ValidationError

from .exceptions import ConfigError
from .models import StageSyncConfig

ENV_PREFIX = "STAGESYNC__"

# Keys below these paths are type names or backend setting names, which may
# contain dots or mixed case, so they travel as a single YAML value.
OPAQUE_PATHS = (("search", "mappings"), ("search", "index_settings"))


def resolve_with_precedence(
    *,
    defaults: StageSyncConfig,
    file_overrides: Mapping[str, Any] | None = None,
    env_overrides: Mapping[str, Any] | None = None,
    cli_overrides: Mapping[str, Any] | None = None,
) -> StageSyncConfig:
    """Merge configuration sources: defaults < file < environment < CLI.

    Top-level keys of each layer may be dotted paths such as
    ``reindex.page_size``; nested keys are taken verbatim.

    Raises:
        ConfigError: If a layer is malformed or the merged data fails validation.
    """
    merged: Dict[str, Any] = defaults.model_dump(mode="python")
    for source_name, layer in (
        ("file", file_overrides),
        ("environment", env_overrides),
        ("cli", cli_overrides),
    ):
        if layer is None:
            continue
        if not isinstance(layer, MappingABC):
            raise ConfigError(f"{source_name.capitalize()} overrides must be a mapping.")
        merged = _deep_merge(merged, expand_dotted(layer, source_name=source_name))

    try:
        return StageSyncConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration values: {exc}") from exc


def expand_dotted(overrides: Mapping[str, Any], *, source_name: str = "cli") -> Dict[str, Any]:
    """Expand dotted top-level keys into nested mappings."""
    expanded: Dict[str, Any] = {}
    for key, value in overrides.items():
        if not isinstance(key, str):
            raise ConfigError(f"{source_name.capitalize()} override keys must be strings.")
        path = key.split(".")
        if not all(path):
            raise ConfigError(f"{source_name.capitalize()} override key {key!r} has an empty segment.")
        assign_path(expanded, path, value, source_name=source_name)
    return expanded


def assign_path(
    target: Dict[str, Any],
    path: Sequence[str],
    value: Any,
    *,
    source_name: str = "file",
) -> None:
    """Set ``value`` at ``path`` inside ``target``, merging into existing mappings.

    Raises:
        ConfigError: If a non-mapping value sits along the path.
    """
    node = target
    for segment in path[:-1]:
        child = node.setdefault(segment, {})
        if not isinstance(child, dict):
            raise ConfigError(
                f"{source_name.capitalize()} override for {'.'.join(path)} conflicts with existing value."
            )
        node = child

    leaf = path[-1]
    existing = node.get(leaf)
    if isinstance(value, MappingABC) and isinstance(existing, dict):
        node[leaf] = _deep_merge(existing, value)
    else:
        node[leaf] = deepcopy(value)


def overrides_from_env(env: Mapping[str, str], *, prefix: str = ENV_PREFIX) -> Dict[str, Any]:
    """Collect ``STAGESYNC__SECTION__KEY`` variables into nested overrides.

    Values are parsed as YAML so numbers, booleans, and lists keep their type.
    Variables with empty path segments are ignored.
    """
    overrides: Dict[str, Any] = {}
    for key, raw_value in env.items():
        if not key.startswith(prefix):
            continue
        path = [segment.lower() for segment in key[len(prefix) :].split("__")]
        if not all(path):
            continue
        try:
            value = yaml.safe_load(raw_value)
        except yaml.YAMLError:
            value = raw_value
        assign_path(overrides, path, value, source_name="environment")
    return overrides


def flatten_for_env(config: StageSyncConfig) -> Dict[str, str]:
    """Flatten the config into `STAGESYNC__SECTION__KEY` environment variable mappings."""
    flat: Dict[str, str] = {}

    def _walk(path: tuple[str, ...], value: Any) -> None:
        if isinstance(value, dict) and value and path not in OPAQUE_PATHS:
            for key, child in value.items():
                _walk(path + (str(key),), child)
            return
        if isinstance(value, (dict, list)):
            rendered = yaml.safe_dump(value, default_flow_style=True).strip()
        else:
            rendered = "null" if value is None else str(value)
        flat[ENV_PREFIX + "__".join(part.upper() for part in path)] = rendered

    for section, value in config.model_dump(mode="python").items():
        _walk((section,), value)
    return flat


def _deep_merge(base: Mapping[str, Any], overrides: Mapping[str, Any]) -> Dict[str, Any]:
    merged: Dict[str, Any] = {key: deepcopy(value) for key, value in base.items()}
    for key, value in overrides.items():
        current = merged.get(key)
        if isinstance(value, MappingABC) and isinstance(current, MappingABC):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = deepcopy(value)
    return merged


__all__ = [
    "ENV_PREFIX",
    "OPAQUE_PATHS",
    "resolve_with_precedence",
    "expand_dotted",
    "assign_path",
    "overrides_from_env",
    "flatten_for_env",
]
