"""CLI tests for configuration commands."""

import os
from pathlib import Path
from typing import Any

from click.testing import CliRunner

from stagesync.cli import cli
from stagesync.config import ConfigManager


def _env_with_home(tmp_path: Path) -> dict[str, Any]:
    env = dict(os.environ)
    env["HOME"] = str(tmp_path)
    return env


def _config_path(tmp_path: Path) -> Path:
    return tmp_path / ".stagesync" / "config.yaml"


def test_config_view_creates_and_displays_config(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    result = runner.invoke(cli, ["config", "view"], env=env)

    assert result.exit_code == 0
    assert "search:" in result.output
    assert _config_path(tmp_path).exists()


def test_config_set_updates_value_and_writes_diff(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    result = runner.invoke(cli, ["config", "set", "reindex.page_size", "--value", "250"], env=env)

    assert result.exit_code == 0
    assert "250" in result.output

    manager = ConfigManager(config_path=_config_path(tmp_path))
    config = manager.load(include_env=False)
    assert config.reindex.page_size == 250


def test_config_set_rejects_invalid_values(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    result = runner.invoke(cli, ["config", "set", "reindex.page_size", "--value", "-1"], env=env)

    assert result.exit_code != 0
    assert "Invalid configuration values" in result.output


def test_config_set_reports_unchanged_value(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    result = runner.invoke(cli, ["config", "set", "search.index", "--value", "content"], env=env)

    assert result.exit_code == 0
    assert "No changes applied" in result.output


def test_config_edit_applies_changes(tmp_path: Path, monkeypatch) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    manager = ConfigManager(config_path=_config_path(tmp_path))
    manager.ensure_exists()

    def _mock_edit(text: str, **_: Any) -> str:
        return text.replace("index: content", "index: articles")

    monkeypatch.setattr("stagesync.cli.click.edit", _mock_edit)

    result = runner.invoke(cli, ["config", "edit"], env=env)

    assert result.exit_code == 0
    assert "updated" in result.output.lower()

    config = manager.load(include_env=False)
    assert config.search.index == "articles"


def test_config_edit_rejects_non_mapping(tmp_path: Path, monkeypatch) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)
    ConfigManager(config_path=_config_path(tmp_path)).ensure_exists()

    monkeypatch.setattr("stagesync.cli.click.edit", lambda text, **_: "- just\n- a list\n")

    result = runner.invoke(cli, ["config", "edit"], env=env)

    assert result.exit_code != 0
    assert "top-level mapping" in result.output
