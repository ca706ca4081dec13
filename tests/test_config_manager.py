"""Unit tests for configuration management."""

from pathlib import Path

import pytest

from stagesync.config import (
    ConfigError,
    ConfigManager,
    StageSyncConfig,
    flatten_for_env,
    overrides_from_env,
    resolve_with_precedence,
)


def _fresh_manager(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> ConfigManager:
    monkeypatch.setenv("HOME", str(tmp_path))
    return ConfigManager()


def test_ensure_exists_creates_default_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)

    path = manager.ensure_exists()

    assert path == tmp_path / ".stagesync" / "config.yaml"
    text = path.read_text(encoding="utf-8")
    assert "stagesync configuration file" in text
    assert "Last updated:" in text

    config = manager.load(include_env=False)
    assert isinstance(config, StageSyncConfig)
    assert config.reindex.page_size == 1000


def test_resolve_with_precedence_respects_order(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)
    manager.ensure_exists()

    manager.save({"search": {"index": "site"}, "reindex": {"page_size": 250}})

    env = {"STAGESYNC__SEARCH__REQUEST_TIMEOUT": "30", "STAGESYNC__REINDEX__PAGE_SIZE": "500"}
    cli = {"reindex.page_size": 100}

    config = manager.load(cli_overrides=cli, env_overrides=env)

    assert config.search.index == "site"
    assert config.search.request_timeout == pytest.approx(30.0)
    # CLI overrides take precedence over environment
    assert config.reindex.page_size == 100


def test_env_overrides_accept_yaml_values(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)

    config = manager.load(
        env_overrides={
            "STAGESYNC__SEARCH__HOSTS": '["http://a:9200", "http://b:9200"]',
            "STAGESYNC__SEARCH__ENABLED": "false",
            "STAGESYNC____BROKEN": "ignored",
        }
    )

    assert config.search.hosts == ["http://a:9200", "http://b:9200"]
    assert config.search.enabled is False


def test_custom_mappings_load_from_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)
    manager.save(
        {
            "search": {
                "mappings": {
                    "Article": {
                        "properties": {"Title": {"type": "keyword"}},
                        "params": {"dynamic": "strict"},
                    }
                }
            }
        }
    )

    config = manager.load(include_env=False)

    mapping = config.search.mappings["Article"]
    assert mapping.properties == {"Title": {"type": "keyword"}}
    assert mapping.params == {"dynamic": "strict"}


def test_invalid_yaml_raises_config_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)
    manager.ensure_exists()

    manager.config_path.write_text("- not-a-mapping", encoding="utf-8")

    with pytest.raises(ConfigError):
        manager.load()


def test_flatten_for_env_round_trips_defaults() -> None:
    flat = flatten_for_env(StageSyncConfig())

    assert flat["STAGESYNC__SEARCH__INDEX"] == "content"
    assert flat["STAGESYNC__REINDEX__PAGE_SIZE"] == "1000"
    assert flat["STAGESYNC__SEARCH__MAPPINGS"] == "{}"
    assert flat["STAGESYNC__LOGGING__FILE"] == "null"


def test_resolve_with_precedence_invalid_value_raises() -> None:
    with pytest.raises(ConfigError):
        resolve_with_precedence(
            defaults=StageSyncConfig(),
            file_overrides={"reindex": {"page_size": 0}},
        )


def test_unknown_keys_are_rejected() -> None:
    with pytest.raises(ConfigError):
        resolve_with_precedence(
            defaults=StageSyncConfig(),
            file_overrides={"search": {"shards": 3}},
        )


def test_config_path_can_come_from_environment(tmp_path: Path) -> None:
    target = tmp_path / "site" / "search.yaml"

    manager = ConfigManager(env={"STAGESYNC_CONFIG": str(target)})
    manager.ensure_exists()

    assert manager.config_path == target
    assert target.exists()


def test_set_value_validates_before_writing(tmp_path: Path) -> None:
    manager = ConfigManager(tmp_path / "config.yaml", env={})
    manager.ensure_exists()

    manager.set_value("search.hosts", '["http://es-1:9200"]')
    assert manager.load().search.hosts == ["http://es-1:9200"]

    before = manager.read_text()
    with pytest.raises(ConfigError):
        manager.set_value("reindex.page_size", "0")
    assert manager.read_text() == before


def test_replace_text_rejects_invalid_documents(tmp_path: Path) -> None:
    manager = ConfigManager(tmp_path / "config.yaml", env={})

    with pytest.raises(ConfigError):
        manager.replace_text("search: [unterminated")
    with pytest.raises(ConfigError):
        manager.replace_text("search:\n  enabled: maybe-later\n")

    manager.replace_text("content:\n  store: site.content:build\n")
    assert manager.load().content.store == "site.content:build"


def test_nested_backend_setting_names_keep_their_dots() -> None:
    config = resolve_with_precedence(
        defaults=StageSyncConfig(),
        file_overrides={"search": {"index_settings": {"index.number_of_shards": 1}}},
        cli_overrides={"search.index": "pages"},
    )

    assert config.search.index_settings == {"index.number_of_shards": 1}
    assert config.search.index == "pages"
    assert overrides_from_env({"STAGESYNC__SEARCH__INDEX": "x", "OTHER": "y"}) == {
        "search": {"index": "x"}
    }
