"""Tests for YAML config loading and settings precedence."""

import json
from pathlib import Path

import pytest

from channel_feed.config.settings import Settings, deep_merge, load_all_configs


def _write_config(root: Path, name: str, body: str) -> None:
    config_dir = root / "config"
    config_dir.mkdir(exist_ok=True)
    (config_dir / name).write_text(body, encoding="utf-8")


def _write_schema(root: Path) -> None:
    schema_dir = root / "config" / "schemas"
    schema_dir.mkdir(parents=True, exist_ok=True)
    (schema_dir / "main.schema.json").write_text(
        json.dumps(
            {
                "type": "object",
                "properties": {
                    "feed": {
                        "type": "object",
                        "properties": {"max_page_size": {"type": "integer", "minimum": 1}},
                    }
                },
            }
        ),
        encoding="utf-8",
    )


def test_deep_merge_nested_override() -> None:
    base = {"feed": {"max_page_size": 50, "default_channel": "a"}, "logging": {"level": "INFO"}}
    override = {"feed": {"default_channel": "b"}}

    assert deep_merge(base, override) == {
        "feed": {"max_page_size": 50, "default_channel": "b"},
        "logging": {"level": "INFO"},
    }


class TestLoadAllConfigs:
    def test_main_loaded_first_then_overrides(self, tmp_path: Path) -> None:
        _write_config(tmp_path, "main.yaml", "feed:\n  default_channel: first\n  max_page_size: 50\n")
        _write_config(tmp_path, "local.yaml", "feed:\n  default_channel: second\n")

        config = load_all_configs(tmp_path / "config")

        assert config["feed"] == {"default_channel": "second", "max_page_size": 50}

    def test_missing_directory_gives_empty_config(self, tmp_path: Path) -> None:
        assert load_all_configs(tmp_path / "absent") == {}

    def test_schema_violation_raises(self, tmp_path: Path) -> None:
        _write_schema(tmp_path)
        _write_config(tmp_path, "main.yaml", "feed:\n  max_page_size: 0\n")

        with pytest.raises(ValueError, match="Config validation failed for main"):
            load_all_configs(tmp_path / "config")

    def test_unreadable_yaml_is_skipped(self, tmp_path: Path) -> None:
        _write_config(tmp_path, "main.yaml", "feed: [unclosed\n")

        assert load_all_configs(tmp_path / "config") == {}


class TestSettings:
    def test_yaml_values_applied(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        _write_config(
            tmp_path,
            "main.yaml",
            "feed:\n  default_channel: fashionhub\n  max_page_size: 30\n"
            "media:\n  cache_ttl_seconds: 120\n"
            "database:\n  type: sqlite\n  path: var/feed.db\n",
        )
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("DEFAULT_CHANNEL", raising=False)

        settings = Settings()

        assert settings.default_channel == "fashionhub"
        assert settings.feed_max_page_size == 30
        assert settings.media_cache_ttl_seconds == 120
        assert settings.db_path == "var/feed.db"

    def test_environment_beats_yaml(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        _write_config(tmp_path, "main.yaml", "feed:\n  default_channel: fashionhub\n")
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("DEFAULT_CHANNEL", "fromenv")

        assert Settings().default_channel == "fromenv"

    def test_defaults_without_config(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("TELEGRAM_BOT_TOKEN", raising=False)
        monkeypatch.delenv("DEFAULT_CHANNEL", raising=False)

        settings = Settings()

        assert settings.default_channel == "loycewear"
        assert settings.feed_default_page_size == 20
        assert settings.feed_max_rows_per_page == 800
        assert settings.media_cache_ttl_seconds == 3600
        assert settings.bot_token is None

    def test_blank_bot_token_is_none(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "   ")

        assert Settings().bot_token is None
