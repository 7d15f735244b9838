"""Tests pour sc2reveal/config.py et SyncOptions.from_settings."""

from __future__ import annotations

import json

import pytest

from sc2reveal.config import AppSettings, load_settings
from sc2reveal.data.sync.models import SyncOptions
from sc2reveal.errors import ConfigurationError


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("SC2REVEAL_REPLAYS_FOLDER", "SC2REVEAL_BATTLE_TAG", "SC2REVEAL_DATA_DIR"):
        monkeypatch.delenv(name, raising=False)


class TestLoadSettings:
    def test_missing_file_gives_defaults(self, tmp_path):
        settings = load_settings(tmp_path / "absent.json")
        assert settings.replays.folder == ""
        assert settings.replays.recursive is True
        assert settings.cache.validation_interval_minutes == 60

    def test_nested_section(self, tmp_path):
        path = tmp_path / "app_settings.json"
        path.write_text(
            json.dumps(
                {
                    "barcodeReveal": {
                        "user": {"battleTag": "Me#1234"},
                        "replays": {"folder": "D:/Replays", "recursive": False},
                    }
                }
            ),
            encoding="utf-8",
        )
        settings = load_settings(path)
        assert settings.user.battle_tag == "Me#1234"
        assert settings.replays.folder == "D:/Replays"
        assert settings.replays.recursive is False

    def test_flat_file_with_cache_section(self, tmp_path):
        path = tmp_path / "app_settings.json"
        path.write_text(
            json.dumps({"cache": {"validationIntervalMinutes": 5, "dataDir": str(tmp_path)}}),
            encoding="utf-8",
        )
        settings = load_settings(path)
        assert settings.cache.validation_interval_minutes == 5
        assert settings.db_path == tmp_path / "replays.duckdb"

    def test_env_overrides(self, tmp_path, monkeypatch):
        path = tmp_path / "app_settings.json"
        path.write_text(json.dumps({"user": {"battleTag": "Old#1"}}), encoding="utf-8")
        monkeypatch.setenv("SC2REVEAL_BATTLE_TAG", "New#2")
        monkeypatch.setenv("SC2REVEAL_REPLAYS_FOLDER", "/tmp/replays")

        settings = load_settings(path)

        assert settings.user.battle_tag == "New#2"
        assert settings.replays.folder == "/tmp/replays"

    def test_invalid_json_raises(self, tmp_path):
        path = tmp_path / "app_settings.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            load_settings(path)

    def test_invalid_value_raises(self, tmp_path):
        path = tmp_path / "app_settings.json"
        path.write_text(
            json.dumps({"cache": {"validationIntervalMinutes": -1}}), encoding="utf-8"
        )
        with pytest.raises(ConfigurationError):
            load_settings(path)


class TestAppSettings:
    def test_battle_tag_is_stripped(self):
        settings = AppSettings.model_validate({"user": {"battleTag": " Me#1 "}})
        assert settings.user.battle_tag == "Me#1"

    def test_unknown_keys_ignored(self):
        settings = AppSettings.model_validate({"replays": {"showLastBuildOrder": False}})
        assert not hasattr(settings.replays, "show_last_build_order")

    def test_sync_options_from_settings(self):
        settings = AppSettings.model_validate(
            {
                "cache": {
                    "insertParallelism": 3,
                    "decodeTimeoutSeconds": 10,
                    "validationIntervalMinutes": 15,
                }
            }
        )
        options = SyncOptions.from_settings(settings)
        assert options.parallelism == 3
        assert options.decode_timeout_seconds == 10
        assert options.validation_interval_minutes == 15
