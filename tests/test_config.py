"""
Tests for config.py.
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest

from vault_tasks.config import EngineSettings, ServerConfig, parse_bool, parse_list


class TestHelpers:
    def test_parse_list(self):
        assert parse_list(" a, b ,,c ") == ["a", "b", "c"]
        assert parse_list(None) == []

    def test_parse_bool(self):
        assert parse_bool("Yes", False) is True
        assert parse_bool("0", True) is False
        assert parse_bool("", True) is True


class TestEngineSettings:
    def test_defaults(self):
        settings = EngineSettings.from_env({})
        assert settings.metadata_delimiter == "|"
        assert settings.first_day_of_week == 0
        assert settings.recurring_auto_create is True
        assert settings.daily_note_tasks_heading == "## Tasks"

    def test_from_env(self):
        settings = EngineSettings.from_env({
            "CUSTOM_STAGES": "Parked, Waiting",
            "EXCLUDED_FOLDERS": "archive,templates",
            "FIRST_DAY_OF_WEEK": "1",
            "RECURRING_AUTO_CREATE": "false",
            "DAILY_NOTE_FOLDER": "/journal/",
        })
        assert settings.custom_stages == ["Parked", "Waiting"]
        assert settings.excluded_folders == ["archive", "templates"]
        assert settings.first_day_of_week == 1
        assert settings.recurring_auto_create is False
        assert settings.daily_note_folder == "journal"

    @pytest.mark.parametrize("env", [
        {"FIRST_DAY_OF_WEEK": "7"},
        {"FIRST_DAY_OF_WEEK": "monday"},
        {"MAX_UNDO_ENTRIES": "0"},
    ])
    def test_invalid(self, env):
        with pytest.raises(ValueError):
            EngineSettings.from_env(env)


class TestServerConfig:
    def test_requires_vault_root(self):
        with pytest.raises(ValueError):
            ServerConfig.from_env({})

    def test_from_env(self):
        config = ServerConfig.from_env({
            "VAULT_ROOT": "/vault",
            "EXCLUDE_DIRS": ".git,node_modules",
            "POLL_INTERVAL": "2.5",
            "API_ENABLED": "no",
            "API_PORT": "8080",
        })
        assert config.vault_root == Path("/vault")
        assert config.skip_dirs == {".git", "node_modules"}
        assert config.poll_interval == 2.5
        assert config.api_enabled is False
        assert config.api_port == 8080

    def test_defaults(self):
        config = ServerConfig.from_env({"VAULT_ROOT": "/vault"})
        assert config.api_port == 9400
        assert ".obsidian" in config.skip_dirs

    def test_bad_poll_interval(self):
        with pytest.raises(ValueError):
            ServerConfig.from_env({"VAULT_ROOT": "/vault", "POLL_INTERVAL": "fast"})
