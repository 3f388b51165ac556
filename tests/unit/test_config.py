"""
Tests for configuration loading.
"""

import json

import pytest

from regency import config
from regency.config import EngineConfig, load_engine_config


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point the config directory at tmp_path and clear engine env vars."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    for env_name in config.ENV_OVERRIDES.values():
        monkeypatch.delenv(env_name, raising=False)
    return tmp_path / "regency" / "config.json"


class TestConfigFile:
    """Tests for the JSON config file."""

    def test_config_dir_created(self, tmp_path):
        assert config.get_config_dir() == tmp_path / "regency"
        assert (tmp_path / "regency").is_dir()

    def test_missing_file_is_empty(self):
        assert config.load_config() == {}

    def test_unreadable_file_ignored(self, isolated_config):
        config.get_config_dir()
        isolated_config.write_text("{not json")
        assert config.load_config() == {}

    def test_api_key_round_trip(self):
        config.set_api_key("sk-test")
        assert config.get_api_key() == "sk-test"

        config.clear_api_key()
        assert config.get_api_key() is None

    def test_env_key_wins(self, monkeypatch):
        config.set_api_key("sk-file")
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-env")
        assert config.get_api_key() == "sk-env"


class TestEngineConfig:
    """Tests for layered engine settings."""

    def test_defaults(self):
        settings = load_engine_config()

        assert settings == EngineConfig()
        assert settings.max_choice_length == 2000

    def test_file_section(self, isolated_config):
        config.save_config({"engine": {"db_path": "kingdom.db", "generator_timeout": 5}})
        settings = load_engine_config()

        assert settings.db_path == "kingdom.db"
        assert settings.generator_timeout == 5.0

    def test_env_over_file(self, monkeypatch):
        config.save_config({"engine": {"max_retries": 1}})
        monkeypatch.setenv("REGENCY_MAX_RETRIES", "4")
        monkeypatch.setenv("REGENCY_GENERATOR_TIMEOUT", "2.5")

        settings = load_engine_config()
        assert settings.max_retries == 4
        assert settings.generator_timeout == 2.5

    def test_generator_workers_from_env(self, monkeypatch):
        monkeypatch.setenv("REGENCY_GENERATOR_WORKERS", "8")
        assert load_engine_config().generator_workers == 8

    def test_overrides_win(self, monkeypatch):
        monkeypatch.setenv("REGENCY_DB", "env.db")
        settings = load_engine_config(db_path="cli.db", generator_timeout=None)

        assert settings.db_path == "cli.db"
        assert settings.generator_timeout == 30.0

    def test_boolean_coercion(self):
        config.save_config({"engine": {"archive_skipped_issues": "yes"}})
        assert load_engine_config().archive_skipped_issues is True

    def test_unknown_override(self):
        with pytest.raises(TypeError):
            load_engine_config(colour="blue")

    def test_api_key_filled_from_store(self):
        config.set_api_key("sk-stored")
        assert load_engine_config().api_key == "sk-stored"
