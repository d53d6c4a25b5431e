"""
Configuration Tests
-------------------
Tests for YAML loading, env overrides and AppConfig resolution.
"""

import pytest
import yaml

from infra.config import AppConfig, ConfigManager, load_config


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({
        "api": {"model": "deepseek-coder", "stream": False, "temperature": 0.5},
        "history": {"window": 12},
        "logging": {"level": "debug"},
    }))
    return str(path)


class TestConfigManager:
    """Tests for ConfigManager lookups."""

    def test_dot_notation(self, config_file):
        manager = ConfigManager(config_file)

        assert manager.get("api.model") == "deepseek-coder"
        assert manager.get("api.missing", "fallback") == "fallback"
        assert manager.get_section("history") == {"window": 12}

    def test_env_overrides_file(self, config_file, monkeypatch):
        monkeypatch.setenv("SEEKCLI_API_MODEL", "deepseek-reasoner")

        assert ConfigManager(config_file).get("api.model") == "deepseek-reasoner"

    def test_env_bool(self, config_file, monkeypatch):
        monkeypatch.setenv("SEEKCLI_API_STREAM", "yes")

        assert ConfigManager(config_file).get_bool("api.stream", False) is True

    def test_missing_default_file_is_empty(self):
        manager = ConfigManager()

        assert manager.get("api.model") is None

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("api: [unclosed")

        with pytest.raises(ValueError, match="Invalid config file"):
            ConfigManager(str(path))

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ValueError, match="mapping"):
            ConfigManager(str(path))


class TestAppConfig:
    """Tests for resolved settings."""

    def test_defaults(self):
        config = load_config()

        assert config.model == "deepseek-chat"
        assert config.stream is True
        assert config.log_level == "WARNING"
        assert config.api_key is None

    def test_from_file(self, config_file):
        config = load_config(config_file)

        assert config.model == "deepseek-coder"
        assert config.stream is False
        assert config.temperature == 0.5
        assert config.history_window == 12
        assert config.log_level == "DEBUG"

    def test_persistence_can_be_disabled(self, monkeypatch):
        monkeypatch.setenv("SEEKCLI_PERMISSIONS_PERSIST", "false")

        assert load_config().permissions_file is None

    def test_repr_hides_key(self, monkeypatch):
        monkeypatch.setenv("DEEPSEEK_API_KEY", "sk-very-secret")

        config = load_config()

        assert config.api_key == "sk-very-secret"
        assert "sk-very-secret" not in repr(config)
        assert "api_key=set" in repr(AppConfig(api_key="x"))
