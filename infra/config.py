"""
Configuration
-------------
YAML configuration with environment variable overrides.

Precedence (highest first):
    command-line flags > SEEKCLI_<SECTION>_<KEY> env vars > config file > defaults

The API key is only ever read from the environment.

Example config.yaml:

    api:
      base_url: https://api.deepseek.com
      model: deepseek-chat
      stream: true
    tools:
      timeout_seconds: 30
    logging:
      level: INFO
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional
import logging
import os

import yaml

from security.permissions import DEFAULT_PERMISSIONS_FILE


DEFAULT_CONFIG_FILE = "~/.seekcli/config.yaml"
API_KEY_ENV = "DEEPSEEK_API_KEY"
ENV_PREFIX = "SEEKCLI"

_TRUE_VALUES = {"1", "true", "yes", "on"}


class ConfigManager:
    """
    Centralized configuration management.
    Loads configuration from YAML with environment variable overrides.
    """

    def __init__(self, config_path: Optional[str] = None):
        self._config_path = Path(config_path or DEFAULT_CONFIG_FILE).expanduser()
        self._explicit = config_path is not None
        self._config: Dict[str, Any] = {}
        self._logger = logging.getLogger("seekcli.infra.config")

        self._load_config()

    @property
    def path(self) -> Path:
        return self._config_path

    def _load_config(self) -> None:
        """Load configuration from file."""
        if not self._config_path.exists():
            if self._explicit:
                self._logger.warning(f"Config file not found: {self._config_path}")
            self._config = {}
            return

        try:
            with open(self._config_path, "r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid config file {self._config_path}: {e}") from e

        if not isinstance(loaded, dict):
            raise ValueError(f"Config file {self._config_path} must contain a mapping")

        self._config = loaded
        self._logger.info(f"Loaded config from {self._config_path}")

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value.
        Supports dot notation: 'section.key'
        Environment variables override file config.
        """
        env_key = f"{ENV_PREFIX}_{key.upper().replace('.', '_')}"
        env_value = os.getenv(env_key)
        if env_value is not None:
            return env_value

        value: Any = self._config
        for part in key.split("."):
            if isinstance(value, dict) and part in value:
                value = value[part]
            else:
                return default

        return value

    def get_section(self, section: str) -> Dict[str, Any]:
        """Get an entire configuration section."""
        return self._config.get(section, {})

    def get_bool(self, key: str, default: bool) -> bool:
        value = self.get(key, default)
        if isinstance(value, str):
            return value.strip().lower() in _TRUE_VALUES
        return bool(value)

    def get_int(self, key: str, default: int) -> int:
        return int(self.get(key, default))

    def get_float(self, key: str, default: float) -> float:
        return float(self.get(key, default))


@dataclass
class AppConfig:
    """Resolved application settings."""
    api_key: Optional[str] = None
    base_url: str = "https://api.deepseek.com"
    model: str = "deepseek-chat"
    temperature: float = 0.1
    max_tokens: int = 4096
    stream: bool = True
    history_window: int = 30
    tool_timeout_seconds: float = 30.0
    permissions_file: Optional[str] = DEFAULT_PERMISSIONS_FILE
    log_level: str = "WARNING"
    log_dir: Optional[str] = None

    @classmethod
    def from_manager(cls, manager: ConfigManager) -> "AppConfig":
        """Build settings from a loaded ConfigManager."""
        defaults = cls()
        permissions_file = manager.get("permissions.file", defaults.permissions_file)
        if manager.get_bool("permissions.persist", True) is False:
            permissions_file = None

        return cls(
            api_key=os.getenv(API_KEY_ENV),
            base_url=manager.get("api.base_url", defaults.base_url),
            model=manager.get("api.model", defaults.model),
            temperature=manager.get_float("api.temperature", defaults.temperature),
            max_tokens=manager.get_int("api.max_tokens", defaults.max_tokens),
            stream=manager.get_bool("api.stream", defaults.stream),
            history_window=manager.get_int("history.window", defaults.history_window),
            tool_timeout_seconds=manager.get_float(
                "tools.timeout_seconds", defaults.tool_timeout_seconds
            ),
            permissions_file=permissions_file,
            log_level=str(manager.get("logging.level", defaults.log_level)).upper(),
            log_dir=manager.get("logging.dir", defaults.log_dir),
        )

    def __repr__(self) -> str:
        # Never print the key
        key_state = "set" if self.api_key else "missing"
        return (
            f"AppConfig(model={self.model}, base_url={self.base_url}, "
            f"stream={self.stream}, api_key={key_state})"
        )


def load_config(config_path: Optional[str] = None) -> AppConfig:
    """Load settings from file and environment."""
    return AppConfig.from_manager(ConfigManager(config_path))
