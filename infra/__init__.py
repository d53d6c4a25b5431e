# Infrastructure module - Configuration and Logging
# Config from YAML + environment, logs to Rich console and JSON file

from .config import AppConfig, ConfigManager, load_config
from .logging import (
    get_logger, configure_logging, TurnContext,
    log_turn_end, get_turn_id, generate_turn_id
)

__all__ = [
    # Config
    "AppConfig",
    "ConfigManager",
    "load_config",
    # Logging
    "get_logger",
    "configure_logging",
    "TurnContext",
    "log_turn_end",
    "get_turn_id",
    "generate_turn_id",
]
