"""
seekcli Centralized Logging
---------------------------
Structured logging with turn_id propagation for full request traceability.

Design:
- Every user turn gets a unique turn_id
- turn_id propagates through: Session -> Tool Manager -> Executor
- Console output through Rich, file output as JSON lines
- Clear severity discipline: INFO=state, WARNING=recoverable, ERROR=failure

Usage:
    from infra.logging import get_logger, TurnContext, log_turn_end

    logger = get_logger("core")

    with TurnContext() as turn_id:
        logger.info("Processing user input")
        log_turn_end(turn_id, success=True, tools_executed=2)
"""

import contextvars
import json
import logging
import logging.handlers
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler


ROOT_LOGGER = "seekcli"

_turn_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "turn_id", default=None
)


def generate_turn_id() -> str:
    """Generate a unique turn ID."""
    return f"turn_{uuid.uuid4().hex[:12]}"


def get_turn_id() -> Optional[str]:
    """Get the current turn ID from context."""
    return _turn_id_var.get()


class TurnContext:
    """
    Context manager for turn scoping.

    Usage:
        with TurnContext() as turn_id:
            # All logs within this block will have turn_id
            logger.info("Processing...")
    """

    def __init__(self, turn_id: Optional[str] = None):
        self._turn_id = turn_id or generate_turn_id()
        self._token: Optional[contextvars.Token] = None

    def __enter__(self) -> str:
        self._token = _turn_id_var.set(self._turn_id)
        return self._turn_id

    def __exit__(self, *args) -> None:
        if self._token is not None:
            _turn_id_var.reset(self._token)
            self._token = None


class TurnIdFilter(logging.Filter):
    """Logging filter that adds turn_id to every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "turn_id", None) is None:
            record.turn_id = get_turn_id() or "-"
        return True


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured file logging."""

    EXTRA_FIELDS = (
        "tool_name", "call_id", "execution_time_ms", "success", "tools_executed", "error", "details",
    )

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "turn_id": getattr(record, "turn_id", "-"),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        for key in self.EXTRA_FIELDS:
            if hasattr(record, key):
                log_entry[key] = getattr(record, key)

        return json.dumps(log_entry, default=str)


_logging_initialized = False
_log_file_path: Optional[Path] = None


def configure_logging(
    level: int = logging.INFO,
    log_dir: Optional[str] = None,
    console: bool = True,
    file: bool = True,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 3,
) -> Optional[Path]:
    """
    Configure the seekcli logging system. Idempotent.

    Args:
        level: Console logging level (default INFO)
        log_dir: Directory for log files (default: ~/.seekcli/logs)
        console: Enable console output
        file: Enable JSON file output

    Returns:
        Path of the log file, if file logging is enabled
    """
    global _logging_initialized, _log_file_path

    if _logging_initialized:
        return _log_file_path

    root_logger = logging.getLogger(ROOT_LOGGER)
    root_logger.setLevel(logging.DEBUG if file else level)
    root_logger.handlers.clear()
    root_logger.propagate = False

    turn_filter = TurnIdFilter()

    if console:
        console_handler = RichHandler(
            console=Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
            markup=False,
        )
        console_handler.setLevel(level)
        console_handler.addFilter(turn_filter)
        root_logger.addHandler(console_handler)

    if file:
        log_path = Path(log_dir).expanduser() if log_dir else Path.home() / ".seekcli" / "logs"
        log_path.mkdir(parents=True, exist_ok=True)

        _log_file_path = log_path / "seekcli.log"

        file_handler = logging.handlers.RotatingFileHandler(
            str(_log_file_path),
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)  # File gets everything
        file_handler.setFormatter(JSONFormatter())
        file_handler.addFilter(turn_filter)
        root_logger.addHandler(file_handler)

    _logging_initialized = True
    return _log_file_path


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger in the seekcli namespace.

    Args:
        name: Logger name (prefixed with 'seekcli.' if not already)
    """
    if not name.startswith(ROOT_LOGGER):
        name = f"{ROOT_LOGGER}.{name}"

    return logging.getLogger(name)


def log_turn_end(
    turn_id: str,
    success: bool,
    tools_executed: int = 0,
    error: Optional[str] = None,
) -> None:
    """
    Log the end of a user turn with summary information.

    This is the TURN_END boundary event for post-mortems.
    """
    logger = get_logger("core.turn")

    extra = {
        "turn_id": turn_id,
        "success": success,
        "tools_executed": tools_executed,
    }

    if success:
        logger.info(
            f"TURN_END: success={success}, tools_executed={tools_executed}",
            extra=extra,
        )
    else:
        extra["error"] = error or "Unknown error"
        logger.error(
            f"TURN_END: success={success}, error={error or 'Unknown'}",
            extra=extra,
        )
