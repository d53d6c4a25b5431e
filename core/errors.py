"""
Error Handling Module
---------------------
Typed errors with classification and retry logic for the tool-call pipeline.

Every failure path ends in exactly one user-visible message.
Cancellation by the user is never an error.
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Dict, Optional
import logging
import traceback


class ErrorCategory(Enum):
    """Categories of errors for handling decisions."""
    TOOL_FAILURE = auto()        # Tool raised or timed out
    TOOL_NOT_FOUND = auto()      # Model asked for an unregistered tool
    TOOL_BLOCKED = auto()        # Project permission is NEVER
    PERMISSION_DENIED = auto()   # User declined the approval prompt
    TRANSPORT_CANCELLED = auto() # User interrupted the model call
    TRANSPORT_ERROR = auto()     # HTTP/network failure talking to the model
    TIMEOUT_ERROR = auto()       # Model call timed out
    RATE_LIMITED = auto()        # HTTP 429
    SYSTEM_ERROR = auto()        # Internal bug


@dataclass
class PipelineError:
    """
    Structured error with metadata.

    Used for consistent logging and user messages.
    """
    category: ErrorCategory
    message: str
    user_message: str = ""
    status_code: int = 0
    details: Optional[Dict[str, Any]] = None
    stack_trace: Optional[str] = None
    recoverable: bool = True

    @classmethod
    def from_exception(
        cls,
        exception: Exception,
        category: ErrorCategory,
        details: Optional[Dict] = None
    ) -> "PipelineError":
        """Create error from an exception."""
        return cls(
            category=category,
            message=str(exception),
            details=details,
            stack_trace=traceback.format_exc(),
            recoverable=category != ErrorCategory.SYSTEM_ERROR
        )

    def __repr__(self) -> str:
        return f"PipelineError({self.category.name}: {self.message})"


class RetryPolicy:
    """
    Retry policy for model API calls.

    Only transport-level failures are retried; tool failures go back
    to the model as tool results instead.
    """

    MAX_RETRIES: Dict[ErrorCategory, int] = {
        ErrorCategory.TRANSPORT_ERROR: 3,
        ErrorCategory.RATE_LIMITED: 3,
        ErrorCategory.TIMEOUT_ERROR: 1,
    }

    BASE_DELAY_SECONDS = 1.0
    MAX_DELAY_SECONDS = 30.0

    @classmethod
    def should_retry(cls, error: PipelineError, attempt: int) -> bool:
        """Check if operation should be retried."""
        max_retries = cls.MAX_RETRIES.get(error.category, 0)
        return attempt < max_retries and error.recoverable

    @classmethod
    def get_delay(cls, attempt: int) -> float:
        """Exponential backoff: 1s, 2s, 4s ... capped at 30s."""
        delay = cls.BASE_DELAY_SECONDS * (2 ** max(attempt - 1, 0))
        return min(delay, cls.MAX_DELAY_SECONDS)


class ErrorHandler:
    """
    Central error handler with logging and user messages.
    """

    def __init__(self):
        self._logger = logging.getLogger("seekcli.errors")

    def handle(self, error: PipelineError) -> str:
        """
        Handle an error and return the transcript line for it.

        Returns an empty string for errors that must not be shown.
        """
        self._log_error(error)
        return self._get_user_message(error)

    def _log_error(self, error: PipelineError) -> None:
        """Log error with appropriate level."""
        level_map = {
            ErrorCategory.TRANSPORT_CANCELLED: logging.INFO,
            ErrorCategory.PERMISSION_DENIED: logging.INFO,
            ErrorCategory.TOOL_BLOCKED: logging.WARNING,
            ErrorCategory.TOOL_NOT_FOUND: logging.WARNING,
            ErrorCategory.RATE_LIMITED: logging.WARNING,
            ErrorCategory.TOOL_FAILURE: logging.ERROR,
            ErrorCategory.TRANSPORT_ERROR: logging.ERROR,
            ErrorCategory.TIMEOUT_ERROR: logging.ERROR,
            ErrorCategory.SYSTEM_ERROR: logging.CRITICAL,
        }

        level = level_map.get(error.category, logging.ERROR)

        self._logger.log(
            level,
            f"{error.category.name}: {error.message}",
            extra={"details": error.details}
        )

        if error.stack_trace and level >= logging.ERROR:
            self._logger.debug(f"Stack trace:\n{error.stack_trace}")

    def _get_user_message(self, error: PipelineError) -> str:
        """Generate the transcript line for an error."""
        if error.category == ErrorCategory.TRANSPORT_CANCELLED:
            return ""

        if error.category == ErrorCategory.PERMISSION_DENIED:
            return "🚫 Tool execution cancelled"

        if error.category in {
            ErrorCategory.TOOL_FAILURE,
            ErrorCategory.TOOL_NOT_FOUND,
            ErrorCategory.TOOL_BLOCKED,
        }:
            return f"❌ Tool execution failed: {error.message}"

        if error.user_message:
            message = f"❌ {error.user_message}"
            if error.status_code > 0:
                message += f" (HTTP {error.status_code})"
            return message

        return f"❌ Error: {error.message}"


# Convenience functions

def create_tool_error(
    message: str,
    tool_name: str = "",
    category: ErrorCategory = ErrorCategory.TOOL_FAILURE
) -> PipelineError:
    """Create a tool failure error."""
    return PipelineError(
        category=category,
        message=message,
        details={"tool": tool_name}
    )


def create_denial_error(tool_name: str) -> PipelineError:
    """Create a user-denied approval error."""
    return PipelineError(
        category=ErrorCategory.PERMISSION_DENIED,
        message=f"User denied {tool_name}",
        details={"tool": tool_name},
    )
