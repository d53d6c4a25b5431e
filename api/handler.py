"""
Response Handler
----------------
Classifies a finished model reply before it reaches the tool pipeline.

Rules:
- Cancellation is benign and produces no error text
- Errors produce exactly one transcript line
- In suppressed mode no tool calls are ever returned
"""

from dataclasses import dataclass, field
from typing import List, Optional
import logging

from api.client import APIError
from api.response_parser import ToolCall, parse_suppressed, parse_tool_calls
from core.errors import ErrorCategory, ErrorHandler, PipelineError


CANCELLED_NOTICE = "🚫 Request cancelled"


@dataclass
class ResponseOutcome:
    """What the session should do with one model reply."""
    success: bool
    assistant_content: str = ""
    tool_calls: List[ToolCall] = field(default_factory=list)
    error_message: str = ""
    cancelled: bool = False
    suppressed: bool = False

    @property
    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0


class ResponseHandler:
    """
    Turns (response text, error) into a ResponseOutcome.

    Structured tool_calls from the API take precedence over inline
    markup; both are ignored in suppressed mode.
    """

    def __init__(self, error_handler: Optional[ErrorHandler] = None):
        self._logger = logging.getLogger("seekcli.api.handler")
        self._errors = error_handler or ErrorHandler()

    def handle(
        self,
        response: str,
        error: Optional[Exception] = None,
        suppress: bool = False,
        structured_calls: Optional[List[ToolCall]] = None
    ) -> ResponseOutcome:
        if error is not None:
            return self._handle_error(error)

        if suppress:
            content = parse_suppressed(response)
            self._logger.debug("Handled suppressed follow-up response")
            return ResponseOutcome(success=True, assistant_content=content, suppressed=True)

        calls, remaining = parse_tool_calls(response)
        if structured_calls:
            calls = list(structured_calls)

        if calls:
            self._logger.info(f"Response requested {len(calls)} tool call(s)")

        return ResponseOutcome(
            success=True,
            assistant_content=remaining,
            tool_calls=calls,
        )

    def _handle_error(self, error: Exception) -> ResponseOutcome:
        if isinstance(error, APIError):
            pipeline_error = error.to_pipeline_error()
        else:
            pipeline_error = PipelineError.from_exception(error, ErrorCategory.SYSTEM_ERROR)

        message = self._errors.handle(pipeline_error)

        if pipeline_error.category == ErrorCategory.TRANSPORT_CANCELLED:
            return ResponseOutcome(success=False, cancelled=True, error_message=CANCELLED_NOTICE)

        return ResponseOutcome(success=False, error_message=message)
