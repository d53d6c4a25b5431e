# API module - Model API integration and response handling
# One client per service, secrets from the environment only

from .response_parser import ToolCall, parse_tool_calls, parse_suppressed
from .client import (
    ModelClient, APIConfig, APIError, APIStatus, CancelToken,
    ChatResponse, ContentDelta, StreamComplete
)
from .handler import ResponseHandler, ResponseOutcome

__all__ = [
    "ToolCall",
    "parse_tool_calls",
    "parse_suppressed",
    "ModelClient",
    "APIConfig",
    "APIError",
    "APIStatus",
    "CancelToken",
    "ChatResponse",
    "ContentDelta",
    "StreamComplete",
    "ResponseHandler",
    "ResponseOutcome",
]
