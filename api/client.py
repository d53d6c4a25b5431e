"""
Model API Client
----------------
DeepSeek-compatible chat completions client.

Supports:
- Non-streaming requests with retry and exponential backoff
- Streaming (SSE) requests yielding content deltas
- User cancellation through a CancelToken, reported as a benign APIError

API keys are loaded from the environment and never logged.
"""

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Callable, Dict, Iterator, List, Optional, Union
import json
import logging
import os
import threading
import time

import httpx

from api.response_parser import ToolCall
from core.errors import ErrorCategory, PipelineError, RetryPolicy


CANCELLED_MESSAGE = "request cancelled by user"


class APIStatus(Enum):
    """Status of an API call."""
    CANCELLED = auto()
    BAD_REQUEST = auto()
    AUTH_ERROR = auto()
    RATE_LIMITED = auto()
    SERVER_ERROR = auto()
    TIMEOUT = auto()
    NETWORK_ERROR = auto()
    INVALID_RESPONSE = auto()


class APIError(Exception):
    """
    Error talking to the model API.

    `message` is for logs, `user_message` is for the transcript.
    """

    def __init__(
        self,
        message: str,
        user_message: str = "",
        status: APIStatus = APIStatus.NETWORK_ERROR,
        status_code: int = 0,
        retryable: bool = False
    ):
        super().__init__(message)
        self.message = message
        self.user_message = user_message or message
        self.status = status
        self.status_code = status_code
        self.retryable = retryable

    @classmethod
    def cancelled_by_user(cls) -> "APIError":
        return cls(
            CANCELLED_MESSAGE,
            user_message="Request cancelled",
            status=APIStatus.CANCELLED,
        )

    @property
    def cancelled(self) -> bool:
        return self.status == APIStatus.CANCELLED

    def to_pipeline_error(self) -> PipelineError:
        """Classify for the central error handler."""
        category_map = {
            APIStatus.CANCELLED: ErrorCategory.TRANSPORT_CANCELLED,
            APIStatus.RATE_LIMITED: ErrorCategory.RATE_LIMITED,
            APIStatus.TIMEOUT: ErrorCategory.TIMEOUT_ERROR,
        }
        return PipelineError(
            category=category_map.get(self.status, ErrorCategory.TRANSPORT_ERROR),
            message=self.message,
            user_message=self.user_message,
            status_code=self.status_code,
            recoverable=self.retryable,
        )

    def __repr__(self) -> str:
        return f"APIError({self.status.name}: {self.message})"


class CancelToken:
    """Thread-safe cancellation flag for an in-flight model call."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class APIConfig:
    """Configuration for the model API client."""
    base_url: str = "https://api.deepseek.com"
    model: str = "deepseek-chat"
    api_key_env: str = "DEEPSEEK_API_KEY"  # Environment variable name (NOT the actual key)
    temperature: float = 0.1
    max_tokens: int = 4096
    timeout_seconds: float = 120.0
    max_retries: int = 3
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass
class ChatResponse:
    """Completed non-streaming response."""
    content: str
    tool_calls: List[ToolCall] = field(default_factory=list)


@dataclass
class ContentDelta:
    """A piece of streamed assistant text."""
    text: str


@dataclass
class StreamComplete:
    """Terminal stream event with the accumulated text."""
    text: str
    tool_calls: List[ToolCall] = field(default_factory=list)
    error: Optional[APIError] = None


StreamEvent = Union[ContentDelta, StreamComplete]


class ModelClient:
    """
    Chat completions client.

    Rules:
    - API key from environment (or explicit argument) only
    - Retryable failures are retried with backoff, others raise at once
    - Cancellation is checked between attempts and between stream lines
    """

    def __init__(
        self,
        config: Optional[APIConfig] = None,
        api_key: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.config = config or APIConfig()
        self._logger = logging.getLogger("seekcli.api.client")
        self._api_key = api_key or os.getenv(self.config.api_key_env)
        self._sleep = sleep
        self._http = httpx.Client(
            base_url=self.config.base_url,
            timeout=self.config.timeout_seconds,
            transport=transport,
        )

        if not self._api_key:
            self._logger.warning(f"API key not found: {self.config.api_key_env}")

    @property
    def is_configured(self) -> bool:
        """Check if API client is properly configured."""
        return bool(self._api_key)

    def close(self) -> None:
        self._http.close()

    def _get_headers(self) -> Dict[str, str]:
        """Build request headers with authentication."""
        headers = {
            "Content-Type": "application/json",
            "User-Agent": "seekcli/0.1",
        }
        headers.update(self.config.headers)

        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        return headers

    def _build_payload(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict]],
        tool_choice: Optional[str],
        stream: bool
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.config.model,
            "messages": messages,
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
            "stream": stream,
        }
        if tools:
            payload["tools"] = tools
            if tool_choice:
                payload["tool_choice"] = tool_choice
        return payload

    def chat(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict]] = None,
        tool_choice: Optional[str] = None,
        cancel: Optional[CancelToken] = None
    ) -> ChatResponse:
        """
        Send a non-streaming chat request.

        Raises:
            APIError: on cancellation or after retries are exhausted
        """
        payload = self._build_payload(messages, tools, tool_choice, stream=False)
        attempt = 0

        while True:
            if cancel is not None and cancel.cancelled:
                raise APIError.cancelled_by_user()

            try:
                return self._send_once(payload)
            except APIError as e:
                if not RetryPolicy.should_retry(e.to_pipeline_error(), attempt) \
                        or attempt >= self.config.max_retries:
                    raise
                attempt += 1
                delay = RetryPolicy.get_delay(attempt)
                self._logger.warning(
                    f"Model request failed ({e.message}), retry {attempt} in {delay:.0f}s"
                )
                self._sleep(delay)

    def _send_once(self, payload: Dict[str, Any]) -> ChatResponse:
        if not self.is_configured:
            raise APIError(
                f"API key not configured: {self.config.api_key_env}",
                user_message=(
                    f"API key is invalid or missing. Please set "
                    f"{self.config.api_key_env} environment variable."
                ),
                status=APIStatus.AUTH_ERROR,
            )

        try:
            response = self._http.post(
                "/chat/completions", json=payload, headers=self._get_headers()
            )
        except httpx.TimeoutException as e:
            raise APIError(
                f"request timed out: {e}",
                user_message="Request timed out. Retrying...",
                status=APIStatus.TIMEOUT,
                retryable=True,
            ) from e
        except httpx.TransportError as e:
            raise APIError(
                f"network error: {e}",
                user_message="Network error. Retrying...",
                status=APIStatus.NETWORK_ERROR,
                retryable=True,
            ) from e

        if response.status_code != 200:
            raise self._handle_http_error(response.status_code, response.text)

        try:
            data = response.json()
        except ValueError as e:
            raise APIError(
                f"invalid JSON response: {e}",
                user_message="Error parsing response. Retrying...",
                status=APIStatus.INVALID_RESPONSE,
                retryable=True,
            ) from e

        choices = data.get("choices") or []
        if not choices:
            raise APIError(
                "no choices in response",
                user_message="Empty response received. Retrying...",
                status=APIStatus.INVALID_RESPONSE,
                retryable=True,
            )

        message = choices[0].get("message") or {}
        return ChatResponse(
            content=message.get("content") or "",
            tool_calls=_tool_calls_from_api(message.get("tool_calls") or []),
        )

    def stream_chat(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict]] = None,
        tool_choice: Optional[str] = None,
        cancel: Optional[CancelToken] = None
    ) -> Iterator[StreamEvent]:
        """
        Stream a chat request.

        Yields ContentDelta events and always ends with exactly one
        StreamComplete, which carries the error if the stream failed.
        """
        payload = self._build_payload(messages, tools, tool_choice, stream=True)
        accumulated = ""
        partial_calls: Dict[int, Dict[str, str]] = {}

        if not self.is_configured:
            yield StreamComplete(text="", error=APIError(
                f"API key not configured: {self.config.api_key_env}",
                user_message=(
                    f"API key is invalid or missing. Please set "
                    f"{self.config.api_key_env} environment variable."
                ),
                status=APIStatus.AUTH_ERROR,
            ))
            return

        try:
            with self._http.stream(
                "POST", "/chat/completions", json=payload, headers=self._get_headers()
            ) as response:
                if response.status_code != 200:
                    body = response.read().decode("utf-8", errors="replace")
                    yield StreamComplete(
                        text="", error=self._handle_http_error(response.status_code, body)
                    )
                    return

                for line in response.iter_lines():
                    if cancel is not None and cancel.cancelled:
                        self._logger.info("Stream cancelled by user")
                        yield StreamComplete(
                            text=accumulated, error=APIError.cancelled_by_user()
                        )
                        return

                    chunk = _parse_sse_line(line)
                    if chunk is None:
                        continue
                    if chunk == "[DONE]":
                        break

                    choices = chunk.get("choices") or []
                    if not choices:
                        continue
                    delta = choices[0].get("delta") or {}

                    _merge_tool_call_deltas(partial_calls, delta.get("tool_calls") or [])

                    content = delta.get("content") or ""
                    if content:
                        accumulated += content
                        yield ContentDelta(text=content)

        except httpx.TimeoutException as e:
            yield StreamComplete(text=accumulated, error=APIError(
                f"stream timed out: {e}",
                user_message="Request timed out. Please try again.",
                status=APIStatus.TIMEOUT,
            ))
            return
        except httpx.TransportError as e:
            yield StreamComplete(text=accumulated, error=APIError(
                f"network error: {e}",
                user_message="Network error. Please try again.",
                status=APIStatus.NETWORK_ERROR,
            ))
            return

        yield StreamComplete(
            text=accumulated,
            tool_calls=_tool_calls_from_api(
                [partial_calls[index] for index in sorted(partial_calls)]
            ),
        )

    def _handle_http_error(self, status_code: int, body: str) -> APIError:
        """Map an HTTP error status to a user-friendly APIError."""
        if status_code == 400:
            return APIError(
                f"bad request: {body}",
                user_message="Invalid request. Please check your input and try again.",
                status=APIStatus.BAD_REQUEST,
                status_code=status_code,
            )
        if status_code == 401:
            return APIError(
                f"unauthorized: {body}",
                user_message=(
                    f"API key is invalid or missing. Please set "
                    f"{self.config.api_key_env} environment variable."
                ),
                status=APIStatus.AUTH_ERROR,
                status_code=status_code,
            )
        if status_code == 403:
            return APIError(
                f"forbidden: {body}",
                user_message="Access denied. Please check your API key permissions.",
                status=APIStatus.AUTH_ERROR,
                status_code=status_code,
            )
        if status_code == 429:
            return APIError(
                f"rate limited: {body}",
                user_message="Rate limit exceeded. Retrying with backoff...",
                status=APIStatus.RATE_LIMITED,
                status_code=status_code,
                retryable=True,
            )
        if status_code >= 500:
            return APIError(
                f"server error ({status_code}): {body}",
                user_message="Server error. Retrying...",
                status=APIStatus.SERVER_ERROR,
                status_code=status_code,
                retryable=True,
            )
        return APIError(
            f"API error ({status_code}): {body}",
            user_message=f"API error (status {status_code}). Please try again.",
            status=APIStatus.SERVER_ERROR,
            status_code=status_code,
        )


def _parse_sse_line(line: str) -> Optional[Union[str, Dict]]:
    """Decode one SSE line; returns None for comments and keep-alives."""
    line = line.strip()
    if not line.startswith("data:"):
        return None

    data = line[len("data:"):].strip()
    if data == "[DONE]":
        return data

    try:
        return json.loads(data)
    except ValueError:
        logging.getLogger("seekcli.api.client").debug(f"Skipping malformed SSE line: {data!r}")
        return None


def _merge_tool_call_deltas(partial: Dict[int, Dict[str, str]], deltas: List[Dict]) -> None:
    """Accumulate streamed tool_call fragments by index."""
    for position, delta in enumerate(deltas):
        index = delta.get("index", position)
        entry = partial.setdefault(index, {"id": "", "name": "", "arguments": ""})
        if delta.get("id"):
            entry["id"] = delta["id"]
        function = delta.get("function") or {}
        if function.get("name"):
            entry["name"] = function["name"]
        if function.get("arguments"):
            entry["arguments"] += function["arguments"]


def _tool_calls_from_api(raw_calls: List[Dict]) -> List[ToolCall]:
    """Convert structured tool_calls (API or merged stream form) to ToolCall."""
    calls = []
    for raw in raw_calls:
        function = raw.get("function")
        if function is not None:
            name = function.get("name", "")
            arguments = function.get("arguments", "")
        else:
            name = raw.get("name", "")
            arguments = raw.get("arguments", "")
        calls.append(ToolCall(id=raw.get("id", ""), function_name=name, arguments=arguments))
    return calls
