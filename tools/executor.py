"""
Tool Executor
-------------
Runs one approved tool call with argument decoding, validation and
timeout enforcement.

Rules:
- Never raises across its boundary; every failure is an ExecutionResult
- Tools run in a single-thread worker that is abandoned on timeout
- An abandoned worker keeps running and is joined at interpreter exit,
  so executors must not block without a bound of their own
- Empty or "null" argument text means no arguments
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum, auto
from typing import Any, Dict, Optional, Tuple
import concurrent.futures
import json
import logging

from api.response_parser import ToolCall
from .registry import Tool, ToolArguments, ToolRegistry


DEFAULT_TIMEOUT_SECONDS = 30.0


class ExecutionStatus(Enum):
    """Status of tool execution."""
    SUCCESS = auto()
    INVALID_ARGUMENTS = auto()
    TIMEOUT = auto()
    EXECUTION_ERROR = auto()
    UNKNOWN_TOOL = auto()
    BLOCKED = auto()        # Project permission is NEVER; tool never ran


@dataclass
class ExecutionResult:
    """Result of tool execution."""
    tool_name: str
    status: ExecutionStatus
    output: str = ""
    error: str = ""
    execution_time_ms: float = 0.0

    def __post_init__(self):
        if self.status == ExecutionStatus.SUCCESS and self.error:
            raise ValueError("successful ExecutionResult cannot carry an error")

    @property
    def success(self) -> bool:
        return self.status == ExecutionStatus.SUCCESS

    @classmethod
    def blocked(cls, tool_name: str) -> "ExecutionResult":
        return cls(
            tool_name=tool_name,
            status=ExecutionStatus.BLOCKED,
            error=f"function {tool_name} is blocked in this project",
        )

    def __repr__(self) -> str:
        status = "✓" if self.success else "✗"
        return f"ExecutionResult({status} {self.tool_name}: {self.output or self.error})"


def decode_arguments(arguments: str) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """
    Decode tool argument text into an object.

    Returns (args, error). Empty and "null" text decode to {}.
    """
    text = (arguments or "").strip()
    if text in ("", "null"):
        text = "{}"

    try:
        value = json.loads(text)
    except ValueError as e:
        return None, f"invalid JSON arguments: {e}"

    if not isinstance(value, dict):
        return None, f"arguments must be a JSON object, got {type(value).__name__}"

    return value, None


class ToolExecutor:
    """
    Executes tool calls looked up in an injected registry.

    Only the orchestrator calls this, and only for calls that have
    already passed approval.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        default_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    ):
        self.registry = registry
        self.default_timeout_seconds = default_timeout_seconds
        self._logger = logging.getLogger("seekcli.tools.executor")

    def execute(self, call: ToolCall) -> ExecutionResult:
        """Execute a single tool call. Never raises."""
        tool = self.registry.get(call.function_name)
        if tool is None:
            self._logger.warning(f"Model requested unknown tool: {call.function_name}")
            return ExecutionResult(
                tool_name=call.function_name,
                status=ExecutionStatus.UNKNOWN_TOOL,
                error=f"tool {call.function_name} not found",
            )

        args, error = decode_arguments(call.arguments)
        if error is not None:
            self._logger.warning(f"Bad arguments for {tool.name}: {error}")
            return ExecutionResult(
                tool_name=tool.name,
                status=ExecutionStatus.INVALID_ARGUMENTS,
                error=f"{tool.name}: {error}",
            )

        try:
            params = tool.parse_args(args)
        except ValueError as e:
            self._logger.warning(
                f"Validation failed for {tool.name}: {e}",
                extra={"tool_name": tool.name, "call_id": call.id},
            )
            return ExecutionResult(
                tool_name=tool.name,
                status=ExecutionStatus.INVALID_ARGUMENTS,
                error=f"{tool.name}: {e}",
            )

        return self._execute_with_timeout(tool, params, call)

    def _execute_with_timeout(
        self, tool: Tool, params: ToolArguments, call: ToolCall
    ) -> ExecutionResult:
        """Execute tool with timeout and error handling."""
        timeout = tool.timeout_seconds or self.default_timeout_seconds
        start_time = datetime.now(timezone.utc)

        # No context manager: its exit would wait for a hung tool
        pool = concurrent.futures.ThreadPoolExecutor(
            max_workers=1, thread_name_prefix=f"tool-{tool.name}"
        )
        try:
            future = pool.submit(tool.executor, params)
            output = future.result(timeout=timeout)

            execution_time = (datetime.now(timezone.utc) - start_time).total_seconds() * 1000
            self._logger.info(
                f"Executed {tool.name} in {execution_time:.0f}ms",
                extra={
                    "tool_name": tool.name,
                    "call_id": call.id,
                    "execution_time_ms": round(execution_time, 1),
                },
            )

            return ExecutionResult(
                tool_name=tool.name,
                status=ExecutionStatus.SUCCESS,
                output="" if output is None else str(output),
                execution_time_ms=execution_time,
            )

        except concurrent.futures.TimeoutError:
            self._logger.error(
                f"Timeout executing {tool.name} after {timeout:.0f}s",
                extra={"tool_name": tool.name, "call_id": call.id},
            )
            return ExecutionResult(
                tool_name=tool.name,
                status=ExecutionStatus.TIMEOUT,
                error=f"{tool.name} timed out after {timeout:.0f}s",
            )

        except Exception as e:
            self._logger.error(
                f"Execution error in {tool.name}: {e}",
                extra={"tool_name": tool.name, "call_id": call.id},
            )
            return ExecutionResult(
                tool_name=tool.name,
                status=ExecutionStatus.EXECUTION_ERROR,
                error=str(e) or type(e).__name__,
            )

        finally:
            pool.shutdown(wait=False, cancel_futures=True)
