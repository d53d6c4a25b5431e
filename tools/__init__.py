# Tools module - Tool registry, approval and execution
# Each tool: name, pydantic argument model, deterministic executor
# This registry is the firewall between the model and the system

from .registry import ToolRegistry, Tool, ToolArguments
from .executor import ToolExecutor, ExecutionResult, ExecutionStatus
from .approval import (
    ApprovalCoordinator, ApprovalDecision, ApprovalRequest, ApprovalResponse
)
from .functions import BuiltinTools, create_builtin_registry

__all__ = [
    "ToolRegistry",
    "Tool",
    "ToolArguments",
    "ToolExecutor",
    "ExecutionResult",
    "ExecutionStatus",
    "ApprovalCoordinator",
    "ApprovalDecision",
    "ApprovalRequest",
    "ApprovalResponse",
    "BuiltinTools",
    "create_builtin_registry",
]
