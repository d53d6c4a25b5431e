# Core module - Tool pipeline state and error handling
# ToolManager (core.tool_manager) is the ONLY coordinator of tool calls;
# import it and ChatSession (core.session) from their modules directly

from .state_machine import StateMachine, State, StateTransition
from .errors import ErrorHandler, PipelineError, ErrorCategory, RetryPolicy

__all__ = [
    "StateMachine", "State", "StateTransition",
    "ErrorHandler", "PipelineError", "ErrorCategory", "RetryPolicy",
]
