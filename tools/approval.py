"""
Approval Coordinator
--------------------
Human-in-the-loop approval for tool calls.

Rules:
- Stored ALWAYS executes without asking, stored NEVER blocks without asking
- Anything else produces an ApprovalRequest for the user
- Only non-ONCE approvals are persisted; denial persists nothing
- A persistence failure never blocks an approved execution
"""

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, Optional
import json
import logging

from api.response_parser import ToolCall
from security.permissions import PermissionLevel, PermissionStore
from .registry import ToolRegistry


class ApprovalDecision(Enum):
    """Outcome of a permission check before prompting."""
    EXECUTE = auto()    # Stored ALWAYS
    BLOCK = auto()      # Stored NEVER
    ASK = auto()        # No record


@dataclass
class ApprovalRequest:
    """What the user sees when asked to approve a call."""
    function_name: str
    description: str
    arguments: Dict[str, Any] = field(default_factory=dict)
    warning: Optional[str] = None


@dataclass
class ApprovalResponse:
    """The user's answer."""
    approved: bool
    level: PermissionLevel = PermissionLevel.ONCE

    @classmethod
    def deny(cls) -> "ApprovalResponse":
        return cls(approved=False, level=PermissionLevel.ONCE)


def decode_arguments_best_effort(arguments: str) -> tuple:
    """
    Decode arguments for display.

    Returns (arguments, warning). Malformed, empty, "null" or non-object
    text decodes to {}; a warning is produced only for non-empty text
    that could not be shown.
    """
    text = (arguments or "").strip()
    if text in ("", "null"):
        return {}, None

    try:
        value = json.loads(text)
    except ValueError:
        return {}, f"Arguments could not be decoded: {text}"

    if not isinstance(value, dict):
        return {}, f"Arguments are not a JSON object: {text}"

    return value, None


class ApprovalCoordinator:
    """
    Turns tool calls into approval requests and applies the answers.

    The coordinator holds no pending state; the orchestrator owns the
    single outstanding request.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        store: PermissionStore,
        project_path: str
    ):
        self.registry = registry
        self.store = store
        self.project_path = project_path
        self._logger = logging.getLogger("seekcli.tools.approval")

    def check(self, call: ToolCall) -> ApprovalDecision:
        """Consult the permission store for a call."""
        level = self.store.check_permission(call.function_name, self.project_path)

        if level == PermissionLevel.ALWAYS:
            decision = ApprovalDecision.EXECUTE
        elif level == PermissionLevel.NEVER:
            decision = ApprovalDecision.BLOCK
        else:
            decision = ApprovalDecision.ASK

        self._log_decision(call, decision)
        return decision

    def build_request(self, call: ToolCall) -> ApprovalRequest:
        """Build the user-facing request for a call."""
        tool = self.registry.get(call.function_name)
        description = tool.description if tool else f"Execute {call.function_name}"

        arguments, warning = decode_arguments_best_effort(call.arguments)
        if warning:
            self._logger.warning(f"{call.function_name} ({call.id}): {warning}")

        return ApprovalRequest(
            function_name=call.function_name,
            description=description,
            arguments=arguments,
            warning=warning,
        )

    def apply(self, call: ToolCall, response: ApprovalResponse) -> bool:
        """
        Apply the user's answer.

        Returns True if the call should execute.
        """
        if not response.approved:
            self._logger.info(f"User denied {call.function_name} ({call.id})")
            return False

        if response.level != PermissionLevel.ONCE:
            try:
                self.store.set_permission(call.function_name, self.project_path, response.level)
            except (OSError, ValueError) as e:
                self._logger.error(f"Failed to persist permission for {call.function_name}: {e}")

        self._logger.info(
            f"User approved {call.function_name} ({call.id}) level={response.level.value}"
        )
        return True

    def _log_decision(self, call: ToolCall, decision: ApprovalDecision) -> None:
        """Log a permission decision."""
        level = logging.WARNING if decision == ApprovalDecision.BLOCK else logging.INFO
        self._logger.log(
            level,
            f"Approval decision: {decision.name} | "
            f"tool={call.function_name} | "
            f"call_id={call.id}"
        )
