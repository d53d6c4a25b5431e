"""
Tool Manager
------------
Orchestrates the tool calls of one model turn: approval, execution,
history, and the single follow-up call that narrates the results.

Flow:
    IDLE → AWAITING_APPROVAL(call) → EXECUTING(call)
         → {AWAITING_APPROVAL(next) | FOLLOWUP_PENDING} → IDLE

Rules:
- Calls run one at a time, in parse order
- Every executed call adds an assistant entry and a tool entry to history
- Denial clears the whole queue; nothing is executed or appended
- Tool failures become tool results, never exceptions
- The suppress flag is set once per round trip and consumed once
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, List, Optional
import logging
import uuid

from api.response_parser import ToolCall
from memory.conversation import ConversationMemory
from tools.approval import (
    ApprovalCoordinator, ApprovalDecision, ApprovalRequest, ApprovalResponse
)
from tools.executor import ExecutionResult, ExecutionStatus, ToolExecutor
from .errors import (
    ErrorCategory, ErrorHandler, create_denial_error, create_tool_error
)
from .state_machine import State, StateMachine


class ActionKind(Enum):
    """What the driver must do next."""
    REQUEST_APPROVAL = auto()
    EXECUTE = auto()
    FOLLOWUP = auto()
    IDLE = auto()


@dataclass
class PendingApproval:
    """The single outstanding approval, correlated by a short ID."""
    id: str
    call: ToolCall
    request: ApprovalRequest


@dataclass
class PipelineAction:
    """Instruction returned by every ToolManager operation."""
    kind: ActionKind
    call: Optional[ToolCall] = None
    approval: Optional[PendingApproval] = None

    @classmethod
    def request_approval(cls, approval: PendingApproval) -> "PipelineAction":
        return cls(kind=ActionKind.REQUEST_APPROVAL, call=approval.call, approval=approval)

    @classmethod
    def execute(cls, call: ToolCall) -> "PipelineAction":
        return cls(kind=ActionKind.EXECUTE, call=call)

    @classmethod
    def followup(cls) -> "PipelineAction":
        return cls(kind=ActionKind.FOLLOWUP)

    @classmethod
    def idle(cls) -> "PipelineAction":
        return cls(kind=ActionKind.IDLE)


_FAILURE_CATEGORIES = {
    ExecutionStatus.UNKNOWN_TOOL: ErrorCategory.TOOL_NOT_FOUND,
    ExecutionStatus.BLOCKED: ErrorCategory.TOOL_BLOCKED,
}


class ToolManager:
    """
    Owns the pending queue, the outstanding approval and the suppress flag.

    The driver loop calls an operation, gets a PipelineAction back and
    performs it: show the approval dialog, call execute_current(), or
    send the follow-up request.
    """

    def __init__(
        self,
        executor: ToolExecutor,
        approvals: ApprovalCoordinator,
        history: ConversationMemory,
        notify: Optional[Callable[[str], None]] = None,
        error_handler: Optional[ErrorHandler] = None
    ):
        self.executor = executor
        self.approvals = approvals
        self.history = history
        self._notify = notify or (lambda message: None)
        self._errors = error_handler or ErrorHandler()
        self._logger = logging.getLogger("seekcli.core.tool_manager")

        self._machine = StateMachine()
        self._queue: List[ToolCall] = []
        self._pending: Optional[PendingApproval] = None
        self._current: Optional[ToolCall] = None
        self._current_blocked = False
        self._suppress = False

    @property
    def state(self) -> State:
        return self._machine.state

    @property
    def state_machine(self) -> StateMachine:
        return self._machine

    @property
    def pending_calls(self) -> List[ToolCall]:
        """Queued calls, head first (read-only copy)."""
        return self._queue.copy()

    @property
    def pending_approval(self) -> Optional[PendingApproval]:
        return self._pending

    @property
    def should_suppress_tool_calls(self) -> bool:
        return self._suppress

    def handle_parsed_tool_calls(self, calls: List[ToolCall]) -> Optional[PipelineAction]:
        """
        Start processing the calls parsed from one response.

        Returns None when there is nothing to do.
        """
        if not calls:
            return None

        if self._machine.is_busy():
            self._logger.warning(
                f"New tool calls while {self.state.name}; replacing pending work"
            )
            self.reset("replaced by new tool calls")

        self._queue = list(calls)
        self._logger.info(f"Queued {len(calls)} tool call(s): {[c.function_name for c in calls]}")

        action = self._advance()
        return action or PipelineAction.idle()

    def on_approval_resolved(
        self,
        response: ApprovalResponse,
        approval_id: str
    ) -> Optional[PipelineAction]:
        """
        Apply the user's answer to the outstanding approval.

        Stale or mismatched answers are logged and ignored (returns None).
        """
        pending = self._pending
        if self.state != State.AWAITING_APPROVAL or pending is None:
            self._logger.warning(
                f"Ignoring approval {approval_id}: nothing awaiting approval ({self.state.name})"
            )
            return None
        if pending.id != approval_id:
            self._logger.warning(
                f"Ignoring approval {approval_id}: outstanding approval is {pending.id}"
            )
            return None

        self._pending = None
        call = pending.call

        if not self.approvals.apply(call, response):
            dropped = len(self._queue)
            self._queue.clear()
            self._logger.info(f"Denied {call.function_name}; dropped {dropped} queued call(s)")
            self._emit(self._errors.handle(create_denial_error(call.function_name)))
            self._machine.transition(State.IDLE, f"user denied {call.function_name}")
            return PipelineAction.idle()

        if self._queue and self._queue[0] is call:
            self._queue.pop(0)

        self._current = call
        self._current_blocked = False
        self._machine.transition(
            State.EXECUTING,
            f"user approved {call.function_name}",
        )
        return PipelineAction.execute(call)

    def execute_current(self) -> ExecutionResult:
        """Run the call in EXECUTING. Tool failures come back as results."""
        if self.state != State.EXECUTING or self._current is None:
            raise RuntimeError(f"No call to execute in state {self.state.name}")

        call = self._current
        if self._current_blocked:
            self._logger.warning(f"Skipping blocked function {call.function_name}")
            return ExecutionResult.blocked(call.function_name)

        self._logger.info(f"Executing {call.function_name} ({call.id})")
        return self.executor.execute(call)

    def on_execution_complete(self, result: ExecutionResult) -> PipelineAction:
        """
        Record a result and move to the next call or the follow-up.
        """
        if self.state != State.EXECUTING or self._current is None:
            raise RuntimeError(f"No call in flight in state {self.state.name}")

        call = self._current
        self._current = None
        self._current_blocked = False

        self._logger.info(
            f"Tool call {call.id} finished: {result.status.name}",
            extra={
                "tool_name": call.function_name,
                "call_id": call.id,
                "execution_time_ms": round(result.execution_time_ms, 1),
                "success": result.success,
            },
        )

        self.history.add_tool_call(call)
        if result.success:
            self.history.add_tool_result(call.id, result.output)
            self._emit(f"🔧 {call.function_name} result:\n\n{result.output}")
        else:
            self.history.add_tool_result(call.id, f"Error: {result.error}")
            category = _FAILURE_CATEGORIES.get(result.status, ErrorCategory.TOOL_FAILURE)
            self._emit(self._errors.handle(
                create_tool_error(result.error, call.function_name, category)
            ))

        action = self._advance()
        if action is not None:
            return action

        self._suppress = True
        self._machine.transition(State.FOLLOWUP_PENDING, "all tool calls complete")
        return PipelineAction.followup()

    def clear_suppress_tool_calls(self) -> bool:
        """Consume the suppress flag. Returns its previous value."""
        was_set = self._suppress
        self._suppress = False
        if self.state == State.FOLLOWUP_PENDING:
            self._machine.transition(State.IDLE, "follow-up response handled")
        return was_set

    def reset(self, reason: str) -> None:
        """Drop all pending work and return to IDLE."""
        if self._queue or self._pending or self._current or self._suppress:
            self._logger.info(f"Resetting tool manager: {reason}")

        self._queue.clear()
        self._pending = None
        self._current = None
        self._current_blocked = False
        self._suppress = False
        self._machine.reset(reason)

    def _advance(self) -> Optional[PipelineAction]:
        """
        Start work on the next valid queued call.

        Returns None when the queue is exhausted.
        """
        while self._queue and not self._queue[0].is_valid:
            dropped = self._queue.pop(0)
            self._logger.warning(f"Dropping invalid tool call: {dropped!r}")

        if not self._queue:
            return None

        call = self._queue[0]
        decision = self.approvals.check(call)

        if decision == ApprovalDecision.ASK:
            self._pending = PendingApproval(
                id=str(uuid.uuid4())[:8],
                call=call,
                request=self.approvals.build_request(call),
            )
            self._machine.transition(
                State.AWAITING_APPROVAL,
                f"approval needed for {call.function_name}",
            )
            return PipelineAction.request_approval(self._pending)

        self._queue.pop(0)
        self._current = call
        self._current_blocked = decision == ApprovalDecision.BLOCK
        self._machine.transition(
            State.EXECUTING,
            f"stored permission {decision.name} for {call.function_name}",
        )
        return PipelineAction.execute(call)

    def _emit(self, message: str) -> None:
        if message:
            self._notify(message)
