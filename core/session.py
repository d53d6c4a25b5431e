"""
Chat Session
------------
The driver loop for one conversation.

Per user turn:
    request → ResponseHandler → ToolManager actions
      (approval prompt / execute / follow-up) → transcript

Rules:
- Each turn runs in a TurnContext and ends with log_turn_end
- The follow-up request always uses tool_choice="none" and is handled
  in suppressed mode
- Cancellation and transport errors reset all tool state
- If the first request of a turn fails, the user message is rolled back
"""

from dataclasses import dataclass
from typing import Callable, List, Optional
import logging

from api.client import APIError, CancelToken, ContentDelta, ModelClient, StreamComplete
from api.handler import ResponseHandler, ResponseOutcome
from api.response_parser import ToolCall
from memory.conversation import ConversationMemory
from tools.approval import ApprovalRequest, ApprovalResponse
from tools.registry import ToolRegistry
from infra.logging import TurnContext, log_turn_end
from .tool_manager import ActionKind, PipelineAction, ToolManager


ApprovalCallback = Callable[[ApprovalRequest], ApprovalResponse]


class Transcript:
    """
    Sink for user-visible output.

    The CLI subclasses this; the base class discards everything.
    """

    def system(self, message: str) -> None:
        pass

    def assistant(self, content: str) -> None:
        pass

    def delta(self, text: str) -> None:
        pass

    def end_stream(self) -> None:
        """Called once a streamed reply has ended, however it ended."""
        pass


@dataclass
class TurnResult:
    """Summary of one user turn."""
    turn_id: str
    success: bool
    tools_executed: int = 0
    cancelled: bool = False
    error: str = ""


class ChatSession:
    """
    Drives model requests and the tool pipeline for one conversation.
    """

    def __init__(
        self,
        client: ModelClient,
        tool_manager: ToolManager,
        history: ConversationMemory,
        registry: ToolRegistry,
        approve: ApprovalCallback,
        transcript: Optional[Transcript] = None,
        handler: Optional[ResponseHandler] = None,
        stream: bool = True
    ):
        self.client = client
        self.tool_manager = tool_manager
        self.history = history
        self.registry = registry
        self.approve = approve
        self.transcript = transcript or Transcript()
        self.handler = handler or ResponseHandler()
        self.stream = stream
        self._logger = logging.getLogger("seekcli.core.session")

    def send(self, user_text: str, cancel: Optional[CancelToken] = None) -> TurnResult:
        """Run one user turn to completion."""
        with TurnContext() as turn_id:
            self._logger.info(f"User turn started ({len(user_text)} chars)")

            mark = len(self.history)
            self.history.add_user_turn(user_text)

            outcome = self._request(suppress=False, cancel=cancel)
            if not outcome.success:
                self.history.truncate(mark)
                return self._fail(turn_id, outcome, tools_executed=0)

            self._show_assistant(outcome)

            tools_executed = 0
            action = self.tool_manager.handle_parsed_tool_calls(outcome.tool_calls)

            while action is not None and action.kind != ActionKind.IDLE:
                if action.kind == ActionKind.REQUEST_APPROVAL:
                    response = self._ask(action)
                    action = self.tool_manager.on_approval_resolved(response, action.approval.id)

                elif action.kind == ActionKind.EXECUTE:
                    result = self.tool_manager.execute_current()
                    tools_executed += 1
                    action = self.tool_manager.on_execution_complete(result)

                elif action.kind == ActionKind.FOLLOWUP:
                    followup = self._request(
                        suppress=self.tool_manager.should_suppress_tool_calls,
                        cancel=cancel,
                    )
                    self.tool_manager.clear_suppress_tool_calls()
                    if not followup.success:
                        return self._fail(turn_id, followup, tools_executed)
                    self._show_assistant(followup)
                    action = None

            log_turn_end(turn_id, success=True, tools_executed=tools_executed)
            return TurnResult(turn_id=turn_id, success=True, tools_executed=tools_executed)

    def clear(self) -> int:
        """Forget the conversation and any pending tool work."""
        self.tool_manager.reset("conversation cleared")
        return self.history.clear()

    def _ask(self, action: PipelineAction) -> ApprovalResponse:
        try:
            return self.approve(action.approval.request)
        except Exception as e:
            self._logger.error(f"Approval prompt failed, treating as denial: {e}")
            return ApprovalResponse.deny()

    def _request(self, suppress: bool, cancel: Optional[CancelToken]) -> ResponseOutcome:
        """Send the current history and classify the reply."""
        messages = self.history.to_llm_messages()
        tools = self.registry.get_schemas_for_llm() or None
        tool_choice = "none" if suppress else None

        text = ""
        calls: List[ToolCall] = []
        error: Optional[Exception] = None

        try:
            if self.stream:
                try:
                    for event in self.client.stream_chat(messages, tools, tool_choice, cancel):
                        if isinstance(event, ContentDelta):
                            self.transcript.delta(event.text)
                        elif isinstance(event, StreamComplete):
                            text, calls, error = event.text, event.tool_calls, event.error
                finally:
                    self.transcript.end_stream()
            else:
                response = self.client.chat(messages, tools, tool_choice, cancel)
                text, calls = response.content, response.tool_calls
        except KeyboardInterrupt:
            self._logger.info("Request interrupted by user")
            error = APIError.cancelled_by_user()
        except Exception as e:
            error = e

        return self.handler.handle(text, error, suppress=suppress, structured_calls=calls)

    def _show_assistant(self, outcome: ResponseOutcome) -> None:
        if outcome.assistant_content:
            self.history.add_assistant_turn(outcome.assistant_content)
            self.transcript.assistant(outcome.assistant_content)

    def _fail(self, turn_id: str, outcome: ResponseOutcome, tools_executed: int) -> TurnResult:
        reason = "request cancelled" if outcome.cancelled else "request failed"
        self.tool_manager.reset(reason)

        if outcome.error_message:
            self.transcript.system(outcome.error_message)

        if outcome.cancelled:
            log_turn_end(turn_id, success=True, tools_executed=tools_executed)
        else:
            log_turn_end(
                turn_id, success=False, tools_executed=tools_executed,
                error=outcome.error_message,
            )

        return TurnResult(
            turn_id=turn_id,
            success=False,
            tools_executed=tools_executed,
            cancelled=outcome.cancelled,
            error="" if outcome.cancelled else outcome.error_message,
        )
