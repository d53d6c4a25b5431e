"""
Chat Session Tests
------------------
End-to-end turns through the session driver with a scripted model.
"""

import pytest

from api.client import APIError, APIStatus, ChatResponse, ContentDelta, StreamComplete
from api.handler import CANCELLED_NOTICE
from api.response_parser import ToolCall
from core.session import ChatSession, Transcript
from core.state_machine import State
from memory.conversation import TurnRole
from security.permissions import PermissionLevel
from tools.approval import ApprovalResponse


class ScriptedClient:
    """Replays canned replies and records each request."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.requests = []

    def _next(self, messages, tools, tool_choice):
        self.requests.append({
            "messages": messages,
            "tools": tools,
            "tool_choice": tool_choice,
        })
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return reply

    def chat(self, messages, tools=None, tool_choice=None, cancel=None):
        reply = self._next(messages, tools, tool_choice)
        if isinstance(reply, ChatResponse):
            return reply
        return ChatResponse(content=reply)

    def stream_chat(self, messages, tools=None, tool_choice=None, cancel=None):
        reply = self._next(messages, tools, tool_choice)
        if isinstance(reply, StreamComplete):
            yield reply
            return
        yield ContentDelta(text=reply)
        yield StreamComplete(text=reply)


class RecordingTranscript(Transcript):

    def __init__(self):
        self.system_lines = []
        self.assistant_lines = []
        self.deltas = []
        self.stream_ends = 0

    def system(self, message):
        self.system_lines.append(message)

    def assistant(self, content):
        self.assistant_lines.append(content)

    def delta(self, text):
        self.deltas.append(text)

    def end_stream(self):
        self.stream_ends += 1


class Approver:
    """Approval callback that answers from a fixed list."""

    def __init__(self, *answers):
        self.answers = list(answers)
        self.asked = []

    def __call__(self, request):
        self.asked.append(request.function_name)
        return self.answers.pop(0) if self.answers else ApprovalResponse.deny()


APPROVE = ApprovalResponse(approved=True)

NARRATION = "The echo tool returned a greeting for you."


@pytest.fixture
def transcript():
    return RecordingTranscript()


@pytest.fixture
def make_session(tool_manager, history, fake_registry, transcript):
    def build(client, approver=None, stream=True):
        return ChatSession(
            client=client,
            tool_manager=tool_manager,
            history=history,
            registry=fake_registry,
            approve=approver or Approver(),
            transcript=transcript,
            stream=stream,
        )
    return build


class TestPlainTurns:
    """Turns without tool calls."""

    @pytest.mark.parametrize("stream", [True, False])
    def test_reply_is_recorded(self, make_session, history, transcript, stream):
        client = ScriptedClient("Hello there")
        session = make_session(client, stream=stream)

        result = session.send("hi")

        assert result.success
        assert result.tools_executed == 0
        assert [t.role for t in history.turns] == [TurnRole.USER, TurnRole.ASSISTANT]
        assert transcript.assistant_lines == ["Hello there"]
        assert client.requests[0]["tool_choice"] is None
        assert client.requests[0]["tools"]

    def test_stream_deltas_reach_transcript(self, make_session, transcript):
        session = make_session(ScriptedClient("streamed"))

        session.send("hi")

        assert transcript.deltas == ["streamed"]

    def test_stream_ends_once_per_request(self, make_session, markup, transcript):
        client = ScriptedClient(markup(("echo", "{}")), NARRATION)
        session = make_session(client, Approver(APPROVE))

        session.send("go")

        assert len(client.requests) == 2
        assert transcript.stream_ends == 2

    def test_stream_ends_when_interrupted(self, make_session, transcript):
        session = make_session(ScriptedClient(KeyboardInterrupt()))

        result = session.send("hi")

        assert result.cancelled
        assert transcript.stream_ends == 1

    def test_no_stream_end_without_streaming(self, make_session, transcript):
        session = make_session(ScriptedClient("plain"), stream=False)

        session.send("hi")

        assert transcript.stream_ends == 0


class TestToolTurns:
    """Turns where the model asks for tools."""

    def test_approved_call_then_followup(self, make_session, markup, history, transcript,
                                         notices, tool_manager):
        client = ScriptedClient(
            "Let me check. " + markup(("echo", '{"text": "hello"}')),
            NARRATION,
        )
        approver = Approver(APPROVE)
        session = make_session(client, approver)

        result = session.send("say hello")

        assert result.success
        assert result.tools_executed == 1
        assert approver.asked == ["echo"]
        assert client.requests[1]["tool_choice"] == "none"
        assert client.requests[1]["messages"][-1] == {
            "role": "tool", "content": "echo: hello", "tool_call_id": "call_1"
        }
        assert notices == ["🔧 echo result:\n\necho: hello"]
        assert transcript.assistant_lines == ["Let me check.", NARRATION]
        assert history.turns[-1].content == NARRATION
        assert tool_manager.state == State.IDLE
        assert tool_manager.should_suppress_tool_calls is False

    def test_followup_tool_calls_are_suppressed(self, make_session, markup, history):
        client = ScriptedClient(
            markup(("echo", "{}")),
            "Here is what I found. " + markup(("other", "{}")),
        )
        approver = Approver(APPROVE, APPROVE)
        session = make_session(client, approver)

        result = session.send("go")

        assert result.tools_executed == 1
        assert approver.asked == ["echo"]
        assert len(client.requests) == 2
        assert history.turns[-1].content == "Here is what I found."

    def test_empty_followup_gets_placeholder(self, make_session, markup, history):
        client = ScriptedClient(markup(("echo", "{}")), '{"path": "."}')
        session = make_session(client, Approver(APPROVE))

        session.send("go")

        assert history.turns[-1].content == (
            "Tool execution completed. You can continue the conversation."
        )

    def test_denial_skips_followup(self, make_session, markup, notices, history):
        client = ScriptedClient(markup(("echo", "{}"), ("other", "{}")))
        approver = Approver(ApprovalResponse.deny())
        session = make_session(client, approver)

        result = session.send("go")

        assert result.success
        assert result.tools_executed == 0
        assert approver.asked == ["echo"]
        assert len(client.requests) == 1
        assert notices == ["🚫 Tool execution cancelled"]
        assert [t.role for t in history.turns] == [TurnRole.USER]

    def test_approval_prompt_crash_denies(self, make_session, markup, notices):
        def crashing(request):
            raise EOFError

        session = make_session(ScriptedClient(markup(("echo", "{}"))), crashing)

        result = session.send("go")

        assert result.tools_executed == 0
        assert notices == ["🚫 Tool execution cancelled"]

    def test_always_permission_skips_prompt(self, make_session, markup, memory_store,
                                            project_dir):
        memory_store.set_permission("echo", project_dir, PermissionLevel.ALWAYS)
        approver = Approver()
        session = make_session(ScriptedClient(markup(("echo", "{}")), NARRATION), approver)

        result = session.send("go")

        assert result.tools_executed == 1
        assert approver.asked == []

    def test_structured_calls_are_used(self, make_session):
        client = ScriptedClient(
            ChatResponse(content="", tool_calls=[
                ToolCall(id="call_xyz", function_name="other", arguments="{}")
            ]),
            NARRATION,
        )
        session = make_session(client, Approver(APPROVE), stream=False)

        result = session.send("go")

        assert result.tools_executed == 1
        assert client.requests[1]["messages"][-1]["tool_call_id"] == "call_xyz"


class TestFailures:
    """Cancellation and transport errors."""

    def test_interrupt_cancels_quietly(self, make_session, history, transcript):
        session = make_session(ScriptedClient(KeyboardInterrupt()))

        result = session.send("hi")

        assert not result.success
        assert result.cancelled
        assert result.error == ""
        assert transcript.system_lines == [CANCELLED_NOTICE]
        assert history.is_empty()

    def test_transport_error_rolls_back_user_turn(self, make_session, history, transcript):
        error = APIError("boom", user_message="Server error. Retrying...",
                         status=APIStatus.SERVER_ERROR, status_code=500)
        session = make_session(ScriptedClient(StreamComplete(text="", error=error)))

        result = session.send("hi")

        assert not result.success
        assert not result.cancelled
        assert result.error == "❌ Server error. Retrying... (HTTP 500)"
        assert transcript.system_lines == [result.error]
        assert history.is_empty()

    def test_followup_failure_resets_pipeline(self, make_session, markup, history,
                                              tool_manager):
        client = ScriptedClient(markup(("echo", "{}")), KeyboardInterrupt())
        session = make_session(client, Approver(APPROVE))

        result = session.send("go")

        assert result.cancelled
        assert result.tools_executed == 1
        assert tool_manager.state == State.IDLE
        assert tool_manager.should_suppress_tool_calls is False
        assert len(history) == 3

    def test_clear(self, make_session, history):
        session = make_session(ScriptedClient("hello"))
        session.send("hi")

        assert session.clear() == 2
        assert history.is_empty()
