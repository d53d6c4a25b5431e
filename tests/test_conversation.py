"""
Conversation Memory Tests
-------------------------
Tests for history entries and the request window.
"""

from api.response_parser import ToolCall
from memory.conversation import ConversationMemory, TurnRole


class TestEntries:
    """Tests for the API shape of history entries."""

    def test_tool_call_and_result_messages(self):
        memory = ConversationMemory()
        call = ToolCall(id="call_7", function_name="git_status", arguments="{}")

        memory.add_tool_call(call)
        memory.add_tool_result("call_7", "clean")
        messages = memory.to_llm_messages()

        assert messages[0]["role"] == "assistant"
        assert messages[0]["content"] == ""
        assert messages[0]["tool_calls"][0]["function"]["name"] == "git_status"
        assert messages[1] == {"role": "tool", "content": "clean", "tool_call_id": "call_7"}

    def test_system_prompt_leads(self):
        memory = ConversationMemory(system_prompt="Be brief.")
        memory.add_user_turn("hi")

        messages = memory.to_llm_messages()

        assert messages[0] == {"role": "system", "content": "Be brief."}
        assert messages[1] == {"role": "user", "content": "hi"}


class TestWindow:
    """Tests for trimming the request window."""

    def test_window_keeps_recent_entries(self):
        memory = ConversationMemory(window=2)
        for text in ("a", "b", "c"):
            memory.add_user_turn(text)

        assert [t.content for t in memory.get_recent_turns()] == ["b", "c"]
        assert len(memory) == 3

    def test_window_skips_orphaned_tool_entry(self):
        memory = ConversationMemory(window=2)
        memory.add_tool_call(ToolCall(id="c1", function_name="list_files"))
        memory.add_tool_result("c1", "a.go")
        memory.add_assistant_turn("one file")

        recent = memory.get_recent_turns()

        assert [t.role for t in recent] == [TurnRole.ASSISTANT]
        assert recent[0].content == "one file"

    def test_truncate_rolls_back(self):
        memory = ConversationMemory()
        memory.add_user_turn("keep")
        mark = len(memory)
        memory.add_user_turn("drop")

        assert memory.truncate(mark) == 1
        assert [t.content for t in memory.turns] == ["keep"]

    def test_clear(self):
        memory = ConversationMemory()
        memory.add_user_turn("x")

        assert memory.clear() == 1
        assert memory.is_empty()
