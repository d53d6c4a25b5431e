"""
Conversation Memory
-------------------
API-shaped conversation history for the chat session.
Stores user, assistant, assistant-with-tool-calls and tool entries.

Rules:
- Entries are appended in order, never edited
- Requests send a trimmed window, not the whole log
- A window never starts with an orphaned tool entry
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from typing import Any, Dict, List, Optional
import logging

from api.response_parser import ToolCall


DEFAULT_WINDOW = 30


class TurnRole(Enum):
    """Role in a conversation turn."""
    USER = auto()
    ASSISTANT = auto()
    TOOL = auto()
    SYSTEM = auto()


@dataclass
class ConversationTurn:
    """A single entry in the conversation."""
    role: TurnRole
    content: str
    timestamp: datetime = field(default_factory=datetime.now)

    # Assistant entries that requested tools
    tool_calls: List[ToolCall] = field(default_factory=list)
    # Tool result entries
    tool_call_id: Optional[str] = None

    def to_llm_message(self) -> Dict[str, Any]:
        """Convert to chat completions message format."""
        message: Dict[str, Any] = {
            "role": self.role.name.lower(),
            "content": self.content,
        }
        if self.tool_calls:
            message["tool_calls"] = [call.to_api_dict() for call in self.tool_calls]
        if self.tool_call_id is not None:
            message["tool_call_id"] = self.tool_call_id
        return message

    def __repr__(self) -> str:
        preview = self.content[:50] + "..." if len(self.content) > 50 else self.content
        return f"Turn({self.role.name}: {preview})"


class ConversationMemory:
    """
    Conversation history.

    The full log is kept for the session; `to_llm_messages` returns the
    last `window` entries, prefixed by the system prompt when set.
    """

    def __init__(self, window: int = DEFAULT_WINDOW, system_prompt: str = ""):
        self.window = window
        self.system_prompt = system_prompt
        self._turns: List[ConversationTurn] = []
        self._logger = logging.getLogger("seekcli.memory.conversation")

    def add_user_turn(self, content: str) -> ConversationTurn:
        """Add a user message."""
        return self._add_turn(ConversationTurn(role=TurnRole.USER, content=content))

    def add_assistant_turn(self, content: str) -> ConversationTurn:
        """Add an assistant response."""
        return self._add_turn(ConversationTurn(role=TurnRole.ASSISTANT, content=content))

    def add_tool_call(self, call: ToolCall) -> ConversationTurn:
        """Add the assistant entry that carries a tool call."""
        return self._add_turn(ConversationTurn(
            role=TurnRole.ASSISTANT,
            content="",
            tool_calls=[call],
        ))

    def add_tool_result(self, call_id: str, content: str) -> ConversationTurn:
        """Add a tool result keyed by the call ID."""
        return self._add_turn(ConversationTurn(
            role=TurnRole.TOOL,
            content=content,
            tool_call_id=call_id,
        ))

    def _add_turn(self, turn: ConversationTurn) -> ConversationTurn:
        self._turns.append(turn)
        self._logger.debug(f"Added turn: {turn.role.name}, total: {len(self._turns)}")
        return turn

    @property
    def turns(self) -> List[ConversationTurn]:
        """Get all turns (read-only copy)."""
        return self._turns.copy()

    def get_recent_turns(self, n: Optional[int] = None) -> List[ConversationTurn]:
        """Get the N most recent turns, skipping a leading orphaned tool entry."""
        n = self.window if n is None else n
        recent = self._turns[-n:] if 0 < n < len(self._turns) else self._turns.copy()

        while recent and recent[0].role == TurnRole.TOOL:
            recent.pop(0)

        return recent

    def to_llm_messages(self, window: Optional[int] = None) -> List[Dict[str, Any]]:
        """Convert the recent window to chat completions messages."""
        messages = []
        if self.system_prompt:
            messages.append({"role": "system", "content": self.system_prompt})
        messages.extend(turn.to_llm_message() for turn in self.get_recent_turns(window))
        return messages

    def truncate(self, length: int) -> int:
        """Drop every turn after the first `length`. Returns count removed."""
        removed = max(len(self._turns) - length, 0)
        if removed:
            del self._turns[length:]
            self._logger.debug(f"Truncated {removed} turn(s)")
        return removed

    def clear(self) -> int:
        """Clear all memory. Returns number of turns cleared."""
        count = len(self._turns)
        self._turns = []
        self._logger.info(f"Cleared {count} turns from memory")
        return count

    def __len__(self) -> int:
        return len(self._turns)

    def is_empty(self) -> bool:
        """Check if memory has no turns."""
        return len(self._turns) == 0
