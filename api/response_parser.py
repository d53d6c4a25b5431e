"""
Response Parser
---------------
Extracts tool calls from DeepSeek's inline tool-call markup.

The model sometimes emits tool calls as text instead of structured
`tool_calls`. A block looks like:

    <｜tool▁calls▁begin｜>
      <｜tool▁call▁begin｜>read_file<｜tool▁sep｜>{"path": "a.go"}<｜tool▁call▁end｜>
    <｜tool▁calls▁end｜>

Rules:
- Malformed spans are dropped, never raised
- IDs are sequential per parse (call_1, call_2, ...)
- Suppressed follow-ups get an extra cleanup pass
"""

from dataclasses import dataclass
from typing import List, Tuple
import logging


TOOL_CALLS_BEGIN = "<｜tool▁calls▁begin｜>"
TOOL_CALLS_END = "<｜tool▁calls▁end｜>"
TOOL_CALL_BEGIN = "<｜tool▁call▁begin｜>"
TOOL_CALL_END = "<｜tool▁call▁end｜>"
TOOL_SEP = "<｜tool▁sep｜>"

# Every sentinel starts with this
MARKUP_PREFIX = "<｜"

# Shown instead of an (almost) empty follow-up reply
SUPPRESSED_PLACEHOLDER = "Tool execution completed. You can continue the conversation."
MIN_SUPPRESSED_LENGTH = 20

# Keys that mark a bare JSON line as leaked tool arguments
ARGUMENT_KEYS = ('"path":', '"recursive":', '"pattern":')

_logger = logging.getLogger("seekcli.api.parser")


@dataclass
class ToolCall:
    """A tool call requested by the model."""
    id: str
    function_name: str
    arguments: str = ""
    type: str = "function"

    @property
    def is_valid(self) -> bool:
        return bool(self.id) and bool(self.function_name)

    def to_api_dict(self) -> dict:
        """Convert to OpenAI-compatible `tool_calls` entry."""
        return {
            "id": self.id,
            "type": self.type,
            "function": {
                "name": self.function_name,
                "arguments": self.arguments,
            },
        }

    def __repr__(self) -> str:
        return f"ToolCall({self.id}: {self.function_name} {self.arguments})"


def parse_tool_calls(content: str) -> Tuple[List[ToolCall], str]:
    """
    Parse tool-call markup out of a model response.

    Returns:
        (tool_calls, remaining_text). The remaining text has every
        tool-call block removed and surrounding whitespace trimmed.
    """
    tool_calls: List[ToolCall] = []

    if TOOL_CALLS_BEGIN not in content:
        return tool_calls, content.strip()

    _logger.debug(f"Parsing tool calls from response: {content!r}")

    filtered = content
    call_id = 1

    while True:
        start = filtered.find(TOOL_CALLS_BEGIN)
        if start == -1:
            break

        end = filtered.find(TOOL_CALLS_END, start)
        if end == -1:
            # Truncated generation: drop everything from the begin marker
            _logger.debug("Unterminated tool-call block, truncating response")
            filtered = filtered[:start]
            break

        end += len(TOOL_CALLS_END)
        block = filtered[start:end]

        for function_name, arguments in _split_calls(block):
            tool_calls.append(ToolCall(
                id=f"call_{call_id}",
                function_name=function_name,
                arguments=arguments,
            ))
            call_id += 1
            _logger.debug(f"Extracted tool call: {function_name} with args: {arguments}")

        filtered = filtered[:start] + filtered[end:]

    return tool_calls, filtered.strip()


def _split_calls(block: str) -> List[Tuple[str, str]]:
    """Split a tool-calls block into (function_name, arguments) pairs."""
    calls = []
    position = block.find(TOOL_CALL_BEGIN)

    while position != -1:
        call_end = block.find(TOOL_CALL_END, position)
        if call_end == -1:
            break

        body = block[position + len(TOOL_CALL_BEGIN):call_end]
        function_name, sep, arguments = body.partition(TOOL_SEP)

        if sep:
            function_name = function_name.strip()
            arguments = arguments.strip()
            if function_name and arguments:
                calls.append((function_name, arguments))
            else:
                _logger.debug(f"Dropping tool call with empty name or arguments: {body!r}")
        else:
            _logger.debug(f"Dropping tool call without separator: {body!r}")

        position = block.find(TOOL_CALL_BEGIN, call_end + len(TOOL_CALL_END))

    return calls


def clean_up_tool_like_content(content: str) -> str:
    """
    Remove standalone JSON lines that look like leaked tool arguments.

    Used on follow-up replies requested with tool_choice="none", where the
    model may still print argument objects as plain text.
    """
    kept = []

    for line in content.split("\n"):
        trimmed = line.strip()

        if not trimmed:
            kept.append(line)
            continue

        if _looks_like_tool_arguments(trimmed):
            _logger.debug(f"Filtering out malformed tool call: {trimmed}")
            continue

        kept.append(line)

    result = "\n".join(kept)

    if len(result.strip()) < MIN_SUPPRESSED_LENGTH:
        return SUPPRESSED_PLACEHOLDER

    return result


def _looks_like_tool_arguments(line: str) -> bool:
    if not (line.startswith("{") and line.endswith("}")):
        return False
    if line == "{}":
        return True
    return line.count(":") <= 2 and any(key in line for key in ARGUMENT_KEYS)


def parse_suppressed(content: str) -> str:
    """Strip markup from a suppressed follow-up without yielding tool calls."""
    _, filtered = parse_tool_calls(content)
    return clean_up_tool_like_content(filtered)


def strip_partial_markup(text: str) -> str:
    """
    Return the part of a still-streaming reply that is safe to show.

    Everything from the first sentinel on is hidden, including a sentinel
    cut in half at the end of the buffer.
    """
    visible = text.split(MARKUP_PREFIX, 1)[0]
    if visible.endswith(MARKUP_PREFIX[0]):
        visible = visible[:-1]
    return visible
