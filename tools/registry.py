"""
Tool Registry
-------------
Schema-described local tools the model may call.
Each tool is unit-testable without the model.

Rules:
- Registry is injected, never a module global
- A tool's pydantic argument model is its only schema: the JSON schema
  sent to the model and the validation before it runs both come from it
- Validation errors end with the tool's usage hint
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Type
import logging

from pydantic import BaseModel, ConfigDict, ValidationError


class ToolArguments(BaseModel):
    """Base class for tool argument models. Unknown keys are rejected."""
    model_config = ConfigDict(extra="forbid")


def _describe_error(error: Dict[str, Any]) -> str:
    location = ".".join(str(part) for part in error["loc"]) or "arguments"
    if error["type"] == "missing":
        return f"{location} is required"
    if error["type"] == "extra_forbidden":
        return f"unknown parameter {location}"
    return f"{location}: {error['msg']}"


@dataclass
class Tool:
    """
    Tool definition with argument model and executor.

    The executor receives a validated instance of `args_model` and
    returns the text shown to the model.
    """
    name: str
    description: str
    args_model: Type[ToolArguments]
    executor: Callable[[Any], str]
    usage: str = ""  # Example arguments appended to validation errors
    category: str = "general"
    timeout_seconds: Optional[float] = None  # None = executor default

    def to_json_schema(self) -> Dict[str, Any]:
        """JSON Schema for the arguments, without pydantic's titles."""
        schema = self.args_model.model_json_schema()
        schema.pop("title", None)
        for prop in schema.get("properties", {}).values():
            prop.pop("title", None)
        schema.setdefault("required", [])
        return schema

    def to_openai_function(self) -> Dict[str, Any]:
        """Convert to OpenAI function calling format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.to_json_schema(),
            }
        }

    def parse_args(self, args: Dict[str, Any]) -> ToolArguments:
        """
        Validate decoded arguments.

        Raises:
            ValueError: naming every problem, followed by the usage hint
        """
        try:
            return self.args_model.model_validate(args)
        except ValidationError as e:
            problems = "; ".join(_describe_error(err) for err in e.errors())
            message = f"invalid arguments ({problems})"
            if self.usage:
                message += f". Use: {self.usage}"
            raise ValueError(message) from e

    def __repr__(self) -> str:
        return f"Tool(name={self.name}, category={self.category})"


class ToolRegistry:
    """
    Registry for all available tools.

    This registry is the firewall between the model and the system:
    a name that is not registered can never run.
    """

    def __init__(self):
        self._tools: Dict[str, Tool] = {}
        self._logger = logging.getLogger("seekcli.tools.registry")

    def register(self, tool: Tool) -> None:
        """Register a tool."""
        if tool.name in self._tools:
            self._logger.warning(f"Overwriting existing tool: {tool.name}")

        self._tools[tool.name] = tool
        self._logger.debug(f"Registered tool: {tool.name} ({tool.category})")

    def unregister(self, name: str) -> bool:
        """Unregister a tool."""
        if name in self._tools:
            del self._tools[name]
            return True
        return False

    def get(self, name: str) -> Optional[Tool]:
        """Get a tool by name."""
        return self._tools.get(name)

    def list_tools(self) -> List[Tool]:
        """List all registered tools."""
        return list(self._tools.values())

    def get_schemas_for_llm(self) -> List[Dict]:
        """Get all tool schemas in OpenAI function format."""
        return [
            tool.to_openai_function()
            for tool in self._tools.values()
        ]

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools
