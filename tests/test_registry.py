"""
Tool Registry Tests
-------------------
Tests for tool registration, schema export and argument validation.
"""

from typing import Literal, Optional

import pytest
from pydantic import Field

from tools.registry import Tool, ToolArguments, ToolRegistry


class ReadArgs(ToolArguments):
    path: str = Field(description="Path")
    start: Optional[int] = Field(default=None, ge=1, description="Start line")
    mode: Literal["fast", "slow"] = Field(default="fast", description="Mode")


class EmptyArgs(ToolArguments):
    pass


@pytest.fixture
def read_tool():
    return Tool(
        name="read",
        description="Read something",
        args_model=ReadArgs,
        executor=lambda params: "ok",
        usage='{"path":"filename"}',
    )


class TestRegistry:
    """Tests for ToolRegistry lookups."""

    def test_register_and_get(self, read_tool):
        registry = ToolRegistry()
        registry.register(read_tool)

        assert registry.get("read") is read_tool
        assert "read" in registry
        assert len(registry) == 1

    def test_unknown_tool(self):
        registry = ToolRegistry()

        assert registry.get("missing") is None
        assert "missing" not in registry

    def test_register_overwrites(self, read_tool):
        registry = ToolRegistry()
        registry.register(read_tool)
        replacement = Tool(
            name="read", description="New", args_model=EmptyArgs, executor=lambda params: "new"
        )
        registry.register(replacement)

        assert registry.get("read").description == "New"
        assert len(registry) == 1

    def test_unregister(self, read_tool):
        registry = ToolRegistry()
        registry.register(read_tool)

        assert registry.unregister("read") is True
        assert registry.unregister("read") is False


class TestSchemaExport:
    """The JSON schema sent to the model comes from the argument model."""

    def test_schemas_for_llm(self, read_tool):
        registry = ToolRegistry()
        registry.register(read_tool)

        schemas = registry.get_schemas_for_llm()

        assert schemas[0]["type"] == "function"
        function = schemas[0]["function"]
        assert function["name"] == "read"
        assert function["description"] == "Read something"
        assert function["parameters"]["required"] == ["path"]
        assert function["parameters"]["additionalProperties"] is False
        assert function["parameters"]["properties"]["mode"]["enum"] == ["fast", "slow"]

    def test_titles_removed(self, read_tool):
        schema = read_tool.to_json_schema()

        assert "title" not in schema
        assert all("title" not in prop for prop in schema["properties"].values())
        assert schema["properties"]["path"]["description"] == "Path"

    def test_no_parameters(self):
        tool = Tool(name="t", description="d", args_model=EmptyArgs, executor=lambda p: "")

        schema = tool.to_json_schema()

        assert schema["type"] == "object"
        assert schema["required"] == []


class TestParseArgs:
    """Tests for Tool.parse_args."""

    def test_valid(self, read_tool):
        params = read_tool.parse_args({"path": "a", "start": 2, "mode": "slow"})

        assert isinstance(params, ReadArgs)
        assert params.path == "a"
        assert params.start == 2
        assert params.mode == "slow"

    def test_defaults(self, read_tool):
        params = read_tool.parse_args({"path": "a"})

        assert params.start is None
        assert params.mode == "fast"

    def test_missing_required(self, read_tool):
        with pytest.raises(ValueError) as exc_info:
            read_tool.parse_args({})

        assert "path is required" in str(exc_info.value)

    def test_wrong_type(self, read_tool):
        with pytest.raises(ValueError) as exc_info:
            read_tool.parse_args({"path": 3})

        assert "path:" in str(exc_info.value)

    def test_below_minimum(self, read_tool):
        with pytest.raises(ValueError) as exc_info:
            read_tool.parse_args({"path": "a", "start": 0})

        assert "start:" in str(exc_info.value)

    def test_enum(self, read_tool):
        with pytest.raises(ValueError):
            read_tool.parse_args({"path": "a", "mode": "medium"})

    def test_unknown_parameter(self, read_tool):
        with pytest.raises(ValueError) as exc_info:
            read_tool.parse_args({"path": "a", "extra": 1})

        assert "unknown parameter extra" in str(exc_info.value)

    def test_usage_hint_appended(self, read_tool):
        with pytest.raises(ValueError) as exc_info:
            read_tool.parse_args({})

        assert str(exc_info.value).endswith('Use: {"path":"filename"}')

    def test_every_problem_listed(self, read_tool):
        with pytest.raises(ValueError) as exc_info:
            read_tool.parse_args({"extra": 1})

        message = str(exc_info.value)
        assert "path is required" in message
        assert "unknown parameter extra" in message

    def test_no_usage_hint(self):
        tool = Tool(name="t", description="d", args_model=EmptyArgs, executor=lambda p: "")

        with pytest.raises(ValueError) as exc_info:
            tool.parse_args({"x": 1})

        assert "Use:" not in str(exc_info.value)
