"""
seekcli Test Configuration
--------------------------
Shared fixtures and configuration for all tests.

No test touches the network or the user's home directory.
"""

import sys
import time
from pathlib import Path
import pytest
from pydantic import Field

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from api.response_parser import (
    TOOL_CALLS_BEGIN, TOOL_CALLS_END, TOOL_CALL_BEGIN, TOOL_CALL_END, TOOL_SEP
)
from core.tool_manager import ToolManager
from memory.conversation import ConversationMemory
from security.permissions import PermissionStore
from tools.approval import ApprovalCoordinator
from tools.executor import ToolExecutor
from tools.registry import Tool, ToolArguments, ToolRegistry


# =============================================================================
# Test Isolation
# =============================================================================

@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Point HOME at a temp dir so nothing lands in ~/.seekcli."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("DEEPSEEK_API_KEY", raising=False)
    return home


@pytest.fixture(scope="session")
def project_root():
    """Return the repository root path."""
    return PROJECT_ROOT


# =============================================================================
# Tool Pipeline Fixtures
# =============================================================================

class EchoArgs(ToolArguments):
    text: str = Field(default="", description="Text to echo")


class NoArgs(ToolArguments):
    pass


def _boom(params):
    raise RuntimeError("disk on fire")


def _slow(params):
    time.sleep(1.0)
    return "too late"


@pytest.fixture
def fake_registry():
    """Registry with deterministic fake tools."""
    registry = ToolRegistry()
    registry.register(Tool(
        name="echo",
        description="Echo the text argument",
        args_model=EchoArgs,
        executor=lambda params: f"echo: {params.text}",
        usage='{"text":"hello"}',
    ))
    registry.register(Tool(
        name="other",
        description="Another harmless tool",
        args_model=NoArgs,
        executor=lambda params: "other done",
    ))
    registry.register(Tool(
        name="boom",
        description="Always fails",
        args_model=NoArgs,
        executor=_boom,
    ))
    registry.register(Tool(
        name="slow",
        description="Never finishes in time",
        args_model=NoArgs,
        executor=_slow,
        timeout_seconds=0.1,
    ))
    return registry


@pytest.fixture
def memory_store():
    """Permission store that never touches disk."""
    return PermissionStore(path=None)


@pytest.fixture
def history():
    return ConversationMemory()


@pytest.fixture
def project_dir(tmp_path):
    project = tmp_path / "project"
    project.mkdir()
    return str(project.resolve())


@pytest.fixture
def notices():
    """System messages emitted by the tool manager."""
    return []


@pytest.fixture
def tool_manager(fake_registry, memory_store, history, project_dir, notices):
    return ToolManager(
        executor=ToolExecutor(fake_registry),
        approvals=ApprovalCoordinator(fake_registry, memory_store, project_dir),
        history=history,
        notify=notices.append,
    )


@pytest.fixture
def markup():
    """Build a DeepSeek tool-call block from (name, arguments) pairs."""
    def build(*calls):
        body = "".join(
            f"{TOOL_CALL_BEGIN}{name}{TOOL_SEP}{arguments}{TOOL_CALL_END}"
            for name, arguments in calls
        )
        return f"{TOOL_CALLS_BEGIN}{body}{TOOL_CALLS_END}"
    return build
