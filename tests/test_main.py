"""
CLI Tests
---------
Tests for slash commands and startup checks. No model requests are made.
"""

import io

import pytest
from rich.console import Console
from rich.table import Table

import main
from infra.config import AppConfig
from security.permissions import PermissionLevel


@pytest.fixture
def session(project_dir):
    config = AppConfig(api_key="test-key", permissions_file=None)
    session = main.build_session(config, project_dir)
    yield session
    session.client.close()


def store_of(session):
    return session.tool_manager.approvals.store


class TestCommands:
    """Tests for handle_command."""

    @pytest.mark.parametrize("line", ["/quit", "/exit", "/QUIT"])
    def test_quit(self, session, project_dir, line):
        assert main.handle_command(line, session, project_dir) is main.QUIT

    def test_help(self, session, project_dir):
        assert main.handle_command("/help", session, project_dir) == main.HELP_TEXT

    def test_tools_table(self, session, project_dir):
        output = main.handle_command("/tools", session, project_dir)

        assert isinstance(output, Table)
        assert output.row_count == 4

    def test_clear(self, session, project_dir):
        session.history.add_user_turn("hi")

        output = main.handle_command("/clear", session, project_dir)

        assert "Cleared 1" in output
        assert session.history.is_empty()

    def test_unknown(self, session, project_dir):
        assert "Unknown command" in main.handle_command("/frobnicate", session, project_dir)


class TestPermissionsCommand:
    """Tests for /permissions."""

    def test_empty_list(self, session, project_dir):
        output = main.handle_command("/permissions", session, project_dir)

        assert "No stored permissions" in output

    def test_allow_and_block(self, session, project_dir):
        main.handle_command("/permissions allow read_file", session, project_dir)
        main.handle_command("/permissions block git_diff", session, project_dir)

        store = store_of(session)
        assert store.check_permission("read_file", project_dir) == PermissionLevel.ALWAYS
        assert store.check_permission("git_diff", project_dir) == PermissionLevel.NEVER
        assert isinstance(main.handle_command("/permissions", session, project_dir), Table)

    def test_unknown_tool_rejected(self, session, project_dir):
        output = main.handle_command("/permissions allow rm_rf", session, project_dir)

        assert "Unknown tool" in output
        assert store_of(session).list_permissions(project_dir) == []

    def test_clear_one_and_all(self, session, project_dir):
        main.handle_command("/permissions allow read_file", session, project_dir)
        main.handle_command("/permissions allow list_files", session, project_dir)

        assert "Cleared read_file" in main.handle_command(
            "/permissions clear read_file", session, project_dir
        )
        assert "Cleared 1" in main.handle_command("/permissions clear", session, project_dir)

    def test_usage(self, session, project_dir):
        assert "Usage" in main.handle_command("/permissions allow", session, project_dir)
        assert "Usage" in main.handle_command("/permissions wat", session, project_dir)


class TestStartup:
    """Tests for main() exit codes."""

    def test_missing_api_key(self, project_dir, monkeypatch):
        monkeypatch.setattr(main, "configure_logging", lambda **kwargs: None)

        assert main.main(["--project", project_dir]) == 1

    def test_missing_project(self, tmp_path, monkeypatch):
        monkeypatch.setattr(main, "configure_logging", lambda **kwargs: None)

        assert main.main(["--project", str(tmp_path / "nowhere")]) == 1


class TestRichTranscript:
    """Tests for streamed output rendering."""

    @pytest.fixture
    def output(self):
        return Console(file=io.StringIO(), record=True, width=80)

    def test_deltas_render_live(self, output):
        transcript = main.RichTranscript(output)

        transcript.delta("Hel")
        transcript.delta("lo")

        assert transcript._live is not None
        assert transcript._live.renderable.markup == "Hello"
        transcript.end_stream()

    def test_markup_hidden_while_streaming(self, output):
        transcript = main.RichTranscript(output)

        transcript.delta("Let me look.<｜tool▁calls▁begin｜><｜tool▁call▁begin｜>read_file")

        assert transcript._live.renderable.markup == "Let me look."
        transcript.end_stream()

    def test_final_reply_replaces_live_region(self, output):
        transcript = main.RichTranscript(output)
        transcript.delta("Hello")

        transcript.end_stream()
        transcript.assistant("Hello")

        assert transcript._live is None
        assert output.export_text().count("Hello") == 1

    def test_system_line_stops_stream(self, output):
        transcript = main.RichTranscript(output)
        transcript.delta("partial")

        transcript.system("🚫 Request cancelled")

        assert transcript._live is None
        assert "Request cancelled" in output.export_text()
