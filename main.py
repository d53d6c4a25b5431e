#!/usr/bin/env python3
"""
seekcli - AI Coding Assistant with Local Tools
==============================================

Main entry point for the seekcli chat REPL.

Usage:
    python main.py                      # Chat in the current directory
    python main.py --project ../repo    # Chat about another project
    python main.py --no-stream          # Use non-streaming requests
    python main.py --help               # Show help

Requires DEEPSEEK_API_KEY in the environment.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

# Ensure project root is in path
sys.path.insert(0, str(Path(__file__).parent))

from rich.console import Console
from rich.live import Live
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from api.client import APIConfig, ModelClient
from api.handler import CANCELLED_NOTICE
from api.response_parser import strip_partial_markup
from core.session import ChatSession, Transcript
from core.tool_manager import ToolManager
from infra.config import AppConfig, load_config
from infra.logging import configure_logging
from memory.conversation import ConversationMemory
from security.permissions import PermissionLevel, PermissionStore
from tools.approval import ApprovalCoordinator
from tools.executor import ToolExecutor
from tools.functions import create_builtin_registry
from ui.approval import ApprovalPrompt


# Setup rich console
console = Console()

QUIT = object()

SYSTEM_PROMPT = (
    "You are a coding assistant working in the user's project. "
    "Use the available tools to read files, list files and inspect git "
    "state when you need information about the project."
)

HELP_TEXT = """[bold]Commands:[/bold]
  /help                      show this help
  /tools                     list available tools
  /permissions               list stored tool permissions for this project
  /permissions allow <fn>    always run <fn> without asking
  /permissions block <fn>    never run <fn>
  /permissions clear \\[fn]    forget one or all stored permissions
  /clear                     clear conversation history
  /quit                      exit

Ctrl+C cancels a running request; at the prompt it exits."""


class RichTranscript(Transcript):
    """
    Renders session output to the console.

    Streamed text is shown in a transient Live region as it arrives; the
    final reply is printed once the stream ends, so the region is cleared
    rather than kept.
    """

    def __init__(self, output: Console):
        self.console = output
        self._live: Optional[Live] = None
        self._buffer = ""

    def delta(self, text: str) -> None:
        if self._live is None:
            self._buffer = ""
            self._live = Live(console=self.console, refresh_per_second=10, transient=True)
            self._live.start()
        self._buffer += text
        self._live.update(Markdown(strip_partial_markup(self._buffer)))

    def end_stream(self) -> None:
        if self._live is not None:
            self._live.stop()
            self._live = None
        self._buffer = ""

    def system(self, message: str) -> None:
        self.end_stream()
        self.console.print(Text(message, style="dim"))

    def assistant(self, content: str) -> None:
        self.end_stream()
        self.console.print(Markdown(content))


def print_banner(config: AppConfig, project: str, tool_count: int) -> None:
    """Print the seekcli banner."""
    banner = Text()
    banner.append("seekcli", style="bold cyan")
    banner.append(" - AI coding assistant\n", style="dim")
    banner.append(f"Model: {config.model}\n", style="green")
    banner.append(f"Project: {project}\n", style="green")
    banner.append(f"Tools: {tool_count}\n\n", style="green")
    banner.append("Type ", style="dim")
    banner.append("/help", style="bold green")
    banner.append(" for commands | ", style="dim")
    banner.append("/quit", style="bold red")
    banner.append(" to exit", style="dim")

    console.print(Panel(banner, title="Welcome", border_style="blue"))


def build_session(config: AppConfig, project: str) -> ChatSession:
    """Wire up the tool pipeline and model client."""
    registry = create_builtin_registry(project)
    store = PermissionStore(config.permissions_file)
    history = ConversationMemory(window=config.history_window, system_prompt=SYSTEM_PROMPT)
    transcript = RichTranscript(console)

    tool_manager = ToolManager(
        executor=ToolExecutor(registry, default_timeout_seconds=config.tool_timeout_seconds),
        approvals=ApprovalCoordinator(registry, store, project),
        history=history,
        notify=transcript.system,
    )

    client = ModelClient(
        APIConfig(
            base_url=config.base_url,
            model=config.model,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
        ),
        api_key=config.api_key,
    )

    return ChatSession(
        client=client,
        tool_manager=tool_manager,
        history=history,
        registry=registry,
        approve=ApprovalPrompt(console),
        transcript=transcript,
        stream=config.stream,
    )


def handle_command(line: str, session: ChatSession, project: str):
    """
    Run a slash command.

    Returns QUIT to exit, otherwise the text to print.
    """
    parts = line.split()
    command, args = parts[0].lower(), parts[1:]
    store = session.tool_manager.approvals.store

    if command in ("/quit", "/exit"):
        return QUIT

    if command == "/help":
        return HELP_TEXT

    if command == "/tools":
        table = Table(title="Tools", show_header=True)
        table.add_column("Name", style="cyan")
        table.add_column("Description")
        for tool in session.registry.list_tools():
            table.add_row(tool.name, tool.description)
        return table

    if command == "/clear":
        count = session.clear()
        return f"[green]Cleared {count} messages[/green]"

    if command == "/permissions":
        return _permissions_command(args, session, store, project)

    return f"[yellow]Unknown command: {command}. Type /help for commands.[/yellow]"


def _permissions_command(args: List[str], session: ChatSession, store: PermissionStore, project: str):
    if not args:
        records = store.list_permissions(project)
        if not records:
            return "[dim]No stored permissions for this project[/dim]"
        table = Table(title="Permissions", show_header=True)
        table.add_column("Function", style="cyan")
        table.add_column("Level")
        table.add_column("Updated")
        for record in records:
            style = "green" if record.level == PermissionLevel.ALWAYS else "red"
            table.add_row(
                record.function_name,
                Text(record.level.value, style=style),
                record.updated_at.strftime("%Y-%m-%d %H:%M"),
            )
        return table

    action = args[0].lower()
    target = args[1] if len(args) > 1 else None

    if action in ("allow", "block"):
        if not target:
            return f"[yellow]Usage: /permissions {action} <function>[/yellow]"
        if target not in session.registry:
            return f"[yellow]Unknown tool: {target}[/yellow]"
        level = PermissionLevel.ALWAYS if action == "allow" else PermissionLevel.NEVER
        try:
            store.set_permission(target, project, level)
        except OSError as e:
            return f"[red]Failed to save permission: {e}[/red]"
        return f"[green]{target}: {level.value}[/green]"

    if action == "clear":
        try:
            if target:
                removed = store.clear_permission(target, project)
                return f"[green]Cleared {target}[/green]" if removed else f"[dim]No permission stored for {target}[/dim]"
            count = store.clear_all(project)
        except OSError as e:
            return f"[red]Failed to save permissions: {e}[/red]"
        return f"[green]Cleared {count} permission(s)[/green]"

    return "[yellow]Usage: /permissions \\[allow|block|clear] <function>[/yellow]"


def run_repl(session: ChatSession, project: str) -> None:
    """Read user input until /quit, Ctrl+C or end of input."""
    logger = logging.getLogger("seekcli.main")

    while True:
        try:
            text = console.input("\n[bold cyan]>[/bold cyan] ").strip()
        except (KeyboardInterrupt, EOFError):
            break

        if not text:
            continue

        if text.startswith("/"):
            output = handle_command(text, session, project)
            if output is QUIT:
                break
            console.print(output)
            continue

        try:
            session.send(text)
        except KeyboardInterrupt:
            # Interrupted outside the model request (e.g. a running tool)
            logger.info("Turn interrupted by user")
            session.tool_manager.reset("interrupted by user")
            console.print(Text(CANCELLED_NOTICE, style="dim"))

    console.print("\n[yellow]Shutting down...[/yellow]")
    session.client.close()


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="seekcli - AI coding assistant with local tools"
    )
    parser.add_argument(
        "--config", "-c",
        default=None,
        help="Path to configuration file (default: ~/.seekcli/config.yaml)"
    )
    parser.add_argument(
        "--log-level", "-l",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level"
    )
    parser.add_argument(
        "--project", "-p",
        default=".",
        help="Project directory the tools operate on"
    )
    parser.add_argument(
        "--no-stream",
        action="store_true",
        help="Disable streaming responses"
    )
    parser.add_argument(
        "--model", "-m",
        default=None,
        help="Model name (overrides config)"
    )

    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except ValueError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        return 1

    if args.log_level:
        config.log_level = args.log_level
    if args.no_stream:
        config.stream = False
    if args.model:
        config.model = args.model

    # The JSON log file always gets everything
    configure_logging(
        level=getattr(logging, config.log_level, logging.WARNING),
        log_dir=config.log_dir,
    )
    logger = logging.getLogger("seekcli.main")

    project = str(Path(args.project).expanduser().resolve())
    if not Path(project).is_dir():
        console.print(f"[bold red]Error:[/bold red] project directory not found: {project}")
        return 1

    try:
        session = build_session(config, project)

        if not session.client.is_configured:
            console.print(
                "[bold red]Error:[/bold red] API key is invalid or missing. "
                "Please set DEEPSEEK_API_KEY environment variable."
            )
            return 1

        logger.info(f"Starting session: {config!r} project={project}")
        print_banner(config, project, len(session.registry))
        run_repl(session, project)
        return 0

    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        return 130
    except Exception as e:
        logger.exception("Fatal error")
        console.print(f"[bold red]Error:[/bold red] {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
