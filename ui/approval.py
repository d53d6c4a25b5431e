"""
Approval Dialog
---------------
Terminal prompt shown before a tool runs.

Shows the function, its description, the decoded arguments and any
decoding warning, then asks: approve once, always approve in this
project, or deny. Ctrl+C or end of input at the prompt denies.
"""

from typing import List, Optional, Tuple

from rich.console import Console, Group
from rich.json import JSON
from rich.panel import Panel
from rich.prompt import Prompt
from rich.text import Text

from security.permissions import PermissionLevel
from tools.approval import ApprovalRequest, ApprovalResponse


CHOICES: List[Tuple[str, str]] = [
    ("1", "Approve once"),
    ("2", "Always approve (this project)"),
    ("3", "Deny"),
]


def response_for_choice(choice: str) -> ApprovalResponse:
    """Map a menu choice to an ApprovalResponse. Unknown input denies."""
    if choice == "1":
        return ApprovalResponse(approved=True, level=PermissionLevel.ONCE)
    if choice == "2":
        return ApprovalResponse(approved=True, level=PermissionLevel.ALWAYS)
    return ApprovalResponse.deny()


def render_request(request: ApprovalRequest) -> Panel:
    """Build the dialog body for a request."""
    parts = [
        Text.assemble(("Function: ", "bold"), (request.function_name, "bold cyan")),
        Text(request.description, style="dim"),
        Text(""),
        Text("Arguments:", style="bold"),
        JSON.from_data(request.arguments) if request.arguments else Text("(none)", style="dim"),
    ]

    if request.warning:
        parts.extend([Text(""), Text(f"⚠ {request.warning}", style="yellow")])

    parts.append(Text(""))
    for key, label in CHOICES:
        parts.append(Text.assemble((f"  [{key}] ", "bold"), label))

    return Panel(Group(*parts), title="Tool approval", border_style="yellow")


class ApprovalPrompt:
    """Callable approval callback for ChatSession."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def __call__(self, request: ApprovalRequest) -> ApprovalResponse:
        self.console.print(render_request(request))

        try:
            choice = Prompt.ask(
                "Choose",
                choices=[key for key, _ in CHOICES],
                default="1",
                console=self.console,
            )
        except (KeyboardInterrupt, EOFError):
            self.console.print()
            choice = "3"

        return response_for_choice(choice)
