"""
Terminal rendering.

RichChatQueue prints conversation events as they arrive; the helpers
below render checkpoints and pending tool calls.
"""

import json

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from steward.checkpoints.models import CheckpointListItem, ValidationResult
from steward.checkpoints.names import format_bytes, format_relative_time, truncate_text
from steward.conversation.chat_queue import ChatItem, ChatItemKind
from steward.messages import ToolCall

# Tool output lines shown before eliding the rest
TOOL_RESULT_PREVIEW_LINES = 20

console = Console()

STYLES = {
    ChatItemKind.USER: "bold cyan",
    ChatItemKind.INFO: "dim",
    ChatItemKind.SUCCESS: "green",
    ChatItemKind.WARNING: "yellow",
    ChatItemKind.ERROR: "red",
}


def _preview(text: str, max_lines: int = TOOL_RESULT_PREVIEW_LINES) -> str:
    lines = text.splitlines()
    if len(lines) <= max_lines:
        return text
    return "\n".join(lines[:max_lines]) + f"\n... ({len(lines) - max_lines} more lines)"


class RichChatQueue:
    """ChatQueue that prints each item to a rich Console."""

    def __init__(self, output: Console | None = None, show_user: bool = False):
        self.console = output or console
        # The prompt already echoes what the user typed
        self.show_user = show_user

    def add_to_chat_queue(self, item: ChatItem) -> None:
        kind = item.kind
        if kind == ChatItemKind.ASSISTANT:
            self.console.print(Markdown(item.text))
        elif kind == ChatItemKind.TOOL_CALL:
            self.console.print(f"[bold magenta]⚒ {item.text}[/bold magenta]")
        elif kind == ChatItemKind.TOOL_RESULT:
            tool = item.data.get("tool", "tool")
            self.console.print(
                Panel(Text(_preview(item.text)), title=f"[bold]{tool}[/bold]", border_style="dim", expand=False)
            )
        elif kind == ChatItemKind.USER:
            if self.show_user or item.data.get("auto"):
                self.console.print(f"[{STYLES[kind]}]> {item.text}[/{STYLES[kind]}]")
        else:
            self.console.print(item.text, style=STYLES.get(kind, ""), markup=False)


def format_arguments(call: ToolCall) -> str:
    arguments = call.arguments
    if isinstance(arguments, str):
        return arguments
    return json.dumps(arguments, indent=2)


def show_tool_confirmation(console: Console, call: ToolCall, remaining: int) -> None:
    """Render a tool call awaiting approval."""
    title = f"[bold yellow]Approve {call.name}?[/bold yellow]"
    if remaining > 1:
        title += f" [dim]({remaining} pending)[/dim]"
    console.print(Panel(Text(_preview(format_arguments(call))), title=title, border_style="yellow", expand=False))


def checkpoint_table(items: list[CheckpointListItem]) -> Table:
    table = Table(show_header=True, header_style="bold")
    table.add_column("Name", style="cyan")
    table.add_column("Created", style="dim")
    table.add_column("Messages", justify="right")
    table.add_column("Files", justify="right")
    table.add_column("Size", justify="right")
    table.add_column("Model", style="dim")
    table.add_column("Description")

    for item in items:
        metadata = item.metadata
        table.add_row(
            item.name,
            format_relative_time(metadata.timestamp),
            str(metadata.message_count),
            str(len(metadata.files_changed)),
            format_bytes(item.size_bytes),
            metadata.provider.model,
            truncate_text(metadata.description, 50),
        )
    return table


def show_validation(console: Console, name: str, result: ValidationResult) -> None:
    if result.valid:
        console.print(f"[green]Checkpoint '{name}' is valid[/green]")
    else:
        console.print(f"[bold red]Checkpoint '{name}' is invalid:[/bold red]")
        for error in result.errors:
            console.print(f"  [red]- {error}[/red]")
    for warning in result.warnings:
        console.print(f"  [yellow]- {warning}[/yellow]")
