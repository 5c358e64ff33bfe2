"""
Prompt with command history and tab completion.

Uses prompt_toolkit to provide:
- Command history (arrow up/down), persisted across sessions
- Tab completion for slash commands and their arguments
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from prompt_toolkit import PromptSession
from prompt_toolkit.auto_suggest import AutoSuggestFromHistory
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.history import FileHistory
from prompt_toolkit.styles import Style

from steward.state import DevelopmentMode

if TYPE_CHECKING:
    from prompt_toolkit.document import Document


# Available slash commands with descriptions
SLASH_COMMANDS = {
    "/help": "Show available commands",
    "/quit": "Exit Steward",
    "/exit": "Exit Steward",
    "/mode": "Show or switch development mode",
    "/clear": "Start a fresh conversation",
    "/status": "Show session status",
    "/checkpoint": "Save, load, list or delete checkpoints",
}

SUBCOMMANDS = {
    "/mode": [mode.value for mode in DevelopmentMode],
    "/checkpoint": ["save", "load", "list", "delete"],
}


class StewardCompleter(Completer):
    """Completer for slash commands and their first argument."""

    def get_completions(self, document: Document, complete_event):
        text = document.text_before_cursor
        if not text.startswith("/"):
            return

        parts = text.split(" ")
        if len(parts) == 1:
            for cmd, desc in SLASH_COMMANDS.items():
                if cmd.startswith(text):
                    yield Completion(cmd, start_position=-len(text), display_meta=desc)
        elif len(parts) == 2:
            partial = parts[1]
            for option in SUBCOMMANDS.get(parts[0], []):
                if option.startswith(partial):
                    yield Completion(option, start_position=-len(partial))


def get_history_path() -> Path:
    """Get path to command history file."""
    steward_dir = Path.home() / ".steward"
    steward_dir.mkdir(exist_ok=True)
    return steward_dir / "history"


def create_prompt_session() -> PromptSession:
    """Create a prompt session with history and completion."""
    style = Style.from_dict(
        {
            "prompt": "ansicyan bold",
        }
    )

    session: PromptSession = PromptSession(
        history=FileHistory(str(get_history_path())),
        auto_suggest=AutoSuggestFromHistory(),
        completer=StewardCompleter(),
        complete_while_typing=False,  # Only complete on Tab
        style=style,
    )
    return session
