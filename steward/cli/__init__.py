"""
Steward CLI components.

Split into focused modules:
- render.py: Rich rendering of chat items, confirmations and checkpoints
- prompt.py: Enhanced prompt with history and completion
- commands.py: Slash command handlers
- interactive.py: Main conversation loop with tool approval
- typer_commands.py: CLI entry points (run, chat, checkpoints)
"""

# Conversation loop
from steward.cli.interactive import (
    confirm_pending_tools,
    conversation_loop,
    process_user_request,
)
from steward.cli.prompt import (
    SLASH_COMMANDS,
    StewardCompleter,
    create_prompt_session,
    get_history_path,
)

# Rendering
from steward.cli.render import RichChatQueue

# Typer app and main entry point
from steward.cli.typer_commands import (
    app,
    chat,
    main,
    run,
)

__all__ = [
    # Typer app
    "app",
    "main",
    "run",
    "chat",
    # Prompt
    "SLASH_COMMANDS",
    "StewardCompleter",
    "create_prompt_session",
    "get_history_path",
    # Rendering
    "RichChatQueue",
    # Interactive
    "conversation_loop",
    "process_user_request",
    "confirm_pending_tools",
]
