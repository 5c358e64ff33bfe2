"""
Steward CLI - Slash Command Handlers

All /command handlers for the interactive chat loop.
"""

from steward.cli.render import checkpoint_table, console
from steward.exceptions import CheckpointError
from steward.session import StewardSession
from steward.state import DevelopmentMode


def handle_help() -> None:
    """Handle /help command."""
    console.print("\n[bold]Commands:[/bold]")
    console.print("  /mode [normal|auto-accept|plan] - Show or switch development mode")
    console.print("  /checkpoint save [name]         - Save conversation and modified files")
    console.print("  /checkpoint load <name>         - Restore a checkpoint")
    console.print("  /checkpoint list                - List checkpoints")
    console.print("  /checkpoint delete <name>       - Delete a checkpoint")
    console.print("  /clear                          - Start a fresh conversation")
    console.print("  /status                         - Show session status")
    console.print("  /quit                           - Exit Steward")
    console.print()


def handle_status(session: StewardSession) -> None:
    """Handle /status command."""
    engine = session.engine
    console.print("\n[bold]Session Status:[/bold]")
    console.print(f"  Session: {session.session_id[:8]}")
    console.print(f"  Model: {session.client.provider_name}/{session.client.model}")
    console.print(f"  Mode: {engine.mode.value}")
    console.print(f"  Messages: {len(engine.messages)}")
    console.print(f"  Workspace: {session.config.workspace_root}")
    console.print()


def handle_mode(args: list[str], session: StewardSession) -> None:
    """Handle /mode [name]."""
    engine = session.engine
    if not args:
        console.print(f"Mode: [bold]{engine.mode.value}[/bold]")
        return
    try:
        mode = DevelopmentMode(args[0].lower())
    except ValueError:
        valid = ", ".join(m.value for m in DevelopmentMode)
        console.print(f"[red]Unknown mode '{args[0]}'. Choose one of: {valid}[/red]")
        return
    engine.set_mode(mode)
    console.print(f"[green]Mode set to {mode.value}[/green]")


def handle_clear(session: StewardSession) -> None:
    """Handle /clear command."""
    session.engine.clear()
    console.print("[green]Conversation cleared[/green]")


def handle_checkpoint(args: list[str], session: StewardSession) -> None:
    """Handle /checkpoint save|load|list|delete."""
    action = args[0].lower() if args else "list"
    name = args[1] if len(args) > 1 else None

    try:
        if action == "save":
            if not session.engine.messages:
                console.print("[yellow]Nothing to save yet[/yellow]")
                return
            metadata = session.save_checkpoint(name)
            console.print(
                f"[green]Saved checkpoint '{metadata.name}' "
                f"({metadata.message_count} messages, {len(metadata.files_changed)} files)[/green]"
            )
        elif action == "load":
            if not name:
                console.print("[red]Usage: /checkpoint load <name>[/red]")
                return
            metadata = session.load_checkpoint(name)
            console.print(
                f"[green]Restored checkpoint '{metadata.name}' "
                f"({metadata.message_count} messages, {len(metadata.files_changed)} files)[/green]"
            )
        elif action == "list":
            items = session.checkpoints.list_checkpoints()
            if not items:
                console.print("[dim]No checkpoints yet[/dim]")
                return
            console.print(checkpoint_table(items))
        elif action == "delete":
            if not name:
                console.print("[red]Usage: /checkpoint delete <name>[/red]")
                return
            session.checkpoints.delete_checkpoint(name)
            console.print(f"[green]Deleted checkpoint '{name}'[/green]")
        else:
            console.print(f"[red]Unknown checkpoint action '{action}'[/red]")
    except CheckpointError as e:
        console.print(f"[bold red]Checkpoint error:[/bold red] {e.message}")
