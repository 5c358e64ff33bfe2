"""
Steward CLI - Typer Commands

Entry points: `steward run` (non-interactive), `steward chat`
(interactive) and `steward checkpoints ...` (checkpoint management).
"""

import asyncio
import logging
from pathlib import Path

import typer

from steward.checkpoints.manager import CheckpointManager
from steward.cli.interactive import conversation_loop
from steward.cli.render import RichChatQueue, checkpoint_table, console, show_validation
from steward.config import StewardConfig, load_config
from steward.exceptions import CheckpointError, ConfigError
from steward.logging import SessionLogEntry, now_iso, session_logger
from steward.runner import run_non_interactive
from steward.session import create_session
from steward.state import DevelopmentMode

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="steward",
    help="Interactive coding agent with tool approval and checkpoints",
    add_completion=False,
    no_args_is_help=True,
)

checkpoints_app = typer.Typer(help="Manage conversation checkpoints", no_args_is_help=True)
app.add_typer(checkpoints_app, name="checkpoints")


def _load(workspace: Path | None = None, model: str | None = None) -> StewardConfig:
    """Load configuration and apply command-line overrides."""
    try:
        config = load_config()
    except ConfigError as e:
        console.print(f"[bold red]Configuration error:[/bold red] {e}")
        raise typer.Exit(1)
    if workspace is not None:
        config.workspace_root = str(workspace.expanduser().resolve())
    if model:
        config.model = model
    return config


def _manager(workspace: Path | None) -> CheckpointManager:
    config = _load(workspace)
    return CheckpointManager(config.workspace_root)


WorkspaceOption = typer.Option(None, "--workspace", "-w", help="Project directory (default: cwd)")


@app.command()
def run(
    prompt: str = typer.Argument(..., help="Request to run"),
    workspace: Path = WorkspaceOption,
    model: str = typer.Option(None, "--model", "-m", help="Model to use"),
    timeout: float = typer.Option(None, "--timeout", "-t", help="Time budget in seconds"),
) -> None:
    """Run one request without interaction (auto-accept mode) and exit."""
    config = _load(workspace, model)
    chat_queue = RichChatQueue(show_user=True)

    async def _run() -> int:
        try:
            session = create_session(
                config,
                chat_queue=chat_queue,
                mode=DevelopmentMode.AUTO_ACCEPT,
                non_interactive=True,
            )
        except ConfigError as e:
            console.print(f"[bold red]Client initialization failed:[/bold red] {e}")
            return 1
        try:
            exit_code, reason = await run_non_interactive(session, prompt, max_seconds=timeout)
        finally:
            await session.close()
        if exit_code:
            console.print(f"[red]Exiting: {reason.value}[/red]")
        return exit_code

    raise typer.Exit(asyncio.run(_run()))


@app.command()
def chat(
    workspace: Path = WorkspaceOption,
    model: str = typer.Option(None, "--model", "-m", help="Model to use"),
    mode: DevelopmentMode = typer.Option(
        DevelopmentMode.NORMAL, "--mode", help="Initial development mode"
    ),
) -> None:
    """Start an interactive session."""
    config = _load(workspace, model)

    # One event loop for the whole session so the provider client stays usable
    async def run_session() -> int:
        try:
            session = create_session(config, chat_queue=RichChatQueue(), mode=mode)
        except ConfigError as e:
            console.print(f"[bold red]Client initialization failed:[/bold red] {e}")
            return 1
        console.print(
            f"[bold cyan]Steward[/bold cyan] [dim]{config.provider}/{config.model} "
            f"in {config.workspace_root}[/dim]"
        )
        try:
            await conversation_loop(session)
        finally:
            session_logger.info(
                SessionLogEntry(
                    timestamp=now_iso(),
                    session_id=session.session_id,
                    event_type="end",
                    exit_reason="user",
                ).to_json()
            )
            await session.close()
        return 0

    raise typer.Exit(asyncio.run(run_session()))


@checkpoints_app.command("list")
def list_checkpoints(workspace: Path = WorkspaceOption) -> None:
    """List checkpoints, newest first."""
    items = _manager(workspace).list_checkpoints()
    if not items:
        console.print("[dim]No checkpoints found[/dim]")
        return
    console.print(checkpoint_table(items))


@checkpoints_app.command("validate")
def validate_checkpoint(
    name: str = typer.Argument(..., help="Checkpoint name"),
    workspace: Path = WorkspaceOption,
) -> None:
    """Check a checkpoint's stored files."""
    result = _manager(workspace).validate_checkpoint(name)
    show_validation(console, name, result)
    if not result.valid:
        raise typer.Exit(1)


@checkpoints_app.command("delete")
def delete_checkpoint(
    name: str = typer.Argument(..., help="Checkpoint name"),
    workspace: Path = WorkspaceOption,
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Delete a checkpoint."""
    if not yes and not typer.confirm(f"Delete checkpoint '{name}'?"):
        raise typer.Exit(0)
    try:
        _manager(workspace).delete_checkpoint(name)
    except CheckpointError as e:
        console.print(f"[bold red]Error:[/bold red] {e.message}")
        raise typer.Exit(1)
    console.print(f"[green]Deleted checkpoint '{name}'[/green]")


@checkpoints_app.command("restore")
def restore_checkpoint(
    name: str = typer.Argument(..., help="Checkpoint name"),
    workspace: Path = WorkspaceOption,
) -> None:
    """Write a checkpoint's file snapshots back into the workspace."""
    manager = _manager(workspace)
    try:
        data = manager.load_checkpoint(name, validate_integrity=True)
        manager.restore_files(data)
    except CheckpointError as e:
        console.print(f"[bold red]Restore failed:[/bold red] {e.message}")
        for error in getattr(e, "errors", []):
            console.print(f"  [red]- {error}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Restored {len(data.file_snapshots)} files from '{name}'[/green]")


def main() -> None:
    """Console script entry point."""
    app()
