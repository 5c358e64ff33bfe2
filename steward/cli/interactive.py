"""
Steward CLI - Interactive Chat Loop

Reads requests with prompt_toolkit, runs them through the conversation
engine and asks the operator to approve each pending tool call.
"""

import asyncio
import logging
import signal

from prompt_toolkit import PromptSession

from steward.cli import commands
from steward.cli.prompt import create_prompt_session
from steward.cli.render import console, show_tool_confirmation
from steward.logging import SessionLogEntry, now_iso, session_logger
from steward.session import StewardSession

logger = logging.getLogger(__name__)

YES_ANSWERS = ("y", "yes")


async def _run_with_interrupt(session: StewardSession, coro) -> None:
    """Await a turn; Ctrl+C aborts the model call instead of killing the process."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, session.engine.cancel)
        installed = True
    except (NotImplementedError, RuntimeError):
        # Windows event loops have no signal handlers
        installed = False
    try:
        with console.status("[dim]Thinking...[/dim]", spinner="dots"):
            await coro
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


async def confirm_pending_tools(session: StewardSession, prompt_session: PromptSession) -> None:
    """Ask about each pending tool call until the engine stops waiting."""
    flow = session.engine.flow
    while flow.is_confirming:
        call = flow.current_call
        batch = flow.pending
        if call is None or batch is None:
            break
        show_tool_confirmation(console, call, len(batch.remaining_calls))
        try:
            answer = await prompt_session.prompt_async("Run it? [y/N] ")
        except (KeyboardInterrupt, EOFError):
            answer = ""

        if answer.strip().lower() in YES_ANSWERS:
            await _run_with_interrupt(session, flow.confirm(call.id))
        else:
            await _run_with_interrupt(session, flow.cancel())


async def process_user_request(
    session: StewardSession,
    prompt_session: PromptSession,
    user_input: str,
) -> None:
    session_logger.info(
        SessionLogEntry(
            timestamp=now_iso(),
            session_id=session.session_id,
            event_type="request",
            user_request=user_input[:500],
        ).to_json()
    )
    await _run_with_interrupt(session, session.engine.handle_user_message(user_input))
    await confirm_pending_tools(session, prompt_session)


def _handle_command(user_input: str, session: StewardSession) -> bool:
    """
    Dispatch a slash command.

    Returns:
        False when the loop should exit
    """
    parts = user_input.strip().split()
    cmd, args = parts[0].lower(), parts[1:]

    if cmd in ("/quit", "/exit", "/q"):
        return False
    elif cmd == "/help":
        commands.handle_help()
    elif cmd == "/status":
        commands.handle_status(session)
    elif cmd == "/mode":
        commands.handle_mode(args, session)
    elif cmd == "/clear":
        commands.handle_clear(session)
    elif cmd == "/checkpoint":
        commands.handle_checkpoint(args, session)
    else:
        console.print(f"[yellow]Unknown command: {cmd}[/yellow] (try /help)")
    return True


async def conversation_loop(session: StewardSession) -> None:
    """Main interactive loop."""
    console.print("[bold]What do you want to work on?[/bold]")
    console.print("[dim]Type your request, or /help for commands, /quit to exit[/dim]")
    console.print(f"[dim]Mode: {session.engine.mode.value}[/dim]")
    console.print()

    prompt_session = create_prompt_session()

    while True:
        try:
            user_input = await prompt_session.prompt_async("> ")
        except KeyboardInterrupt:
            continue
        except EOFError:
            break

        if not user_input.strip():
            continue

        if user_input.startswith("/"):
            if not _handle_command(user_input, session):
                break
            continue

        try:
            await process_user_request(session, prompt_session, user_input)
        except Exception as e:
            # The engine absorbs turn errors; this covers the confirmation prompt itself
            logger.exception("Request failed")
            console.print(f"[bold red]Error:[/bold red] {e}")

    console.print("[yellow]Goodbye![/yellow]")
