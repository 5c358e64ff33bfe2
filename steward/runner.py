"""
Non-interactive runner.

Submits one prompt in auto-accept mode, polls the completion detector and
returns the process exit code.
"""

import asyncio
import logging
import time

from steward.completion import (
    ExitReason,
    NonInteractiveState,
    exit_code_for,
    is_non_interactive_complete,
)
from steward.logging import SessionLogEntry, now_iso, session_logger
from steward.session import StewardSession
from steward.state import DevelopmentMode

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.1  # seconds


def snapshot_state(session: StewardSession) -> NonInteractiveState:
    engine = session.engine
    return NonInteractiveState(
        is_tool_executing=engine.is_tool_executing or engine.flow.is_executing,
        is_bash_executing=session.executor.has_active_executions(),
        is_tool_confirmation_mode=engine.flow.is_confirming,
        is_conversation_complete=engine.is_conversation_complete,
        messages=list(engine.messages),
    )


async def run_non_interactive(
    session: StewardSession,
    prompt: str,
    max_seconds: float | None = None,
    flush_delay: float | None = None,
    poll_interval: float = POLL_INTERVAL,
) -> tuple[int, ExitReason]:
    """
    Run a prompt to completion without a human in the loop.

    Args:
        session: Session whose engine runs the prompt
        prompt: User request
        max_seconds: Time budget (default from config)
        flush_delay: Pause before returning so output reaches the terminal

    Returns:
        (exit code, exit reason)
    """
    config = session.config
    max_seconds = config.non_interactive_timeout if max_seconds is None else max_seconds
    flush_delay = config.output_flush_delay if flush_delay is None else flush_delay

    engine = session.engine
    engine.non_interactive = True
    engine.set_mode(DevelopmentMode.AUTO_ACCEPT)

    start_time = time.monotonic()
    session_logger.info(
        SessionLogEntry(
            timestamp=now_iso(),
            session_id=session.session_id,
            event_type="request",
            user_request=prompt[:500],
        ).to_json()
    )

    turn = asyncio.create_task(engine.handle_user_message(prompt))
    reason: ExitReason
    try:
        while True:
            check = is_non_interactive_complete(snapshot_state(session), start_time, max_seconds)
            if check.should_exit and check.reason is not None:
                reason = check.reason
                break
            if turn.done() and not turn.cancelled() and turn.exception() is not None:
                logger.error(f"Conversation turn crashed: {turn.exception()}")
                reason = ExitReason.ERROR
                break
            await asyncio.sleep(poll_interval)
    finally:
        engine.cancel()
        session.executor.close()
        if not turn.done():
            turn.cancel()
            try:
                await turn
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.debug(f"Turn ended with error during shutdown: {e}")

    if reason == ExitReason.TIMEOUT:
        logger.error("Non-interactive mode timed out")
    elif reason == ExitReason.ERROR:
        logger.error("Non-interactive mode encountered errors")

    exit_code = exit_code_for(reason)
    session_logger.info(
        SessionLogEntry(
            timestamp=now_iso(),
            session_id=session.session_id,
            event_type="end",
            exit_reason=reason.value,
            total_duration_seconds=round(time.monotonic() - start_time, 3),
        ).to_json()
    )

    await asyncio.sleep(flush_delay)
    return exit_code, reason
