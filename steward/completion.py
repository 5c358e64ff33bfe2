"""
Non-interactive completion detection.

A pure check over a snapshot of engine state, polled by the runner to
decide when `steward run` should exit and with which code.
"""

import time
from dataclasses import dataclass, field
from enum import Enum

from steward.messages import Message, MessageRole

TOOL_APPROVAL_MARKER = "Tool approval required"


class ExitReason(str, Enum):
    """Why a non-interactive run ended."""

    TIMEOUT = "timeout"
    TOOL_APPROVAL = "tool-approval"
    ERROR = "error"
    COMPLETE = "complete"


@dataclass
class NonInteractiveState:
    """Snapshot of everything the detector looks at."""

    is_tool_executing: bool = False
    is_bash_executing: bool = False
    is_tool_confirmation_mode: bool = False
    is_conversation_complete: bool = False
    messages: list[Message] = field(default_factory=list)


@dataclass
class CompletionCheck:
    should_exit: bool
    reason: ExitReason | None = None


def is_non_interactive_complete(
    state: NonInteractiveState,
    start_time: float,
    max_seconds: float,
    now: float | None = None,
) -> CompletionCheck:
    """
    Decide whether a non-interactive run is finished.

    First match wins:
    1. Elapsed time beyond max_seconds: TIMEOUT
    2. Any message carries the tool-approval marker: TOOL_APPROVAL
    3. Any error-role message, or content mentioning "error": ERROR
    4. No tool, shell or confirmation activity and completion signalled: COMPLETE

    Args:
        state: Current engine snapshot
        start_time: time.monotonic() when the run started
        max_seconds: Time budget
        now: Override for the current monotonic time
    """
    current = time.monotonic() if now is None else now
    if current - start_time > max_seconds:
        return CompletionCheck(True, ExitReason.TIMEOUT)

    if any(TOOL_APPROVAL_MARKER in (m.content or "") for m in state.messages):
        return CompletionCheck(True, ExitReason.TOOL_APPROVAL)

    if any(
        m.role == MessageRole.ERROR.value or "error" in (m.content or "").lower()
        for m in state.messages
    ):
        return CompletionCheck(True, ExitReason.ERROR)

    idle = not (
        state.is_tool_executing or state.is_bash_executing or state.is_tool_confirmation_mode
    )
    if idle and state.is_conversation_complete:
        return CompletionCheck(True, ExitReason.COMPLETE)

    return CompletionCheck(False)


def exit_code_for(reason: ExitReason | None) -> int:
    """0 only for a clean completion."""
    return 0 if reason == ExitReason.COMPLETE else 1
