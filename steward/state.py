"""
Steward - Trust Modes and Tool Flow State

Tracks the development (trust) mode and the suspend/resume state of the
tool confirmation flow so invalid transitions are caught early.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum, auto

from steward.messages import Message, ToolCall, ToolResult


class DevelopmentMode(str, Enum):
    """
    Trust mode governing which tool calls need operator confirmation.

    NORMAL: tools declaring needs_approval ask first
    AUTO_ACCEPT: everything runs without asking, except shell execution
    PLAN: read-only; file-mutating tools are blocked outright
    """

    NORMAL = "normal"
    AUTO_ACCEPT = "auto-accept"
    PLAN = "plan"


# Read-only view of the active mode, handed to tools instead of a global
ModeAccessor = Callable[[], DevelopmentMode]


class ToolFlowState(Enum):
    """
    States of the tool confirmation flow.

    State transitions:
    IDLE -> CONFIRMING (batch handed over by the engine)
    CONFIRMING -> EXECUTING (operator confirmed the current call)
    CONFIRMING -> IDLE (operator cancelled the rest of the batch)
    EXECUTING -> CONFIRMING (more calls remain)
    EXECUTING -> IDLE (batch exhausted, engine resumed)
    """

    IDLE = auto()
    CONFIRMING = auto()
    EXECUTING = auto()


VALID_TRANSITIONS: dict[ToolFlowState, set[ToolFlowState]] = {
    ToolFlowState.IDLE: {ToolFlowState.CONFIRMING},
    ToolFlowState.CONFIRMING: {ToolFlowState.EXECUTING, ToolFlowState.IDLE},
    ToolFlowState.EXECUTING: {ToolFlowState.CONFIRMING, ToolFlowState.IDLE},
}


@dataclass
class ConversationContinuation:
    """Everything the engine needs to pick the turn back up after confirmation."""

    messages: list[Message]  # History before the draft assistant message
    assistant_message: Message  # Draft assistant message carrying the tool_calls
    system_message: Message


@dataclass
class PendingToolBatch:
    """
    Tool calls awaiting operator confirmation.

    `results` may already hold results produced before the flow started
    (direct executions, plan-mode blocks); they are merged back in original
    call order once the batch settles.
    """

    tool_calls: list[ToolCall]
    continuation: ConversationContinuation
    call_order: list[str] = field(default_factory=list)
    results: list[ToolResult] = field(default_factory=list)
    cursor: int = 0

    @property
    def current_call(self) -> ToolCall | None:
        if 0 <= self.cursor < len(self.tool_calls):
            return self.tool_calls[self.cursor]
        return None

    @property
    def remaining_calls(self) -> list[ToolCall]:
        return self.tool_calls[self.cursor :]

    @property
    def is_exhausted(self) -> bool:
        return self.cursor >= len(self.tool_calls)

    def ordered_results(self) -> list[ToolResult]:
        """Accumulated results sorted by the order calls appeared in the response."""
        return order_results(self.results, self.call_order)


def order_results(results: list[ToolResult], call_order: list[str]) -> list[ToolResult]:
    """Sort results by call id position; unknown ids go last, ties keep their order."""
    if not call_order:
        return list(results)
    position = {call_id: i for i, call_id in enumerate(call_order)}
    return sorted(results, key=lambda r: position.get(r.tool_call_id, len(position)))
