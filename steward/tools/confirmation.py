"""
Tool confirmation flow.

Walks a batch of tool calls that need operator approval one at a time:
IDLE -> CONFIRMING -> EXECUTING -> CONFIRMING | IDLE. When the batch is
exhausted (or cancelled) the conversation engine is resumed with every
result in the order the model issued the calls.
"""

import logging
import time
from collections.abc import Awaitable, Callable

from steward.conversation.chat_queue import ChatItem, ChatItemKind, ChatQueue
from steward.exceptions import StateTransitionError
from steward.logging import SessionLogEntry, get_session_id, now_iso, session_logger
from steward.messages import ToolCall, ToolResult
from steward.state import (
    VALID_TRANSITIONS,
    ConversationContinuation,
    DevelopmentMode,
    ModeAccessor,
    PendingToolBatch,
    ToolFlowState,
)
from steward.tools.registry import ToolRegistry, log_tool_result

logger = logging.getLogger(__name__)

CANCELLED_RESULT_MESSAGE = "Tool execution was cancelled by the user."

ResumeCallback = Callable[[ConversationContinuation, list[ToolResult]], Awaitable[None]]


def create_cancellation_results(tool_calls: list[ToolCall]) -> list[ToolResult]:
    """One cancellation result per call so the model sees every call answered."""
    return [
        ToolResult(tool_call_id=call.id, name=call.name, content=CANCELLED_RESULT_MESSAGE)
        for call in tool_calls
    ]


class ToolConfirmationFlow:
    """
    Suspend/resume state machine for tool calls awaiting confirmation.

    The engine hands over a PendingToolBatch and returns; the operator then
    drives the flow with confirm() and cancel(). Both are no-ops while IDLE.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        on_resume: ResumeCallback,
        chat_queue: ChatQueue | None = None,
        get_mode: ModeAccessor | None = None,
    ):
        self.registry = registry
        self.on_resume = on_resume
        self.chat_queue = chat_queue
        self.get_mode = get_mode
        self._state = ToolFlowState.IDLE
        self._batch: PendingToolBatch | None = None

    @property
    def state(self) -> ToolFlowState:
        return self._state

    @property
    def pending(self) -> PendingToolBatch | None:
        return self._batch

    @property
    def current_call(self) -> ToolCall | None:
        return self._batch.current_call if self._batch else None

    @property
    def is_confirming(self) -> bool:
        return self._state == ToolFlowState.CONFIRMING

    @property
    def is_executing(self) -> bool:
        return self._state == ToolFlowState.EXECUTING

    def _transition(self, new_state: ToolFlowState) -> None:
        if new_state not in VALID_TRANSITIONS.get(self._state, set()):
            raise StateTransitionError(
                f"Invalid tool flow transition: {self._state.name} -> {new_state.name}",
                from_state=self._state.name,
                to_state=new_state.name,
            )
        old_state = self._state
        self._state = new_state
        logger.debug(f"Tool flow {old_state.name} -> {new_state.name}")
        session_logger.debug(
            SessionLogEntry(
                timestamp=now_iso(),
                session_id=get_session_id(),
                event_type="tool_flow",
                from_state=old_state.name,
                to_state=new_state.name,
            ).to_json()
        )

    def _mode(self) -> DevelopmentMode | None:
        return self.get_mode() if self.get_mode else None

    def _show(self, kind: ChatItemKind, text: str, **data) -> None:
        if self.chat_queue:
            self.chat_queue.add_to_chat_queue(ChatItem(kind=kind, text=text, data=data))

    def start(self, batch: PendingToolBatch) -> None:
        """
        Begin confirming a batch at its first call.

        Raises:
            StateTransitionError: If a batch is already in progress
            ValueError: If the batch holds no calls
        """
        if not batch.tool_calls:
            raise ValueError("Cannot start a confirmation flow without tool calls")
        self._transition(ToolFlowState.CONFIRMING)
        batch.cursor = 0
        self._batch = batch

    async def confirm(self, call_id: str | None = None) -> bool:
        """
        Execute the current call and advance.

        Args:
            call_id: When given, must match the current call or nothing happens

        Returns:
            True if a call was executed
        """
        if self._state != ToolFlowState.CONFIRMING or self._batch is None:
            return False
        call = self._batch.current_call
        if call is None:
            return False
        if call_id is not None and call_id != call.id:
            logger.debug(f"Ignoring confirm for {call_id}, current call is {call.id}")
            return False

        self._transition(ToolFlowState.EXECUTING)
        result = await self._execute(call)
        self._batch.results.append(result)
        self._batch.cursor += 1

        if self._batch.is_exhausted:
            await self._finish()
        else:
            self._transition(ToolFlowState.CONFIRMING)
        return True

    async def cancel(self) -> bool:
        """
        Cancel every remaining call in the batch and resume the engine.

        Returns:
            True if a batch was cancelled
        """
        if self._state != ToolFlowState.CONFIRMING or self._batch is None:
            return False

        remaining = self._batch.remaining_calls
        cancelled = create_cancellation_results(remaining)
        for call, result in zip(remaining, cancelled):
            log_tool_result(call, result, "cancelled", self._mode())
        self._batch.results.extend(cancelled)
        self._batch.cursor = len(self._batch.tool_calls)
        self._show(ChatItemKind.WARNING, CANCELLED_RESULT_MESSAGE, count=len(remaining))

        await self._finish()
        return True

    async def _execute(self, call: ToolCall) -> ToolResult:
        started = time.monotonic()
        validation = await self.registry.validate(call)
        if not validation.valid:
            result = ToolResult(call.id, call.name, validation.error)
            self._show(ChatItemKind.ERROR, validation.error, tool=call.name)
        else:
            try:
                result = await self.registry.execute(call)
            except Exception as e:
                # Registry already converts handler errors; this covers its own failures
                logger.exception(f"Tool {call.name} crashed")
                result = ToolResult(call.id, call.name, f"Error: {e}")
            self._show(ChatItemKind.TOOL_RESULT, result.content, tool=call.name, call_id=call.id)

        log_tool_result(call, result, "confirmed", self._mode(), started)
        return result

    async def _finish(self) -> None:
        batch = self._batch
        self._batch = None
        self._transition(ToolFlowState.IDLE)
        if batch is not None:
            await self.on_resume(batch.continuation, batch.ordered_results())
