"""
Conversation engine.

Drives one user turn: stream the model, parse and filter tool calls, route
them through the approval policy, run what may run, and either loop with
the results, hand the rest to the confirmation flow and suspend, or end
the turn on a final answer.
"""

import logging
import time
from collections.abc import Awaitable, Callable
from pathlib import Path

from steward.conversation.cancellation import CancellationToken
from steward.conversation.chat_queue import ChatItem, ChatItemKind, ChatQueue, MemoryChatQueue
from steward.conversation.prompts import build_system_prompt
from steward.conversation.tokens import Tokenizer, count_message_tokens
from steward.exceptions import OperationCancelledError
from steward.logging import SessionLogEntry, get_session_id, now_iso, session_logger
from steward.messages import Message, MessageRole, ToolCall, ToolResult, tool_results_to_messages
from steward.provider.base import ChatClient, ChatResponse, StreamCallbacks
from steward.state import ConversationContinuation, DevelopmentMode, PendingToolBatch, order_results
from steward.tools.confirmation import ToolConfirmationFlow
from steward.tools.filters import filter_valid_tool_calls
from steward.tools.parser import parse_tool_calls
from steward.tools.policy import ApprovalDecision, blocked_message, classify_tool_call
from steward.tools.registry import ToolRegistry, log_tool_result, maybe_await

logger = logging.getLogger(__name__)

INTERRUPTED_MESSAGE = "Interrupted by user."
MALFORMED_FEEDBACK = (
    "Your previous response contained a malformed tool call. {error}\n\n"
    "Please try again using the correct format."
)
SUMMARY_NUDGE = "Please provide a summary or response based on the tool results above."
CONTINUE_NUDGE = "Please continue with the task."
APPROVAL_REQUIRED_MESSAGE = "Tool approval required for: {names}. Exiting non-interactive mode"
NOT_EXECUTED_MESSAGE = (
    "Not executed: another tool call in the same response was invalid. "
    "Please retry the remaining calls."
)
SELF_CORRECTION_LIMIT_MESSAGE = "Stopped after {count} consecutive malformed or invalid tool calls."

# Context usage thresholds (percent of the context window)
CONTEXT_WARNING_PERCENT = 80
CONTEXT_CRITICAL_PERCENT = 95

CompletionCallback = Callable[[], "None | Awaitable[None]"]


class ConversationEngine:
    """
    Owns the conversation history and runs model turns.

    A turn either ends (is_conversation_complete becomes True) or suspends
    while tool calls await confirmation; the confirmation flow resumes it
    through resume_after_tools().
    """

    def __init__(
        self,
        client: ChatClient,
        registry: ToolRegistry,
        chat_queue: ChatQueue | None = None,
        mode: DevelopmentMode = DevelopmentMode.NORMAL,
        workspace_root: str | Path | None = None,
        tokenizer: Tokenizer | None = None,
        context_window: int | None = None,
        non_interactive: bool = False,
        max_self_corrections: int | None = None,
        on_conversation_complete: CompletionCallback | None = None,
        on_token: Callable[[str], None] | None = None,
    ):
        self.client = client
        self.registry = registry
        self.chat_queue: ChatQueue = chat_queue if chat_queue is not None else MemoryChatQueue()
        self.mode = mode
        self.workspace_root = str(workspace_root) if workspace_root else None
        self.tokenizer = tokenizer
        self.context_window = context_window
        self.non_interactive = non_interactive
        self.max_self_corrections = max_self_corrections
        self.on_conversation_complete = on_conversation_complete
        self.on_token = on_token

        self.messages: list[Message] = []
        self.flow = ToolConfirmationFlow(
            registry,
            on_resume=self.resume_after_tools,
            chat_queue=self.chat_queue,
            get_mode=self.get_mode,
        )

        self.is_conversation_complete = False
        self.is_generating = False
        self.is_tool_executing = False
        self._token: CancellationToken | None = None

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    def get_mode(self) -> DevelopmentMode:
        return self.mode

    def set_mode(self, mode: DevelopmentMode) -> None:
        if mode == self.mode:
            return
        old_mode = self.mode
        self.mode = mode
        logger.info(f"Development mode {old_mode.value} -> {mode.value}")
        session_logger.info(
            SessionLogEntry(
                timestamp=now_iso(),
                session_id=get_session_id(),
                event_type="mode_change",
                from_state=old_mode.value,
                to_state=mode.value,
            ).to_json()
        )

    @property
    def is_busy(self) -> bool:
        """True while generating, executing tools or waiting on a confirmation."""
        return (
            self.is_generating
            or self.is_tool_executing
            or self.flow.is_confirming
            or self.flow.is_executing
        )

    def clear(self) -> None:
        """Forget the conversation."""
        self.messages = []
        self.is_conversation_complete = False

    def load_messages(self, messages: list[Message]) -> None:
        """Replace the history, e.g. from a checkpoint."""
        self.messages = list(messages)
        self.is_conversation_complete = False

    def build_system_message(self) -> Message:
        prompt = build_system_prompt(self.mode, self.registry.tool_names(), self.workspace_root)
        return Message(role=MessageRole.SYSTEM, content=prompt)

    def _show(self, kind: ChatItemKind, text: str, **data) -> None:
        self.chat_queue.add_to_chat_queue(ChatItem(kind=kind, text=text, data=data))

    # -------------------------------------------------------------------------
    # Turn entry points
    # -------------------------------------------------------------------------

    async def handle_user_message(self, text: str) -> None:
        """Append a user message and run the model until the turn ends or suspends."""
        self.is_conversation_complete = False
        self._show(ChatItemKind.USER, text)
        self.messages.append(Message(role=MessageRole.USER, content=text))

        system_message = self.build_system_message()
        try:
            self.check_context_usage(system_message)
        except Exception as e:
            logger.debug(f"Context usage check failed: {e}")

        await self._run(system_message)

    async def resume_after_tools(
        self,
        continuation: ConversationContinuation,
        results: list[ToolResult],
    ) -> None:
        """Pick a suspended turn back up once every pending call has a result."""
        self.messages = [
            *continuation.messages,
            continuation.assistant_message,
            *tool_results_to_messages(results),
        ]
        await self._run(continuation.system_message)

    def cancel(self) -> bool:
        """
        Abort the in-flight model call.

        Returns:
            True if a call was cancelled
        """
        if self._token is None or self._token.is_cancelled:
            return False
        self._token.cancel()
        return True

    def check_context_usage(self, system_message: Message) -> None:
        """Warn once the conversation nears the context window."""
        if self.tokenizer is None or not self.context_window:
            return
        total = count_message_tokens([system_message, *self.messages], self.tokenizer)
        percent = total / self.context_window * 100
        usage = f"Context {round(percent)}% full ({total:,}/{self.context_window:,} tokens)."
        if percent >= CONTEXT_CRITICAL_PERCENT:
            self._show(ChatItemKind.WARNING, f"{usage} Consider using /clear to start fresh.")
        elif percent >= CONTEXT_WARNING_PERCENT:
            self._show(ChatItemKind.WARNING, usage)

    async def _run(self, system_message: Message) -> None:
        """process_assistant_response with turn-level error handling."""
        try:
            await self.process_assistant_response(system_message, self.messages)
        except OperationCancelledError:
            logger.info("Model call interrupted by user")
            self._show(ChatItemKind.WARNING, INTERRUPTED_MESSAGE)
            await self._complete()
        except Exception as e:
            logger.error(f"Conversation turn failed: {e}")
            await self._fail(str(e))

    # -------------------------------------------------------------------------
    # Main loop
    # -------------------------------------------------------------------------

    async def process_assistant_response(
        self,
        system_message: Message,
        messages: list[Message],
    ) -> None:
        """
        Run model calls until the turn ends or suspends.

        Each iteration is one model call. Malformed output, unknown tools,
        executed tool results and empty replies feed back into the next
        iteration; a final text answer ends the turn; calls that need
        confirmation suspend it.
        """
        self.messages = messages
        corrections = 0

        while True:
            response = await self._call_model(system_message)
            self.messages.extend(response.auto_executed_messages)

            parsed = parse_tool_calls(response.content)
            if not parsed.success:
                error_content = f"{parsed.error}\n\n{parsed.examples}"
                self._show(ChatItemKind.ERROR, error_content)
                self.messages.append(Message(role=MessageRole.ASSISTANT, content=response.content))
                self.messages.append(
                    Message(role=MessageRole.USER, content=MALFORMED_FEEDBACK.format(error=error_content))
                )
                corrections += 1
                if await self._correction_limit_reached(corrections):
                    return
                continue

            content = parsed.cleaned_content
            if content.strip():
                self._show(ChatItemKind.ASSISTANT, content, model=self.client.model)

            all_calls = [*response.tool_calls, *parsed.tool_calls]
            filtered = filter_valid_tool_calls(all_calls, self.registry)
            valid_calls = filtered.valid_tool_calls

            if filtered.has_errors:
                self._answer_rejected(content, all_calls, filtered.rejected_calls, valid_calls, filtered.error_results)
                corrections += 1
                if await self._correction_limit_reached(corrections):
                    return
                continue

            if content.strip() or valid_calls:
                assistant_message = Message(
                    role=MessageRole.ASSISTANT,
                    content=content,
                    tool_calls=list(valid_calls) or None,
                )
                self.messages.append(assistant_message)

            if not valid_calls:
                if content.strip():
                    await self._complete()
                    return
                self._nudge()
                continue

            suspended = await self._dispatch_tool_calls(system_message, assistant_message, valid_calls)
            if suspended:
                return
            corrections = 0

    async def _call_model(self, system_message: Message) -> ChatResponse:
        self._token = CancellationToken()
        self.is_generating = True
        callbacks = StreamCallbacks(
            on_token=self.on_token,
            on_tool_executed=self._on_auto_executed,
        )
        try:
            return await self.client.chat_stream(
                [system_message, *self.messages],
                self.registry.get_tool_schemas(),
                callbacks,
                self._token,
            )
        finally:
            self.is_generating = False
            self._token = None

    def _on_auto_executed(self, call: ToolCall, result: str) -> None:
        self._show(ChatItemKind.TOOL_RESULT, result, tool=call.name, call_id=call.id)

    def _answer_rejected(
        self,
        content: str,
        all_calls: list[ToolCall],
        rejected: list[ToolCall],
        valid: list[ToolCall],
        error_results: list[ToolResult],
    ) -> None:
        """Record the response with every call answered: errors for unknown tools, a skip for the rest."""
        carried = {id(call) for call in (*rejected, *valid)}
        calls = [call for call in all_calls if id(call) in carried]
        self.messages.append(Message(role=MessageRole.ASSISTANT, content=content, tool_calls=calls))

        for result in error_results:
            self._show(ChatItemKind.ERROR, result.content, tool=result.name)

        results = [
            *error_results,
            *(ToolResult(call.id, call.name, NOT_EXECUTED_MESSAGE) for call in valid),
        ]
        ordered = order_results(results, [call.id for call in calls])
        self.messages.extend(tool_results_to_messages(ordered))

    def _nudge(self) -> None:
        last = self.messages[-1] if self.messages else None
        nudge = SUMMARY_NUDGE if last is not None and last.role == MessageRole.TOOL.value else CONTINUE_NUDGE
        self._show(ChatItemKind.USER, "continue", auto=True)
        self.messages.append(Message(role=MessageRole.USER, content=nudge))

    async def _dispatch_tool_calls(
        self,
        system_message: Message,
        assistant_message: Message,
        calls: list[ToolCall],
    ) -> bool:
        """
        Classify and run a response's tool calls.

        Returns:
            True if the turn suspended or ended, False to loop again
        """
        results: list[ToolResult] = []
        direct: list[ToolCall] = []
        needs_confirmation: list[ToolCall] = []

        for call in calls:
            decision = await classify_tool_call(call, self.registry, self.mode)
            if decision == ApprovalDecision.BLOCKED:
                result = ToolResult(call.id, call.name, blocked_message(call))
                self._show(ChatItemKind.ERROR, result.content, tool=call.name)
                log_tool_result(call, result, "blocked", self.mode)
                results.append(result)
            elif decision == ApprovalDecision.EXECUTE_DIRECTLY:
                direct.append(call)
            else:
                needs_confirmation.append(call)

        for call in direct:
            results.append(await self._execute_directly(call))

        call_order = [call.id for call in calls]

        if not needs_confirmation:
            self.messages.extend(tool_results_to_messages(order_results(results, call_order)))
            return False

        if self.non_interactive:
            names = ", ".join(call.name for call in needs_confirmation)
            message = APPROVAL_REQUIRED_MESSAGE.format(names=names)
            self._show(ChatItemKind.ERROR, message)
            self.messages.extend(tool_results_to_messages(order_results(results, call_order)))
            self.messages.append(Message(role=MessageRole.ASSISTANT, content=message))
            await self._complete()
            return True

        continuation = ConversationContinuation(
            messages=self.messages[:-1],
            assistant_message=assistant_message,
            system_message=system_message,
        )
        self.flow.start(
            PendingToolBatch(
                tool_calls=needs_confirmation,
                continuation=continuation,
                call_order=call_order,
                results=results,
            )
        )
        first = needs_confirmation[0]
        self._show(ChatItemKind.TOOL_CALL, first.name, call_id=first.id, arguments=first.arguments)
        logger.debug(f"Suspended for confirmation of {len(needs_confirmation)} tool calls")
        return True

    async def _execute_directly(self, call: ToolCall) -> ToolResult:
        started = time.monotonic()
        self.is_tool_executing = True
        try:
            validation = await self.registry.validate(call)
            if not validation.valid:
                result = ToolResult(call.id, call.name, validation.error)
                self._show(ChatItemKind.ERROR, validation.error, tool=call.name)
            else:
                result = await self.registry.execute(call)
                self._show(ChatItemKind.TOOL_RESULT, result.content, tool=call.name, call_id=call.id)
        finally:
            self.is_tool_executing = False
        log_tool_result(call, result, "direct", self.mode, started)
        return result

    # -------------------------------------------------------------------------
    # Turn endings
    # -------------------------------------------------------------------------

    async def _correction_limit_reached(self, corrections: int) -> bool:
        if self.max_self_corrections is None or corrections <= self.max_self_corrections:
            return False
        await self._fail(SELF_CORRECTION_LIMIT_MESSAGE.format(count=corrections))
        return True

    async def _fail(self, error: str) -> None:
        """Surface an error once, keep it in history (never sent to the model), end the turn."""
        self._show(ChatItemKind.ERROR, error)
        self.messages.append(Message(role=MessageRole.ERROR, content=error))
        await self._complete()

    async def _complete(self) -> None:
        self.is_conversation_complete = True
        if self.on_conversation_complete is not None:
            await maybe_await(self.on_conversation_complete())
