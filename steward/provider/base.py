"""
Provider client interface.

The engine talks to any backend through ChatClient: one streaming call
per model turn, returning the full content and any structured tool calls.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from steward.messages import Message, ToolCall

if TYPE_CHECKING:
    from steward.conversation.cancellation import CancellationToken


@dataclass
class StreamCallbacks:
    """Optional hooks invoked while a response streams in."""

    on_token: Callable[[str], None] | None = None
    # Tools the backend ran on its own during a multi-step call
    on_tool_executed: Callable[[ToolCall, str], None] | None = None
    on_finish: Callable[[], None] | None = None


@dataclass
class ChatResponse:
    """Complete result of one streaming model call."""

    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    # Assistant/tool messages the backend produced while auto-executing tools
    auto_executed_messages: list[Message] = field(default_factory=list)
    finish_reason: str = ""


class ChatClient(Protocol):
    """Streaming chat backend."""

    provider_name: str
    model: str

    async def chat_stream(
        self,
        messages: list[Message],
        tool_schemas: list[dict[str, Any]],
        callbacks: StreamCallbacks | None = None,
        cancellation_token: "CancellationToken | None" = None,
    ) -> ChatResponse:
        """
        Run one model call.

        Raises:
            OperationCancelledError: If the token is cancelled mid-call
            ProviderError: On transport failure or an empty response
        """
        ...
