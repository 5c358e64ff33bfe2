"""
OpenAI-compatible streaming client.

Works against the OpenAI API or any compatible endpoint (set base_url).
Content and tool-call deltas are accumulated into a single ChatResponse.
"""

import asyncio
import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

from openai import AsyncOpenAI, OpenAIError

from steward.config import DEFAULT_MODEL, DEFAULT_PROVIDER
from steward.conversation.cancellation import CancellationToken
from steward.exceptions import EmptyResponseError, OperationCancelledError, ProviderConnectionError
from steward.logging import ModelCallLogEntry, get_session_id, model_logger, now_iso
from steward.messages import Message, MessageRole, ToolCall
from steward.provider.base import ChatResponse, StreamCallbacks

logger = logging.getLogger(__name__)

DEFAULT_TEMPERATURE = 0.2


@dataclass
class _ToolCallDelta:
    id: str = ""
    name: str = ""
    arguments: str = ""


@dataclass
class _StreamState:
    content: list[str] = field(default_factory=list)
    tool_calls: dict[int, _ToolCallDelta] = field(default_factory=dict)
    finish_reason: str = ""
    saw_choices: bool = False


def _decode_arguments(raw: str) -> dict[str, Any] | str:
    """Decode streamed arguments; undecodable text is kept for the validator to report."""
    if not raw.strip():
        return {}
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError:
        return raw
    return decoded if isinstance(decoded, dict) else raw


def build_request_messages(messages: list[Message]) -> list[dict[str, Any]]:
    """Provider payload; local error messages are never sent."""
    return [m.to_api_dict() for m in messages if m.role != MessageRole.ERROR.value]


class OpenAIChatClient:
    """
    Streaming client over the openai SDK.

    The SDK client is created lazily inside the running loop and recreated
    when the loop changes, so repeated asyncio.run() calls keep working.
    """

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        base_url: str | None = None,
        provider_name: str = DEFAULT_PROVIDER,
        temperature: float = DEFAULT_TEMPERATURE,
    ):
        self.model = model
        self.provider_name = provider_name
        self.temperature = temperature
        self._api_key = api_key
        self._base_url = base_url

        self._client: AsyncOpenAI | None = None
        self._client_loop: asyncio.AbstractEventLoop | None = None

        self.request_count = 0

    async def _get_client(self) -> AsyncOpenAI:
        """Get or create AsyncOpenAI client, recreating if event loop changed."""
        current_loop = asyncio.get_running_loop()

        # Old loop is dead; drop the client without closing it
        if self._client is not None and self._client_loop is not current_loop:
            self._client = None
            self._client_loop = None

        if self._client is None:
            self._client = AsyncOpenAI(api_key=self._api_key, base_url=self._base_url)
            self._client_loop = current_loop

        return self._client

    async def close(self) -> None:
        """Close the client and release resources."""
        if self._client is not None:
            try:
                await self._client.close()
            except Exception as e:
                logger.debug(f"Error closing OpenAI client: {e}")
            self._client = None
            self._client_loop = None

    async def _consume(
        self,
        request: dict[str, Any],
        state: _StreamState,
        callbacks: StreamCallbacks,
    ) -> None:
        client = await self._get_client()
        stream = await client.chat.completions.create(**request)
        self.request_count += 1

        async for chunk in stream:
            if not chunk.choices:
                continue
            state.saw_choices = True
            choice = chunk.choices[0]
            delta = choice.delta

            if delta is not None and delta.content:
                state.content.append(delta.content)
                if callbacks.on_token:
                    callbacks.on_token(delta.content)

            for tool_delta in (delta.tool_calls if delta is not None else None) or []:
                slot = state.tool_calls.setdefault(tool_delta.index, _ToolCallDelta())
                if tool_delta.id:
                    slot.id = tool_delta.id
                if tool_delta.function is not None:
                    if tool_delta.function.name:
                        slot.name += tool_delta.function.name
                    if tool_delta.function.arguments:
                        slot.arguments += tool_delta.function.arguments

            if choice.finish_reason:
                state.finish_reason = choice.finish_reason

    async def chat_stream(
        self,
        messages: list[Message],
        tool_schemas: list[dict[str, Any]],
        callbacks: StreamCallbacks | None = None,
        cancellation_token: CancellationToken | None = None,
    ) -> ChatResponse:
        """
        Stream one completion.

        Args:
            messages: System message followed by the conversation
            tool_schemas: OpenAI function schemas; omitted from the request when empty
            callbacks: Token and finish hooks
            cancellation_token: Aborts the call when cancelled

        Returns:
            ChatResponse with accumulated content and tool calls

        Raises:
            OperationCancelledError: If cancelled before the stream finished
            EmptyResponseError: If no chunk carried a choice
            ProviderConnectionError: On any SDK or transport failure
        """
        callbacks = callbacks or StreamCallbacks()
        token = cancellation_token or CancellationToken()
        token.raise_if_cancelled()

        request: dict[str, Any] = {
            "model": self.model,
            "messages": build_request_messages(messages),
            "temperature": self.temperature,
            "stream": True,
        }
        if tool_schemas:
            request["tools"] = tool_schemas

        start_time = time.monotonic()
        log_entry = ModelCallLogEntry(
            timestamp=now_iso(),
            request_id=str(uuid.uuid4()),
            session_id=get_session_id(),
            provider=self.provider_name,
            model=self.model,
            message_count=len(request["messages"]),
            tool_count=len(tool_schemas),
        )
        state = _StreamState()

        consume = asyncio.ensure_future(self._consume(request, state, callbacks))
        cancelled = asyncio.ensure_future(token.wait())
        try:
            await asyncio.wait({consume, cancelled}, return_when=asyncio.FIRST_COMPLETED)
            if not consume.done():
                consume.cancel()
                try:
                    await consume
                except asyncio.CancelledError:
                    pass
                log_entry.cancelled = True
                log_entry.response_content = "".join(state.content)[:10000]
                log_entry.latency_ms = int((time.monotonic() - start_time) * 1000)
                model_logger.info(log_entry.to_json())
                raise OperationCancelledError()

            consume.result()

        except OpenAIError as e:
            log_entry.error = str(e)[:500]
            log_entry.error_type = type(e).__name__
            log_entry.latency_ms = int((time.monotonic() - start_time) * 1000)
            model_logger.error(log_entry.to_json())
            raise ProviderConnectionError(f"API error: {e}", {"model": self.model})
        except (OperationCancelledError, asyncio.CancelledError):
            raise
        except Exception as e:
            log_entry.error = str(e)[:500]
            log_entry.error_type = type(e).__name__
            log_entry.latency_ms = int((time.monotonic() - start_time) * 1000)
            model_logger.error(log_entry.to_json())
            raise ProviderConnectionError(f"Unexpected error: {e}", {"model": self.model})
        finally:
            cancelled.cancel()
            if not consume.done():
                consume.cancel()
            if callbacks.on_finish:
                callbacks.on_finish()

        if not state.saw_choices:
            log_entry.error = "No response received from model"
            log_entry.error_type = EmptyResponseError.__name__
            log_entry.latency_ms = int((time.monotonic() - start_time) * 1000)
            model_logger.error(log_entry.to_json())
            raise EmptyResponseError("No response received from model", {"model": self.model})

        tool_calls = [
            ToolCall(id=slot.id, name=slot.name, arguments=_decode_arguments(slot.arguments))
            for _, slot in sorted(state.tool_calls.items())
        ]
        content = "".join(state.content)

        log_entry.response_content = content[:10000]
        log_entry.tool_calls = [call.name for call in tool_calls]
        log_entry.finish_reason = state.finish_reason
        log_entry.latency_ms = int((time.monotonic() - start_time) * 1000)
        model_logger.info(log_entry.to_json())

        return ChatResponse(content=content, tool_calls=tool_calls, finish_reason=state.finish_reason)
