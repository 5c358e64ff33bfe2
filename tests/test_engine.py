"""Tests for the conversation engine."""

import asyncio
from unittest.mock import MagicMock

import pytest
from fakes import FakeChatClient, echo_entry, failing_validator, make_registry, tool_call

from steward.conversation.chat_queue import ChatItemKind, MemoryChatQueue
from steward.conversation.engine import (
    CONTINUE_NUDGE,
    INTERRUPTED_MESSAGE,
    NOT_EXECUTED_MESSAGE,
    SUMMARY_NUDGE,
    ConversationEngine,
)
from steward.exceptions import OperationCancelledError, ProviderConnectionError
from steward.messages import Message, MessageRole
from steward.provider.base import ChatResponse
from steward.state import DevelopmentMode
from steward.tools.confirmation import CANCELLED_RESULT_MESSAGE
from steward.tools.filters import TOOL_NOT_FOUND_MESSAGE


def roles(messages):
    return [m.role for m in messages]


@pytest.fixture
def registry():
    return make_registry(
        echo_entry("read_file", needs_approval=False),
        echo_entry("write_file", needs_approval=True),
        echo_entry("execute_bash", needs_approval=True),
        echo_entry("strict", needs_approval=True, validator=failing_validator("Error: path is required")),
    )


@pytest.fixture
def chat_queue():
    return MemoryChatQueue()


def make_engine(responses, registry, chat_queue, **kwargs):
    client = FakeChatClient(responses)
    engine = ConversationEngine(client=client, registry=registry, chat_queue=chat_queue, **kwargs)
    return engine, client


class TestFinalAnswer:
    """A text reply without tool calls ends the turn."""

    @pytest.mark.asyncio
    async def test_plain_reply(self, registry, chat_queue):
        on_complete = MagicMock()
        engine, client = make_engine(
            [ChatResponse(content="Hello!")], registry, chat_queue, on_conversation_complete=on_complete
        )
        await engine.handle_user_message("hi")

        assert engine.is_conversation_complete
        assert roles(engine.messages) == ["user", "assistant"]
        assert engine.messages[-1].content == "Hello!"
        assert chat_queue.texts(ChatItemKind.USER) == ["hi"]
        assert chat_queue.texts(ChatItemKind.ASSISTANT) == ["Hello!"]
        on_complete.assert_called_once()

    @pytest.mark.asyncio
    async def test_system_message_sent_first(self, registry, chat_queue):
        engine, client = make_engine([ChatResponse(content="ok")], registry, chat_queue)
        await engine.handle_user_message("hi")
        request = client.requests[0]
        assert request[0].role == "system"
        assert "read_file" in request[0].content
        assert client.tool_schemas[0] == registry.get_tool_schemas()

    @pytest.mark.asyncio
    async def test_think_tags_hidden(self, registry, chat_queue):
        engine, _ = make_engine(
            [ChatResponse(content="<think>pondering</think>Answer")], registry, chat_queue
        )
        await engine.handle_user_message("q")
        assert engine.messages[-1].content == "Answer"

    @pytest.mark.asyncio
    async def test_tokens_forwarded(self, registry, chat_queue):
        tokens = []
        engine, _ = make_engine(
            [ChatResponse(content="streamed")], registry, chat_queue, on_token=tokens.append
        )
        await engine.handle_user_message("q")
        assert tokens == ["streamed"]


class TestDirectExecution:
    """Calls that need no approval run and feed the next model call."""

    @pytest.mark.asyncio
    async def test_tool_then_answer(self, registry, chat_queue):
        engine, client = make_engine(
            [
                ChatResponse(tool_calls=[tool_call("read_file", "r1", text="a.txt")]),
                ChatResponse(content="The file says hi."),
            ],
            registry,
            chat_queue,
        )
        await engine.handle_user_message("read a.txt")

        assert roles(engine.messages) == ["user", "assistant", "tool", "assistant"]
        assert engine.messages[1].tool_calls[0].id == "r1"
        assert engine.messages[2].tool_call_id == "r1"
        assert engine.messages[2].content == "read_file: a.txt"
        assert roles(client.requests[1]) == ["system", "user", "assistant", "tool"]
        assert "read_file: a.txt" in chat_queue.texts(ChatItemKind.TOOL_RESULT)
        assert engine.is_conversation_complete
        assert not engine.is_tool_executing

    @pytest.mark.asyncio
    async def test_calls_parsed_from_text(self, registry, chat_queue):
        engine, _ = make_engine(
            [
                ChatResponse(content="Reading.\n<read_file><text>x</text></read_file>"),
                ChatResponse(content="Done."),
            ],
            registry,
            chat_queue,
        )
        await engine.handle_user_message("go")
        assistant = engine.messages[1]
        assert assistant.content == "Reading."
        assert assistant.tool_calls[0].name == "read_file"
        assert engine.messages[2].content == "read_file: x"

    @pytest.mark.asyncio
    async def test_validation_failure_returned_without_asking(self, registry, chat_queue):
        engine, _ = make_engine(
            [ChatResponse(tool_calls=[tool_call("strict", "s1")]), ChatResponse(content="Sorry.")],
            registry,
            chat_queue,
        )
        await engine.handle_user_message("go")
        assert not engine.flow.is_confirming
        assert engine.messages[2].content == "Error: path is required"
        assert "Error: path is required" in chat_queue.texts(ChatItemKind.ERROR)

    @pytest.mark.asyncio
    async def test_auto_executed_messages_kept(self, registry, chat_queue):
        auto = [
            Message(role="assistant", tool_calls=[tool_call("read_file", "auto1")]),
            Message(role="tool", content="auto result", tool_call_id="auto1", name="read_file"),
        ]
        engine, _ = make_engine(
            [ChatResponse(content="Done.", auto_executed_messages=auto)], registry, chat_queue
        )
        await engine.handle_user_message("go")
        assert roles(engine.messages) == ["user", "assistant", "tool", "assistant"]
        assert engine.messages[2].content == "auto result"


class TestConfirmationFlow:
    """Calls needing approval suspend the turn until the operator decides."""

    @pytest.mark.asyncio
    async def test_suspend_confirm_resume(self, registry, chat_queue):
        on_complete = MagicMock()
        engine, client = make_engine(
            [
                ChatResponse(content="Writing.", tool_calls=[tool_call("write_file", "w1", text="x")]),
                ChatResponse(content="Written."),
            ],
            registry,
            chat_queue,
            on_conversation_complete=on_complete,
        )
        await engine.handle_user_message("write it")

        assert engine.flow.is_confirming
        assert engine.is_busy
        assert not engine.is_conversation_complete
        on_complete.assert_not_called()
        assert engine.flow.current_call.id == "w1"
        assert "write_file" in chat_queue.texts(ChatItemKind.TOOL_CALL)
        assert len(client.requests) == 1

        assert await engine.flow.confirm("w1")

        assert engine.is_conversation_complete
        on_complete.assert_called_once()
        assert roles(engine.messages) == ["user", "assistant", "tool", "assistant"]
        assert engine.messages[2].content == "write_file: x"
        assert engine.messages[3].content == "Written."

    @pytest.mark.asyncio
    async def test_cancel_answers_with_cancellation(self, registry, chat_queue):
        engine, client = make_engine(
            [
                ChatResponse(tool_calls=[tool_call("write_file", "w1"), tool_call("execute_bash", "b1")]),
                ChatResponse(content="Okay, not touching anything."),
            ],
            registry,
            chat_queue,
        )
        await engine.handle_user_message("do it")
        assert await engine.flow.cancel()

        tool_messages = [m for m in engine.messages if m.role == "tool"]
        assert [m.tool_call_id for m in tool_messages] == ["w1", "b1"]
        assert all(m.content == CANCELLED_RESULT_MESSAGE for m in tool_messages)
        assert engine.is_conversation_complete

    @pytest.mark.asyncio
    async def test_direct_and_confirmed_results_keep_call_order(self, registry, chat_queue):
        engine, _ = make_engine(
            [
                ChatResponse(
                    tool_calls=[
                        tool_call("write_file", "w1", text="a"),
                        tool_call("read_file", "r1", text="b"),
                        tool_call("execute_bash", "b1", text="c"),
                    ]
                ),
                ChatResponse(content="All done."),
            ],
            registry,
            chat_queue,
        )
        await engine.handle_user_message("go")
        # The read ran before any confirmation
        assert "read_file: b" in chat_queue.texts(ChatItemKind.TOOL_RESULT)
        assert [c.id for c in engine.flow.pending.tool_calls] == ["w1", "b1"]

        await engine.flow.confirm()
        await engine.flow.confirm()

        tool_messages = [m for m in engine.messages if m.role == "tool"]
        assert [m.tool_call_id for m in tool_messages] == ["w1", "r1", "b1"]

    @pytest.mark.asyncio
    async def test_auto_accept_skips_confirmation_for_files(self, registry, chat_queue):
        engine, _ = make_engine(
            [ChatResponse(tool_calls=[tool_call("write_file", "w1")]), ChatResponse(content="ok")],
            registry,
            chat_queue,
            mode=DevelopmentMode.AUTO_ACCEPT,
        )
        await engine.handle_user_message("go")
        assert not engine.flow.is_confirming
        assert engine.is_conversation_complete

    @pytest.mark.asyncio
    async def test_non_interactive_exits_on_approval(self, registry, chat_queue):
        engine, client = make_engine(
            [ChatResponse(tool_calls=[tool_call("execute_bash", "b1", text="rm -rf build")])],
            registry,
            chat_queue,
            mode=DevelopmentMode.AUTO_ACCEPT,
            non_interactive=True,
        )
        await engine.handle_user_message("clean up")

        assert not engine.flow.is_confirming
        assert engine.is_conversation_complete
        assert engine.messages[-1].content == (
            "Tool approval required for: execute_bash. Exiting non-interactive mode"
        )
        assert len(client.requests) == 1


class TestPlanMode:
    @pytest.mark.asyncio
    async def test_file_mutation_blocked(self, registry, chat_queue):
        engine, _ = make_engine(
            [ChatResponse(tool_calls=[tool_call("write_file", "w1")]), ChatResponse(content="Plan: ...")],
            registry,
            chat_queue,
            mode=DevelopmentMode.PLAN,
        )
        await engine.handle_user_message("change it")
        assert not engine.flow.is_confirming
        blocked = engine.messages[2]
        assert blocked.role == "tool"
        assert "blocked in plan mode" in blocked.content
        assert engine.is_conversation_complete

    def test_mode_change_updates_prompt(self, registry, chat_queue):
        engine, _ = make_engine([], registry, chat_queue)
        engine.set_mode(DevelopmentMode.PLAN)
        assert engine.get_mode() == DevelopmentMode.PLAN
        assert "MODE: PLAN" in engine.build_system_message().content


class TestSelfCorrection:
    """Malformed and unknown tool calls go back to the model."""

    @pytest.mark.asyncio
    async def test_unknown_tool(self, registry, chat_queue):
        engine, client = make_engine(
            [
                ChatResponse(
                    tool_calls=[tool_call("frobnicate", "f1"), tool_call("read_file", "r1", text="a")]
                ),
                ChatResponse(content="Sorry, done."),
            ],
            registry,
            chat_queue,
        )
        await engine.handle_user_message("go")

        assistant = engine.messages[1]
        assert [c.id for c in assistant.tool_calls] == ["f1", "r1"]
        assert engine.messages[2].tool_call_id == "f1"
        assert engine.messages[2].content == TOOL_NOT_FOUND_MESSAGE
        assert engine.messages[3].tool_call_id == "r1"
        assert engine.messages[3].content == NOT_EXECUTED_MESSAGE
        assert TOOL_NOT_FOUND_MESSAGE in chat_queue.texts(ChatItemKind.ERROR)
        assert len(client.requests) == 2
        assert engine.is_conversation_complete

    @pytest.mark.asyncio
    async def test_malformed_call_gets_feedback(self, registry, chat_queue):
        engine, client = make_engine(
            [ChatResponse(content="[tool_use: read_file]"), ChatResponse(content="Fixed.")],
            registry,
            chat_queue,
        )
        await engine.handle_user_message("go")

        assert roles(engine.messages) == ["user", "assistant", "user", "assistant"]
        assert engine.messages[1].content == "[tool_use: read_file]"
        feedback = engine.messages[2].content
        assert feedback.startswith("Your previous response contained a malformed tool call.")
        assert "Invalid syntax" in feedback
        assert chat_queue.texts(ChatItemKind.ERROR)
        assert engine.is_conversation_complete

    @pytest.mark.asyncio
    async def test_correction_limit(self, registry, chat_queue):
        engine, client = make_engine(
            [ChatResponse(content="[tool_use: x]"), ChatResponse(content="[tool_use: y]")],
            registry,
            chat_queue,
            max_self_corrections=1,
        )
        await engine.handle_user_message("go")

        assert len(client.requests) == 2
        assert engine.messages[-1].role == MessageRole.ERROR.value
        assert engine.messages[-1].content == "Stopped after 2 consecutive malformed or invalid tool calls."
        assert engine.is_conversation_complete


class TestNudges:
    @pytest.mark.asyncio
    async def test_empty_reply_asks_to_continue(self, registry, chat_queue):
        engine, client = make_engine(
            [ChatResponse(content=""), ChatResponse(content="Here you go.")], registry, chat_queue
        )
        await engine.handle_user_message("go")
        assert engine.messages[1].content == CONTINUE_NUDGE
        assert chat_queue.items[1].kind == ChatItemKind.USER
        assert chat_queue.items[1].data == {"auto": True}

    @pytest.mark.asyncio
    async def test_empty_reply_after_tools_asks_for_summary(self, registry, chat_queue):
        engine, _ = make_engine(
            [
                ChatResponse(tool_calls=[tool_call("read_file", "r1")]),
                ChatResponse(content="   "),
                ChatResponse(content="Summary."),
            ],
            registry,
            chat_queue,
        )
        await engine.handle_user_message("go")
        assert roles(engine.messages) == ["user", "assistant", "tool", "user", "assistant"]
        assert engine.messages[3].content == SUMMARY_NUDGE


class TestErrors:
    @pytest.mark.asyncio
    async def test_provider_error_ends_turn(self, registry, chat_queue):
        engine, _ = make_engine(
            [ProviderConnectionError("API error: connection refused")], registry, chat_queue
        )
        await engine.handle_user_message("go")
        assert engine.is_conversation_complete
        assert engine.messages[-1].role == "error"
        assert "API error: connection refused" in chat_queue.texts(ChatItemKind.ERROR)

    @pytest.mark.asyncio
    async def test_interrupt_model_call(self, registry, chat_queue):
        async def wait_for_cancel(token):
            await token.wait()
            raise OperationCancelledError()

        engine, _ = make_engine([wait_for_cancel], registry, chat_queue)
        assert engine.cancel() is False

        turn = asyncio.create_task(engine.handle_user_message("long task"))
        for _ in range(100):
            if engine.is_generating:
                break
            await asyncio.sleep(0)
        assert engine.is_generating

        assert engine.cancel() is True
        await turn

        assert not engine.is_generating
        assert engine.is_conversation_complete
        assert INTERRUPTED_MESSAGE in chat_queue.texts(ChatItemKind.WARNING)
        assert engine.cancel() is False


class CharTokenizer:
    def count(self, text):
        return len(text)


class TestContextUsage:
    @pytest.mark.asyncio
    async def test_critical_warning(self, registry, chat_queue):
        engine, _ = make_engine(
            [ChatResponse(content="ok")],
            registry,
            chat_queue,
            tokenizer=CharTokenizer(),
            context_window=100,
        )
        await engine.handle_user_message("hi")
        warnings = chat_queue.texts(ChatItemKind.WARNING)
        assert len(warnings) == 1
        assert warnings[0].startswith("Context ")
        assert warnings[0].endswith("Consider using /clear to start fresh.")

    @pytest.mark.asyncio
    async def test_no_warning_with_room(self, registry, chat_queue):
        engine, _ = make_engine(
            [ChatResponse(content="ok")],
            registry,
            chat_queue,
            tokenizer=CharTokenizer(),
            context_window=10_000_000,
        )
        await engine.handle_user_message("hi")
        assert chat_queue.texts(ChatItemKind.WARNING) == []

    @pytest.mark.asyncio
    async def test_tokenizer_failure_ignored(self, registry, chat_queue):
        tokenizer = MagicMock()
        tokenizer.count.side_effect = RuntimeError("broken")
        engine, _ = make_engine(
            [ChatResponse(content="ok")], registry, chat_queue, tokenizer=tokenizer, context_window=100
        )
        await engine.handle_user_message("hi")
        assert engine.is_conversation_complete


class TestHistory:
    def test_clear_and_load(self, registry, chat_queue):
        engine, _ = make_engine([], registry, chat_queue)
        history = [Message(role="user", content="a"), Message(role="assistant", content="b")]
        engine.load_messages(history)
        assert engine.messages == history
        assert engine.messages is not history
        engine.clear()
        assert engine.messages == []
