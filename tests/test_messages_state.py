"""Tests for the conversation data model and tool flow state."""

import pytest

from steward.messages import (
    Message,
    MessageRole,
    ToolCall,
    ToolResult,
    copy_messages,
    parse_tool_arguments,
    tool_results_to_messages,
)
from steward.state import (
    VALID_TRANSITIONS,
    ConversationContinuation,
    DevelopmentMode,
    PendingToolBatch,
    ToolFlowState,
    order_results,
)


class TestToolCall:
    """Tests for ToolCall serialization."""

    def test_to_api_dict_encodes_arguments(self):
        call = ToolCall(id="c1", name="read_file", arguments={"path": "a.txt"})
        data = call.to_api_dict()
        assert data["function"]["arguments"] == '{"path": "a.txt"}'
        assert data["type"] == "function"

    def test_to_api_dict_keeps_string_arguments(self):
        call = ToolCall(id="c1", name="read_file", arguments='{"path": "a.txt"}')
        assert call.to_api_dict()["function"]["arguments"] == '{"path": "a.txt"}'

    def test_from_dict_openai_shape(self):
        call = ToolCall.from_dict(
            {"id": "c1", "type": "function", "function": {"name": "x", "arguments": {"a": 1}}}
        )
        assert call.id == "c1"
        assert call.name == "x"
        assert call.arguments == {"a": 1}

    def test_from_dict_flat_shape(self):
        call = ToolCall.from_dict({"id": "c2", "name": "y", "arguments": {}})
        assert call.name == "y"

    def test_validation_flag_round_trips(self):
        call = ToolCall(id="c1", name="x", validation_failed=True)
        assert ToolCall.from_dict(call.to_dict()).validation_failed

    def test_signature_ignores_key_order(self):
        a = ToolCall(id="1", name="x", arguments={"a": 1, "b": 2})
        b = ToolCall(id="2", name="x", arguments={"b": 2, "a": 1})
        assert a.signature() == b.signature()

    def test_signature_matches_string_and_dict_arguments(self):
        structured = ToolCall(id="1", name="read_file", arguments='{"path": "a.txt"}')
        parsed = ToolCall(id="2", name="read_file", arguments={"path": "a.txt"})
        assert structured.signature() == parsed.signature()

    def test_signature_keeps_undecodable_string(self):
        call = ToolCall(id="1", name="x", arguments="{broken")
        assert call.signature() == 'x:"{broken"'


class TestParseToolArguments:
    """Tests for argument normalization."""

    @pytest.mark.parametrize("value", [None, "", {}])
    def test_empty_values(self, value):
        assert parse_tool_arguments(value) == {}

    def test_json_string(self):
        assert parse_tool_arguments('{"path": "a"}') == {"path": "a"}

    def test_non_object_json_rejected(self):
        with pytest.raises(ValueError):
            parse_tool_arguments("[1, 2]")

    def test_invalid_json_rejected(self):
        with pytest.raises(ValueError):
            parse_tool_arguments("{not json")


class TestMessage:
    """Tests for Message."""

    def test_role_enum_normalized(self):
        message = Message(role=MessageRole.USER, content="hi")
        assert message.role == "user"

    def test_unknown_role_rejected(self):
        with pytest.raises(ValueError):
            Message(role="narrator", content="hi")

    def test_is_empty_assistant(self):
        assert Message(role="assistant", content="  ").is_empty_assistant
        assert not Message(role="assistant", content="ok").is_empty_assistant
        assert not Message(
            role="assistant", content="", tool_calls=[ToolCall(id="1", name="x")]
        ).is_empty_assistant

    def test_tool_message_api_dict(self):
        message = ToolResult("c1", "read_file", "contents").to_message()
        data = message.to_api_dict()
        assert data == {
            "role": "tool",
            "content": "contents",
            "tool_call_id": "c1",
            "name": "read_file",
        }

    def test_checkpoint_dict_round_trip(self):
        message = Message(
            role="assistant",
            content="Reading",
            tool_calls=[ToolCall(id="c1", name="read_file", arguments={"path": "a"})],
        )
        restored = Message.from_dict(message.to_dict())
        assert restored == message

    def test_from_dict_null_content(self):
        assert Message.from_dict({"role": "assistant", "content": None}).content == ""

    def test_copy_messages_is_deep(self):
        original = [
            Message(role="assistant", content="x", tool_calls=[ToolCall(id="1", name="a", arguments={"k": 1})])
        ]
        copied = copy_messages(original)
        copied[0].tool_calls[0].arguments["k"] = 2
        assert original[0].tool_calls[0].arguments["k"] == 1

    def test_tool_results_to_messages(self):
        messages = tool_results_to_messages([ToolResult("a", "x", "1"), ToolResult("b", "y", "2")])
        assert [m.tool_call_id for m in messages] == ["a", "b"]
        assert all(m.role == "tool" for m in messages)


class TestToolFlowState:
    """Tests for the tool flow transition table."""

    def test_all_states_have_transitions(self):
        for state in ToolFlowState:
            assert state in VALID_TRANSITIONS

    def test_idle_only_enters_confirming(self):
        assert VALID_TRANSITIONS[ToolFlowState.IDLE] == {ToolFlowState.CONFIRMING}

    def test_executing_cannot_skip_back_to_itself(self):
        assert ToolFlowState.EXECUTING not in VALID_TRANSITIONS[ToolFlowState.EXECUTING]

    def test_mode_values(self):
        assert DevelopmentMode("auto-accept") == DevelopmentMode.AUTO_ACCEPT
        assert DevelopmentMode.PLAN.value == "plan"


class TestPendingToolBatch:
    """Tests for PendingToolBatch and result ordering."""

    @pytest.fixture
    def batch(self):
        continuation = ConversationContinuation(
            messages=[],
            assistant_message=Message(role="assistant"),
            system_message=Message(role="system", content="sys"),
        )
        calls = [ToolCall(id="b", name="x"), ToolCall(id="d", name="y")]
        return PendingToolBatch(
            tool_calls=calls,
            continuation=continuation,
            call_order=["a", "b", "c", "d"],
            results=[ToolResult("c", "z", "direct"), ToolResult("a", "w", "direct")],
        )

    def test_cursor_navigation(self, batch):
        assert batch.current_call.id == "b"
        batch.cursor = 1
        assert [c.id for c in batch.remaining_calls] == ["d"]
        batch.cursor = 2
        assert batch.current_call is None
        assert batch.is_exhausted

    def test_ordered_results_follow_call_order(self, batch):
        batch.results.append(ToolResult("d", "y", "confirmed"))
        batch.results.append(ToolResult("b", "x", "confirmed"))
        assert [r.tool_call_id for r in batch.ordered_results()] == ["a", "b", "c", "d"]

    def test_unknown_ids_sort_last_in_arrival_order(self):
        results = [ToolResult("zz", "x", ""), ToolResult("b", "x", ""), ToolResult("yy", "x", "")]
        ordered = order_results(results, ["a", "b"])
        assert [r.tool_call_id for r in ordered] == ["b", "zz", "yy"]

    def test_empty_order_keeps_input(self):
        results = [ToolResult("b", "x", ""), ToolResult("a", "x", "")]
        assert order_results(results, []) == results
