"""Tests for token counting."""

from unittest.mock import MagicMock, patch

from steward.conversation.tokens import (
    MESSAGE_OVERHEAD_TOKENS,
    TiktokenTokenizer,
    count_message_tokens,
)
from steward.messages import Message, ToolCall


class WordTokenizer:
    def count(self, text):
        return len(text.split())


class TestCountMessageTokens:
    def test_overhead_per_message(self):
        messages = [Message(role="user", content=""), Message(role="assistant", content="")]
        assert count_message_tokens(messages, WordTokenizer()) == 2 * MESSAGE_OVERHEAD_TOKENS

    def test_content_and_tool_calls_counted(self):
        message = Message(
            role="assistant",
            content="two words",
            tool_calls=[ToolCall(id="1", name="read_file", arguments={"path": "a"})],
        )
        # 2 content words, 1 for the name, 2 for '{"path": "a"}'
        assert count_message_tokens([message], WordTokenizer()) == MESSAGE_OVERHEAD_TOKENS + 5


class TestTiktokenTokenizer:
    def test_unknown_model_falls_back(self):
        with patch("steward.conversation.tokens.tiktoken") as mock_tiktoken:
            mock_tiktoken.encoding_for_model.side_effect = KeyError("unknown")
            TiktokenTokenizer("my-local-model")
            mock_tiktoken.get_encoding.assert_called_once_with("cl100k_base")

    def test_counts_encoded_tokens(self):
        with patch("steward.conversation.tokens.tiktoken") as mock_tiktoken:
            mock_tiktoken.encoding_for_model.return_value.encode.return_value = [1, 2, 3]
            assert TiktokenTokenizer("gpt-4o").count("anything") == 3

    def test_encode_failure_estimates(self):
        encoding = MagicMock()
        encoding.encode.side_effect = ValueError("special token")
        with patch("steward.conversation.tokens.tiktoken") as mock_tiktoken:
            mock_tiktoken.encoding_for_model.return_value = encoding
            assert TiktokenTokenizer("gpt-4o").count("one two three four five six seven eight nine ten") == 13
