"""
Token counting for the context-usage warning.
"""

import logging
from typing import Protocol

import tiktoken

from steward.messages import Message

logger = logging.getLogger(__name__)

# Role and separator tokens added per message by the chat format
MESSAGE_OVERHEAD_TOKENS = 4
FALLBACK_ENCODING = "cl100k_base"


class Tokenizer(Protocol):
    def count(self, text: str) -> int: ...


class TiktokenTokenizer:
    """Counts tokens with the model's tiktoken encoding."""

    def __init__(self, model: str):
        self.model = model
        try:
            self.encoding = tiktoken.encoding_for_model(model)
        except KeyError:
            # Fallback to cl100k_base for newer or non-OpenAI models
            self.encoding = tiktoken.get_encoding(FALLBACK_ENCODING)

    def count(self, text: str) -> int:
        try:
            return len(self.encoding.encode(text))
        except Exception as e:
            logger.warning(f"Token counting failed, using estimate: {e}")
            return int(len(text.split()) * 1.3)


def count_message_tokens(messages: list[Message], tokenizer: Tokenizer) -> int:
    """Tokens for a conversation including per-message formatting overhead."""
    total = 0
    for message in messages:
        total += MESSAGE_OVERHEAD_TOKENS
        total += tokenizer.count(message.content or "")
        for call in message.tool_calls or []:
            total += tokenizer.count(call.name)
            total += tokenizer.count(call.to_api_dict()["function"]["arguments"])
    return total
