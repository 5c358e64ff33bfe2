"""Model provider clients."""

from steward.provider.base import ChatClient, ChatResponse, StreamCallbacks
from steward.provider.openai_client import OpenAIChatClient

__all__ = ["ChatClient", "ChatResponse", "StreamCallbacks", "OpenAIChatClient"]
