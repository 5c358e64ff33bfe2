"""
One-way UI sink.

The engine and the tool flow describe what happened as ChatItems; the
terminal (or a test) decides how to show them.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol


class ChatItemKind(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class ChatItem:
    """A renderable conversation event."""

    kind: ChatItemKind
    text: str
    data: dict[str, Any] = field(default_factory=dict)


class ChatQueue(Protocol):
    def add_to_chat_queue(self, item: ChatItem) -> None: ...


class MemoryChatQueue:
    """Collects items in memory. Used by the non-interactive runner and tests."""

    def __init__(self) -> None:
        self.items: list[ChatItem] = []

    def add_to_chat_queue(self, item: ChatItem) -> None:
        self.items.append(item)

    def texts(self, kind: ChatItemKind | None = None) -> list[str]:
        return [item.text for item in self.items if kind is None or item.kind == kind]

    def clear(self) -> None:
        self.items.clear()
