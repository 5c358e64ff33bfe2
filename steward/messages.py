"""
Conversation data model.

Messages, tool calls and tool results as exchanged between the engine,
the provider client and the checkpoint store.
"""

import copy
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class MessageRole(str, Enum):
    """Role of a message in the conversation."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"
    ERROR = "error"  # Local-only: never sent to the provider


@dataclass
class ToolCall:
    """A tool invocation requested by the model."""

    id: str
    name: str
    arguments: dict[str, Any] | str = field(default_factory=dict)
    validation_failed: bool = False

    def parsed_arguments(self) -> dict[str, Any]:
        """Arguments as a dict, decoding a raw JSON string if needed."""
        return parse_tool_arguments(self.arguments)

    def signature(self) -> str:
        """Name plus canonical arguments, used to spot duplicate calls.

        A JSON-string argument payload that decodes to an object is compared
        as that object, so the same call matches in either form.
        """
        arguments: Any = self.arguments
        try:
            arguments = parse_tool_arguments(arguments)
        except ValueError:
            pass
        try:
            args = json.dumps(arguments, sort_keys=True, default=str)
        except (TypeError, ValueError):
            args = repr(self.arguments)
        return f"{self.name}:{args}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to the OpenAI-style tool_call shape (arguments kept as-is)."""
        data: dict[str, Any] = {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }
        if self.validation_failed:
            data["validation_failed"] = True
        return data

    def to_api_dict(self) -> dict[str, Any]:
        """Convert for a provider request, where arguments must be a JSON string."""
        args = self.arguments
        if not isinstance(args, str):
            args = json.dumps(args)
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": args},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ToolCall":
        """Create from the OpenAI-style shape or a flat {id, name, arguments} dict."""
        function = data.get("function") or {}
        return cls(
            id=data.get("id") or "",
            name=function.get("name", data.get("name")) or "",
            arguments=function.get("arguments", data.get("arguments", {})),
            validation_failed=bool(data.get("validation_failed", False)),
        )


@dataclass
class ToolResult:
    """Outcome of executing (or refusing) a tool call."""

    tool_call_id: str
    name: str
    content: str

    def to_message(self) -> "Message":
        return Message(
            role=MessageRole.TOOL.value,
            content=self.content or "",
            tool_call_id=self.tool_call_id,
            name=self.name,
        )


@dataclass
class Message:
    """A single conversation entry."""

    role: str
    content: str = ""
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None
    name: str | None = None

    def __post_init__(self) -> None:
        # Normalize enum members to their plain string value
        self.role = MessageRole(self.role).value

    @property
    def is_empty_assistant(self) -> bool:
        return (
            self.role == MessageRole.ASSISTANT.value
            and not self.content.strip()
            and not self.tool_calls
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dict (checkpoint format)."""
        data: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            data["tool_calls"] = [tc.to_dict() for tc in self.tool_calls]
        if self.tool_call_id is not None:
            data["tool_call_id"] = self.tool_call_id
        if self.name is not None:
            data["name"] = self.name
        return data

    def to_api_dict(self) -> dict[str, Any]:
        """Convert to a provider request message."""
        data: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            data["tool_calls"] = [tc.to_api_dict() for tc in self.tool_calls]
        if self.role == MessageRole.TOOL.value:
            data["tool_call_id"] = self.tool_call_id
            if self.name:
                data["name"] = self.name
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Message":
        tool_calls = data.get("tool_calls")
        return cls(
            role=data["role"],
            content=data.get("content") or "",
            tool_calls=[ToolCall.from_dict(tc) for tc in tool_calls] if tool_calls else None,
            tool_call_id=data.get("tool_call_id"),
            name=data.get("name"),
        )


def parse_tool_arguments(arguments: dict[str, Any] | str | None) -> dict[str, Any]:
    """
    Normalize tool arguments to a dict.

    Providers send arguments either as a decoded object or as a JSON string.
    Undecodable strings raise ValueError so validators can report them.
    """
    if arguments is None or arguments == "":
        return {}
    if isinstance(arguments, dict):
        return arguments
    if isinstance(arguments, str):
        decoded = json.loads(arguments)
        if not isinstance(decoded, dict):
            raise ValueError("Tool arguments must be a JSON object")
        return decoded
    raise ValueError(f"Unsupported tool argument type: {type(arguments).__name__}")


def copy_messages(messages: list[Message]) -> list[Message]:
    """Deep copy a conversation so later edits cannot leak into a snapshot."""
    return copy.deepcopy(list(messages))


def tool_results_to_messages(results: list[ToolResult]) -> list[Message]:
    return [result.to_message() for result in results]
