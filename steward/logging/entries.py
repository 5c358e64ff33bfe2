"""
Log Entry Data Structures for Steward.

Structured entries for provider calls, tool executions, shell runs and
session lifecycle events.
"""

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any


class _EntryMixin:
    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(asdict(self), default=str)  # type: ignore[call-overload]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)  # type: ignore[call-overload]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Any:
        """Create from dictionary, ignoring unknown keys."""
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})  # type: ignore[attr-defined]


@dataclass
class ModelCallLogEntry(_EntryMixin):
    """Log entry for a streaming provider call."""

    # Identity
    timestamp: str  # ISO 8601
    request_id: str  # UUID for correlating request/response
    session_id: str

    # Request
    provider: str = ""
    model: str = ""
    message_count: int = 0
    tool_count: int = 0

    # Response
    response_content: str = ""
    tool_calls: list[str] = field(default_factory=list)  # Tool names only
    finish_reason: str = ""

    # Metrics
    latency_ms: int = 0
    cancelled: bool = False

    # Error (if any)
    error: str | None = None
    error_type: str | None = None


@dataclass
class ToolLogEntry(_EntryMixin):
    """Log entry for a single tool execution or refusal."""

    timestamp: str
    session_id: str
    tool_call_id: str
    tool_name: str

    arguments: dict[str, Any] | str = field(default_factory=dict)
    # "direct", "confirmed", "blocked", "cancelled", "rejected"
    disposition: str = ""
    mode: str = ""

    result_preview: str = ""
    duration_ms: int = 0
    error: str | None = None


@dataclass
class BashLogEntry(_EntryMixin):
    """Log entry for a shell command run through the executor."""

    timestamp: str
    execution_id: str
    command: str

    exit_code: int | None = None
    stdout_chars: int = 0
    stderr_chars: int = 0
    cancelled: bool = False
    duration_ms: int = 0
    error: str | None = None


@dataclass
class SessionLogEntry(_EntryMixin):
    """Log entry for session lifecycle events."""

    timestamp: str
    session_id: str
    # "start", "mode_change", "checkpoint_save", "checkpoint_load",
    # "tool_flow", "end", "error"
    event_type: str

    # Event-specific fields
    from_state: str | None = None
    to_state: str | None = None
    user_request: str = ""
    checkpoint_name: str = ""

    # End metrics (populated on "end" event)
    exit_reason: str | None = None
    total_duration_seconds: float = 0.0

    # Error info (populated on "error" event)
    error: str | None = None
    error_type: str | None = None


def now_iso() -> str:
    """Get current time as ISO 8601 string."""
    return datetime.now().isoformat()
