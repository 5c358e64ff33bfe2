"""
Checkpoint data structures.

On disk a checkpoint is a directory holding metadata.json,
conversation.json and a files/ tree mirroring the captured paths.
"""

from dataclasses import dataclass, field
from typing import Any

from steward.messages import Message

METADATA_FILE = "metadata.json"
CONVERSATION_FILE = "conversation.json"
FILES_DIR = "files"


@dataclass
class ProviderInfo:
    name: str
    model: str

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "model": self.model}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProviderInfo":
        return cls(name=data.get("name", ""), model=data.get("model", ""))


@dataclass
class CheckpointMetadata:
    """Summary stored in metadata.json."""

    name: str
    timestamp: str  # ISO 8601, UTC
    message_count: int
    files_changed: list[str] = field(default_factory=list)
    provider: ProviderInfo = field(default_factory=lambda: ProviderInfo("", ""))
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "timestamp": self.timestamp,
            "message_count": self.message_count,
            "files_changed": list(self.files_changed),
            "provider": self.provider.to_dict(),
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CheckpointMetadata":
        return cls(
            name=data["name"],
            timestamp=data["timestamp"],
            message_count=data["message_count"],
            files_changed=list(data.get("files_changed") or []),
            provider=ProviderInfo.from_dict(data.get("provider") or {}),
            description=data.get("description", ""),
        )


@dataclass
class CheckpointData:
    """A fully loaded checkpoint."""

    metadata: CheckpointMetadata
    messages: list[Message]
    # Workspace-relative POSIX path -> file content
    file_snapshots: dict[str, str] = field(default_factory=dict)


@dataclass
class CheckpointListItem:
    name: str
    metadata: CheckpointMetadata
    size_bytes: int


@dataclass
class ValidationResult:
    """Outcome of a checkpoint or restore-path check; errors are never truncated to the first."""

    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
