"""Conversation checkpoints and file snapshots."""

from steward.checkpoints.manager import CheckpointManager
from steward.checkpoints.models import (
    CheckpointData,
    CheckpointListItem,
    CheckpointMetadata,
    ProviderInfo,
    ValidationResult,
)
from steward.checkpoints.snapshot import FileSnapshotService

__all__ = [
    "CheckpointManager",
    "CheckpointData",
    "CheckpointListItem",
    "CheckpointMetadata",
    "FileSnapshotService",
    "ProviderInfo",
    "ValidationResult",
]
