"""
Checkpoint Manager

Saves and restores conversation state plus file snapshots under
<workspace>/.steward/checkpoints/<name>/.
"""

import json
import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from steward.checkpoints.models import (
    CONVERSATION_FILE,
    FILES_DIR,
    METADATA_FILE,
    CheckpointData,
    CheckpointListItem,
    CheckpointMetadata,
    ProviderInfo,
    ValidationResult,
)
from steward.checkpoints.names import (
    checkpoint_name_error,
    generate_checkpoint_name,
    truncate_text,
    validate_checkpoint_name,
)
from steward.checkpoints.snapshot import FileSnapshotService
from steward.config import CHECKPOINTS_SUBDIR
from steward.exceptions import (
    CheckpointError,
    CheckpointExistsError,
    CheckpointNotFoundError,
    CheckpointValidationError,
    RestoreError,
)
from steward.logging import SessionLogEntry, get_session_id, now_iso, session_logger
from steward.messages import Message, MessageRole, copy_messages

logger = logging.getLogger(__name__)

DESCRIPTION_LENGTH = 100


def describe_conversation(messages: list[Message]) -> str:
    """First user message, cut to 100 characters plus an ellipsis."""
    for message in messages:
        if message.role == MessageRole.USER.value:
            content = message.content or ""
            if len(content) > DESCRIPTION_LENGTH:
                return f"{content[:DESCRIPTION_LENGTH]}..."
            return content
    return "Empty conversation"


def _read_json(path: Path) -> Any:
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def _write_json(path: Path, data: Any) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


class CheckpointManager:
    """
    Stores named checkpoints in the workspace.

    Single-target operations fail fast with a named reason; list and
    validate collect every problem they find.
    """

    def __init__(
        self,
        workspace_root: str | Path,
        snapshot_service: FileSnapshotService | None = None,
    ):
        self.workspace_root = Path(workspace_root).resolve()
        self.checkpoints_dir = self.workspace_root / CHECKPOINTS_SUBDIR
        self.snapshots = snapshot_service or FileSnapshotService(self.workspace_root)

    def _checkpoint_dir(self, name: str) -> Path:
        """
        Directory of a named checkpoint.

        Raises:
            InvalidCheckpointNameError: If the name could point outside the store
        """
        return self.checkpoints_dir / validate_checkpoint_name(name)

    def _ensure_checkpoints_dir(self) -> None:
        self.checkpoints_dir.mkdir(parents=True, exist_ok=True)

    def _log(self, event_type: str, name: str) -> None:
        session_logger.info(
            SessionLogEntry(
                timestamp=now_iso(),
                session_id=get_session_id(),
                event_type=event_type,
                checkpoint_name=name,
            ).to_json()
        )

    # -------------------------------------------------------------------------
    # Save / load
    # -------------------------------------------------------------------------

    def save_checkpoint(
        self,
        name: str | None,
        messages: list[Message],
        provider: str,
        model: str,
        files: list[str] | None = None,
    ) -> CheckpointMetadata:
        """
        Save the conversation and file snapshots.

        Args:
            name: Checkpoint name; a timestamp name is generated when empty
            messages: Conversation to store (deep-copied)
            provider: Provider name recorded in metadata
            model: Model name recorded in metadata
            files: Files to snapshot (default: modified files per git)

        Raises:
            InvalidCheckpointNameError: If the name is not directory-safe
            CheckpointExistsError: If a checkpoint with this name exists
            CheckpointError: If writing fails; nothing is left behind
        """
        self._ensure_checkpoints_dir()
        checkpoint_name = validate_checkpoint_name(name or generate_checkpoint_name())
        checkpoint_dir = self._checkpoint_dir(checkpoint_name)

        if checkpoint_dir.exists():
            raise CheckpointExistsError(checkpoint_name)

        to_capture = files if files is not None else self.snapshots.get_modified_files()
        snapshots = self.snapshots.capture_files(to_capture)
        conversation = copy_messages(messages)

        metadata = CheckpointMetadata(
            name=checkpoint_name,
            timestamp=datetime.now(timezone.utc).isoformat(),
            message_count=len(conversation),
            files_changed=list(snapshots),
            provider=ProviderInfo(name=provider, model=model),
            description=describe_conversation(conversation),
        )

        # Racing writers fail here rather than merging into one directory
        try:
            checkpoint_dir.mkdir(exist_ok=False)
        except FileExistsError:
            raise CheckpointExistsError(checkpoint_name)

        try:
            _write_json(checkpoint_dir / METADATA_FILE, metadata.to_dict())
            _write_json(
                checkpoint_dir / CONVERSATION_FILE,
                {"messages": [m.to_dict() for m in conversation]},
            )

            files_dir = checkpoint_dir / FILES_DIR
            for relative_path, content in snapshots.items():
                target = files_dir / relative_path
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_text(content, encoding="utf-8")
        except (OSError, TypeError, ValueError) as e:
            # A partial directory would block a retry under the same name
            shutil.rmtree(checkpoint_dir, ignore_errors=True)
            raise CheckpointError(
                f"Failed to save checkpoint '{checkpoint_name}'", {"error": str(e)}
            ) from e

        logger.info(
            f"Saved checkpoint {checkpoint_name} "
            f"({len(conversation)} messages, {len(snapshots)} files)"
        )
        self._log("checkpoint_save", checkpoint_name)
        return metadata

    def load_checkpoint(self, name: str, validate_integrity: bool = False) -> CheckpointData:
        """
        Load a checkpoint.

        Snapshots listed in the metadata but missing on disk are skipped
        with a warning.

        Raises:
            InvalidCheckpointNameError: If the name is not directory-safe
            CheckpointNotFoundError: If the checkpoint does not exist
            CheckpointValidationError: If validate_integrity is set and fails
            CheckpointError: If the stored files cannot be parsed
        """
        checkpoint_dir = self._checkpoint_dir(name)
        if not checkpoint_dir.is_dir():
            raise CheckpointNotFoundError(name)

        if validate_integrity:
            validation = self.validate_checkpoint(name)
            if not validation.valid:
                raise CheckpointValidationError(name, validation.errors)

        try:
            metadata = CheckpointMetadata.from_dict(_read_json(checkpoint_dir / METADATA_FILE))
            conversation = _read_json(checkpoint_dir / CONVERSATION_FILE)
            messages = [Message.from_dict(m) for m in conversation["messages"]]
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise CheckpointError(f"Could not read checkpoint '{name}'", {"error": str(e)})

        snapshots: dict[str, str] = {}
        files_dir = checkpoint_dir / FILES_DIR
        if files_dir.is_dir():
            for relative_path in metadata.files_changed:
                try:
                    snapshots[relative_path] = (files_dir / relative_path).read_text(encoding="utf-8")
                except (OSError, UnicodeDecodeError) as e:
                    logger.warning(f"Could not load file snapshot {relative_path}: {e}")

        self._log("checkpoint_load", name)
        return CheckpointData(metadata=metadata, messages=messages, file_snapshots=snapshots)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def list_checkpoints(self) -> list[CheckpointListItem]:
        """All readable checkpoints, newest first."""
        self._ensure_checkpoints_dir()
        items: list[CheckpointListItem] = []

        for entry in self.checkpoints_dir.iterdir():
            if not entry.is_dir():
                continue
            metadata_path = entry / METADATA_FILE
            if not metadata_path.exists():
                continue
            try:
                metadata = CheckpointMetadata.from_dict(_read_json(metadata_path))
            except (OSError, ValueError, KeyError, TypeError) as e:
                logger.warning(f"Could not read checkpoint {entry.name}: {e}")
                continue
            items.append(
                CheckpointListItem(
                    name=entry.name,
                    metadata=metadata,
                    size_bytes=self._directory_size(entry),
                )
            )

        items.sort(key=lambda item: _timestamp_key(item.metadata.timestamp), reverse=True)
        return items

    def _directory_size(self, path: Path) -> int:
        total = 0
        try:
            for child in path.rglob("*"):
                if child.is_file():
                    total += child.stat().st_size
        except OSError as e:
            logger.warning(f"Could not calculate size of {path}: {e}")
        return total

    def checkpoint_exists(self, name: str) -> bool:
        if checkpoint_name_error(name):
            return False
        return self._checkpoint_dir(name).exists()

    def get_checkpoint_metadata(self, name: str) -> CheckpointMetadata:
        """
        Read metadata without loading the conversation.

        Raises:
            CheckpointNotFoundError: If the checkpoint does not exist
        """
        checkpoint_dir = self._checkpoint_dir(name)
        if not checkpoint_dir.is_dir():
            raise CheckpointNotFoundError(name)
        try:
            return CheckpointMetadata.from_dict(_read_json(checkpoint_dir / METADATA_FILE))
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise CheckpointError(f"Could not read metadata for '{name}'", {"error": str(e)})

    def validate_checkpoint(self, name: str) -> ValidationResult:
        """Check the stored files of a checkpoint, reporting every problem."""
        name_error = checkpoint_name_error(name)
        if name_error:
            return ValidationResult(valid=False, errors=[name_error])
        checkpoint_dir = self._checkpoint_dir(name)
        errors: list[str] = []
        warnings: list[str] = []

        if not checkpoint_dir.is_dir():
            return ValidationResult(valid=False, errors=["Checkpoint directory does not exist"])

        metadata_path = checkpoint_dir / METADATA_FILE
        metadata: dict[str, Any] | None = None
        if not metadata_path.exists():
            errors.append("Missing metadata.json file")
        else:
            try:
                metadata = _read_json(metadata_path)
            except (OSError, ValueError) as e:
                errors.append(f"Invalid metadata.json: {e}")
            else:
                count = metadata.get("message_count") if isinstance(metadata, dict) else None
                if (
                    not isinstance(metadata, dict)
                    or not metadata.get("name")
                    or not metadata.get("timestamp")
                    or not isinstance(count, (int, float))
                    or isinstance(count, bool)
                ):
                    errors.append("Invalid metadata structure")
                    metadata = None

        conversation_path = checkpoint_dir / CONVERSATION_FILE
        if not conversation_path.exists():
            errors.append("Missing conversation.json file")
        else:
            try:
                conversation = _read_json(conversation_path)
            except (OSError, ValueError) as e:
                errors.append(f"Invalid conversation.json: {e}")
            else:
                if not isinstance(conversation, dict) or not isinstance(
                    conversation.get("messages"), list
                ):
                    errors.append("Invalid conversation structure")

        if metadata:
            files_dir = checkpoint_dir / FILES_DIR
            for relative_path in metadata.get("files_changed") or []:
                if not (files_dir / relative_path).is_file():
                    warnings.append(f"Missing file snapshot: {relative_path}")

        return ValidationResult(valid=not errors, errors=errors, warnings=warnings)

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def delete_checkpoint(self, name: str) -> None:
        """
        Remove a checkpoint directory.

        Raises:
            InvalidCheckpointNameError: If the name is not directory-safe
            CheckpointNotFoundError: If the checkpoint does not exist
            CheckpointError: If removal fails
        """
        checkpoint_dir = self._checkpoint_dir(name)
        if not checkpoint_dir.exists():
            raise CheckpointNotFoundError(name)
        try:
            shutil.rmtree(checkpoint_dir)
        except OSError as e:
            raise CheckpointError(f"Failed to delete checkpoint '{name}'", {"error": str(e)})
        logger.info(f"Deleted checkpoint {name}")

    def restore_files(self, data: CheckpointData) -> None:
        """
        Write the checkpoint's file snapshots back into the workspace.

        All targets are validated before anything is written.

        Raises:
            RestoreError: If any target cannot be written; no file is touched
        """
        if not data.file_snapshots:
            return

        validation = self.snapshots.validate_restore_paths(data.file_snapshots)
        if not validation.valid:
            raise RestoreError(
                f"Cannot restore files: {', '.join(validation.errors)}",
                validation.errors,
            )
        self.snapshots.restore_files(data.file_snapshots)
        logger.info(f"Restored {len(data.file_snapshots)} files from {data.metadata.name}")


def _timestamp_key(timestamp: str) -> float:
    try:
        moment = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    except ValueError:
        return 0.0
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.timestamp()
