"""
File Snapshot Service

Captures workspace files by relative path and writes them back. Restores
are two-phase: every target is checked first and nothing is written if
any check fails.
"""

import fnmatch
import logging
import os
import subprocess
from pathlib import Path

from steward.checkpoints.models import ValidationResult
from steward.config import MAX_CHECKPOINT_FILES
from steward.exceptions import RestoreError

logger = logging.getLogger(__name__)

# Paths never captured: directory prefixes and basename globs
SNAPSHOT_IGNORE_PATTERNS = [
    "node_modules/",
    "dist/",
    "build/",
    ".git/",
    ".steward/",
    "coverage/",
    "*.log",
]

GIT_TIMEOUT_SECONDS = 10


def is_ignored(relative_path: str, patterns: list[str] | None = None) -> bool:
    """Check a workspace-relative path against the snapshot ignore patterns."""
    for pattern in patterns if patterns is not None else SNAPSHOT_IGNORE_PATTERNS:
        if pattern.endswith("/"):
            if relative_path.startswith(pattern):
                return True
        elif fnmatch.fnmatch(Path(relative_path).name, pattern):
            return True
    return False


class FileSnapshotService:
    """Reads and writes file snapshots relative to a workspace root."""

    def __init__(self, workspace_root: str | Path, max_files: int = MAX_CHECKPOINT_FILES):
        self.workspace_root = Path(workspace_root).resolve()
        self.max_files = max_files

    def _resolve(self, relative_path: str) -> Path:
        """Absolute path for a snapshot key; raises ValueError outside the workspace."""
        resolved = (self.workspace_root / relative_path).resolve()
        if resolved != self.workspace_root and self.workspace_root not in resolved.parents:
            raise ValueError(f'"{relative_path}" is outside the workspace')
        return resolved

    def capture_files(self, file_paths: list[str]) -> dict[str, str]:
        """
        Read the given files.

        Unreadable files are skipped with a warning.

        Returns:
            Mapping of workspace-relative POSIX path to content
        """
        snapshots: dict[str, str] = {}
        for file_path in file_paths:
            try:
                absolute = self._resolve(file_path)
                content = absolute.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError, ValueError) as e:
                logger.warning(f"Could not capture file {file_path}: {e}")
                continue
            snapshots[absolute.relative_to(self.workspace_root).as_posix()] = content
        return snapshots

    def validate_restore_paths(self, snapshots: dict[str, str]) -> ValidationResult:
        """
        Check that every snapshot can be written back.

        Missing parent directories are created here. All problems are
        collected, not just the first.
        """
        errors: list[str] = []
        for relative_path in snapshots:
            try:
                absolute = self._resolve(relative_path)
            except ValueError as e:
                errors.append(f"Cannot restore {e}")
                continue

            directory = absolute.parent
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                errors.append(f'Cannot create directory "{directory}": {e}')
                continue

            if not os.access(directory, os.W_OK):
                errors.append(f'Directory "{directory}" is not writable')
                continue

            if absolute.exists() and not os.access(absolute, os.W_OK):
                errors.append(f'Cannot write to file "{absolute}"')

        return ValidationResult(valid=not errors, errors=errors)

    def restore_files(self, snapshots: dict[str, str]) -> None:
        """
        Write snapshots back to the workspace.

        Raises:
            RestoreError: With one entry per file that failed
        """
        errors: list[str] = []
        for relative_path, content in snapshots.items():
            try:
                absolute = self._resolve(relative_path)
                absolute.parent.mkdir(parents=True, exist_ok=True)
                absolute.write_text(content, encoding="utf-8")
            except (OSError, ValueError) as e:
                errors.append(f"Failed to restore {relative_path}: {e}")

        if errors:
            raise RestoreError("Failed to restore some files", errors)

    def _git_lines(self, *args: str) -> list[str]:
        result = subprocess.run(
            ["git", *args],
            cwd=self.workspace_root,
            capture_output=True,
            text=True,
            timeout=GIT_TIMEOUT_SECONDS,
            check=True,
        )
        return [line for line in result.stdout.splitlines() if line.strip()]

    def get_modified_files(self) -> list[str]:
        """
        Modified and untracked files according to git.

        Ignored paths are dropped and the list is capped at max_files.
        Returns [] with a warning when git is unavailable; never raises.
        """
        try:
            modified = self._git_lines("diff", "--name-only", "HEAD")
            untracked = self._git_lines("ls-files", "--others", "--exclude-standard")
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning(f"Git not available for file tracking in {self.workspace_root}: {e}")
            return []

        files = [f for f in dict.fromkeys(modified + untracked) if not is_ignored(f)]
        if len(files) > self.max_files:
            logger.warning(
                f"Too many modified files detected ({len(files)}), limiting to {self.max_files}"
            )
            files = files[: self.max_files]
        return files

    @staticmethod
    def get_snapshot_size(snapshots: dict[str, str]) -> int:
        """Total UTF-8 size of the snapshot contents in bytes."""
        return sum(len(content.encode("utf-8")) for content in snapshots.values())
