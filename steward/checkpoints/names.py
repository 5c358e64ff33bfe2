"""
Checkpoint naming and display helpers.
"""

import re
from datetime import datetime, timezone

from steward.exceptions import InvalidCheckpointNameError

MAX_NAME_LENGTH = 100

INVALID_NAME_CHARS = re.compile(r'[<>:"/\\|?*]')

# Windows device names; a directory with one of these names cannot be created there
RESERVED_NAMES = frozenset(
    {"CON", "PRN", "AUX", "NUL"}
    | {f"COM{i}" for i in range(1, 10)}
    | {f"LPT{i}" for i in range(1, 10)}
)


def checkpoint_name_error(name: str | None) -> str | None:
    """Return why a name is unusable as a checkpoint directory, or None if it is fine."""
    if not name or not name.strip():
        return "Checkpoint name cannot be empty"
    if len(name) > MAX_NAME_LENGTH:
        return f"Checkpoint name must be {MAX_NAME_LENGTH} characters or less"
    if INVALID_NAME_CHARS.search(name):
        return "Checkpoint name contains invalid characters"
    if ".." in name:
        return "Checkpoint name cannot contain '..'"
    if name.upper() in RESERVED_NAMES:
        return "Checkpoint name is reserved by the system"
    if name[0] in ". " or name[-1] in ". ":
        return "Checkpoint name cannot start or end with a dot or space"
    return None


def is_valid_checkpoint_name(name: str | None) -> bool:
    return checkpoint_name_error(name) is None


def validate_checkpoint_name(name: str) -> str:
    """
    Check a checkpoint name.

    Returns:
        The name unchanged

    Raises:
        InvalidCheckpointNameError: If the name is empty, too long, contains
            path separators or other unsafe characters, or is reserved
    """
    error = checkpoint_name_error(name)
    if error:
        raise InvalidCheckpointNameError(error, name or "")
    return name


def generate_checkpoint_name(custom_name: str | None = None, now: datetime | None = None) -> str:
    """
    Name for a new checkpoint.

    A valid custom name is used as-is (trimmed); otherwise the name is
    derived from the UTC time: checkpoint-YYYY-MM-DD-HH-MM-SS.
    """
    if custom_name and is_valid_checkpoint_name(custom_name.strip()):
        return custom_name.strip()
    moment = now or datetime.now(timezone.utc)
    return f"checkpoint-{moment.strftime('%Y-%m-%d-%H-%M-%S')}"


def truncate_text(text: str, max_length: int) -> str:
    """Cut text to max_length characters including a trailing ellipsis."""
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


def format_bytes(size: int) -> str:
    """Human readable size: 0B, 512B, 1.5KB, 2MB."""
    if size <= 0:
        return "0B"
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            break
        value /= 1024
    text = f"{value:.1f}".rstrip("0").rstrip(".")
    return f"{text}{unit}"


def format_relative_time(timestamp: str, now: datetime | None = None) -> str:
    """Describe an ISO timestamp relative to now ("5 minutes ago")."""
    try:
        moment = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    except ValueError:
        return timestamp
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)

    minutes = int((current - moment).total_seconds() // 60)
    hours = minutes // 60
    days = hours // 24

    def plural(count: int, unit: str) -> str:
        return f"{count} {unit}{'' if count == 1 else 's'} ago"

    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return plural(minutes, "minute")
    if hours < 24:
        return plural(hours, "hour")
    if days < 7:
        return plural(days, "day")
    return moment.date().isoformat()
