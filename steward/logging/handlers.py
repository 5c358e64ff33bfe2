"""
JSONL handlers for the structured log channels.

Every record becomes exactly one line. Entries serialized with `to_json()`
pass through untouched; anything else (a stray `logger.warning("...")`)
is wrapped in an envelope tagged with the channel and session.
"""

import json
import logging
from collections.abc import Callable
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path

from .config import LogConfig


class JSONLineFormatter(logging.Formatter):
    """Render a record as a single JSON object without a trailing newline."""

    def __init__(self, channel: str, session_id: Callable[[], str]):
        super().__init__()
        self.channel = channel
        self.session_id = session_id

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        try:
            data = json.loads(message)
        except json.JSONDecodeError:
            data = None
        if not isinstance(data, dict):
            data = {
                "timestamp": datetime.fromtimestamp(record.created).isoformat(),
                "level": record.levelname,
                "channel": self.channel,
                "session_id": self.session_id(),
                "message": message,
            }
            if record.exc_info:
                data["exception"] = self.formatException(record.exc_info)
        # Re-dump so embedded newlines can never split an entry
        return json.dumps(data, default=str)


class JSONLRotatingHandler(RotatingFileHandler):
    """Size-rotated UTF-8 JSONL file; the parent directory is created on demand."""

    def __init__(self, path: Path, max_bytes: int, backup_count: int):
        path.parent.mkdir(parents=True, exist_ok=True)
        super().__init__(path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8", delay=True)


def build_channel_logger(
    channel: str,
    path: Path,
    level: str,
    config: LogConfig,
    session_id: Callable[[], str],
) -> logging.Logger:
    """
    Configure the `steward.<channel>` logger to write JSONL to `path`.

    Rebuilding replaces (and closes) any handler left from an earlier
    configuration, so log_dir changes take effect immediately.
    """
    logger = logging.getLogger(f"steward.{channel}")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()

    handler = JSONLRotatingHandler(path, config.max_file_size_bytes, config.backup_count)
    handler.setFormatter(JSONLineFormatter(channel, session_id))
    logger.addHandler(handler)

    # Structured entries stay out of the console
    logger.propagate = False
    return logger
