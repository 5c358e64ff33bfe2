"""
Steward Logging System.

Provides structured JSONL logging for:
- Provider calls (model, tool calls requested, timing, errors)
- Tool executions (disposition under the active mode, result preview)
- Shell commands (exit code, output size, cancellation)
- Session lifecycle events (mode changes, checkpoints, exit reason)

Usage:
    from steward.logging import tool_logger, ToolLogEntry, now_iso

    entry = ToolLogEntry(
        timestamp=now_iso(),
        session_id=get_session_id(),
        tool_call_id=call.id,
        tool_name=call.name,
        ...
    )
    tool_logger.info(entry.to_json())

Logs are written to ~/.steward/logs/:
    - model.jsonl: provider calls
    - tools.jsonl: tool executions
    - bash.jsonl: shell commands
    - session.jsonl: session lifecycle events
"""

import logging
import threading
from typing import Any

from . import config as _config_module
from .config import LogConfig, get_config
from .entries import (
    BashLogEntry,
    ModelCallLogEntry,
    SessionLogEntry,
    ToolLogEntry,
    now_iso,
)
from .handlers import build_channel_logger

# One session per process; worker threads (shell readers) log under it too
_session_id = "unknown"


def set_session_id(session_id: str) -> None:
    """Set the session ID stamped on log records for correlation."""
    global _session_id
    _session_id = session_id


def get_session_id() -> str:
    return _session_id


def _channels(config: LogConfig) -> dict[str, tuple[Any, str]]:
    return {
        "model": (config.model_log_path, config.model_level),
        "tools": (config.tool_log_path, config.tool_level),
        "bash": (config.bash_log_path, config.bash_level),
        "session": (config.session_log_path, config.session_level),
    }


# Built on first write so importing steward never touches the filesystem
_loggers: dict[str, logging.Logger] = {}
_init_lock = threading.Lock()


def _channel_logger(channel: str) -> logging.Logger:
    logger = _loggers.get(channel)
    if logger is not None:
        return logger
    with _init_lock:
        if not _loggers:
            config = get_config()
            for name, (path, level) in _channels(config).items():
                _loggers[name] = build_channel_logger(name, path, level, config, get_session_id)
        return _loggers[channel]


def set_config(config: LogConfig) -> None:
    """Switch log configuration; channels are rebuilt on their next write."""
    with _init_lock:
        _config_module.set_config(config)
        _loggers.clear()


class _LazyLogger:
    """Stand-in for a channel logger that defers file creation until used."""

    def __init__(self, channel: str):
        self._channel = channel

    def _log(self, level: int, msg: str, *args: Any, **kwargs: Any) -> None:
        _channel_logger(self._channel).log(level, msg, *args, **kwargs)

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.ERROR, msg, *args, **kwargs)

    def exception(self, msg: str, *args: Any, **kwargs: Any) -> None:
        kwargs.setdefault("exc_info", True)
        self._log(logging.ERROR, msg, *args, **kwargs)


model_logger = _LazyLogger("model")
tool_logger = _LazyLogger("tools")
bash_logger = _LazyLogger("bash")
session_logger = _LazyLogger("session")


__all__ = [
    "model_logger",
    "tool_logger",
    "bash_logger",
    "session_logger",
    "ModelCallLogEntry",
    "ToolLogEntry",
    "BashLogEntry",
    "SessionLogEntry",
    "now_iso",
    "get_session_id",
    "set_session_id",
    "LogConfig",
    "get_config",
    "set_config",
]
