"""
Log configuration: where each channel writes, rotation, and levels.

Environment overrides:
    STEWARD_LOG_DIR            directory for the *.jsonl files
    STEWARD_LOG_LEVEL          level for every channel
    STEWARD_LOG_LEVEL_<NAME>   level for one channel (MODEL, TOOLS, BASH, SESSION)
    STEWARD_LOG_MAX_SIZE_MB    rotation threshold
    STEWARD_LOG_BACKUPS        rotated files kept per channel
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

CHANNEL_FILES = {
    "model": "model.jsonl",
    "tools": "tools.jsonl",
    "bash": "bash.jsonl",
    "session": "session.jsonl",
}


def _env_int(name: str) -> int | None:
    raw = os.environ.get(name)
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring non-integer {name}={raw!r}")
        return None


@dataclass
class LogConfig:
    log_dir: Path = field(default_factory=lambda: Path.home() / ".steward" / "logs")
    max_file_size_bytes: int = 10 * 1024 * 1024
    backup_count: int = 5

    model_level: str = "INFO"
    tool_level: str = "INFO"
    bash_level: str = "INFO"
    session_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "LogConfig":
        config = cls()
        if log_dir := os.environ.get("STEWARD_LOG_DIR"):
            config.log_dir = Path(log_dir).expanduser()

        shared = os.environ.get("STEWARD_LOG_LEVEL")
        for attr, channel in (
            ("model_level", "MODEL"),
            ("tool_level", "TOOLS"),
            ("bash_level", "BASH"),
            ("session_level", "SESSION"),
        ):
            level = os.environ.get(f"STEWARD_LOG_LEVEL_{channel}") or shared
            if level:
                setattr(config, attr, level.upper())

        if (size_mb := _env_int("STEWARD_LOG_MAX_SIZE_MB")) is not None:
            config.max_file_size_bytes = size_mb * 1024 * 1024
        if (backups := _env_int("STEWARD_LOG_BACKUPS")) is not None:
            config.backup_count = backups
        return config

    def path_for(self, channel: str) -> Path:
        return self.log_dir / CHANNEL_FILES[channel]

    @property
    def model_log_path(self) -> Path:
        return self.path_for("model")

    @property
    def tool_log_path(self) -> Path:
        return self.path_for("tools")

    @property
    def bash_log_path(self) -> Path:
        return self.path_for("bash")

    @property
    def session_log_path(self) -> Path:
        return self.path_for("session")


_config: LogConfig | None = None


def get_config() -> LogConfig:
    """Return the active log config, reading the environment on first use."""
    global _config
    if _config is None:
        _config = LogConfig.from_env()
    return _config


def set_config(config: LogConfig) -> None:
    global _config
    _config = config
