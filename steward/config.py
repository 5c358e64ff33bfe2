"""
Steward - Configuration Management

Settings come from ~/.config/steward/config.json, overridden by
STEWARD_* environment variables. The API key is only read from the
environment.
"""

import json
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from steward.exceptions import ConfigError


# Configuration paths
CONFIG_DIR = Path.home() / ".config" / "steward"
CONFIG_FILE = CONFIG_DIR / "config.json"

# Checkpoints live inside the workspace so they travel with the project
CHECKPOINTS_SUBDIR = Path(".steward") / "checkpoints"

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_PROVIDER = "openai"

# Limits carried over from the interactive client
MAX_CHECKPOINT_FILES = 50
BASH_OUTPUT_PREVIEW_LENGTH = 150
BASH_PROGRESS_INTERVAL = 0.5  # seconds
BASH_OUTPUT_MAX_CHARS = 2_000  # tool result sent back to the model
NON_INTERACTIVE_TIMEOUT = 300.0  # seconds
OUTPUT_FLUSH_DELAY = 0.5  # seconds


@dataclass
class StewardConfig:
    """Main configuration container for Steward."""

    provider: str = DEFAULT_PROVIDER
    model: str = DEFAULT_MODEL
    base_url: str | None = None
    api_key: str = ""
    # Model context window in tokens; None disables the usage warning
    context_window: int | None = None
    workspace_root: str = field(default_factory=os.getcwd)

    max_checkpoint_files: int = MAX_CHECKPOINT_FILES
    bash_output_preview_length: int = BASH_OUTPUT_PREVIEW_LENGTH
    bash_progress_interval: float = BASH_PROGRESS_INTERVAL
    bash_output_max_chars: int = BASH_OUTPUT_MAX_CHARS

    non_interactive_timeout: float = NON_INTERACTIVE_TIMEOUT
    output_flush_delay: float = OUTPUT_FLUSH_DELAY
    # None means the self-correction loop is unbounded
    max_self_corrections: int | None = None

    def __post_init__(self) -> None:
        self.workspace_root = str(Path(self.workspace_root).expanduser())

    @property
    def checkpoints_dir(self) -> Path:
        return Path(self.workspace_root) / CHECKPOINTS_SUBDIR

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization (API key excluded)."""
        return {f.name: getattr(self, f.name) for f in fields(self) if f.name != "api_key"}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StewardConfig":
        known = {f.name for f in fields(cls)} - {"api_key"}
        return cls(**{k: v for k, v in data.items() if k in known})


def _env_int(name: str) -> int | None:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer", {"value": raw})


def _env_float(name: str) -> float | None:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return None
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number", {"value": raw})


def ensure_config_dir() -> None:
    """Ensure configuration directory exists."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)


def load_config(config_file: Path | None = None) -> StewardConfig:
    """
    Load configuration from file and environment.

    Args:
        config_file: Override path to the JSON config file

    Returns:
        StewardConfig with all settings loaded

    Raises:
        ConfigError: If configuration is invalid
    """
    path = config_file or CONFIG_FILE
    config = StewardConfig()

    if path.exists():
        try:
            with open(path) as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {path}", {"error": str(e)})
        if not isinstance(data, dict):
            raise ConfigError(f"Expected an object in {path}")
        try:
            config = StewardConfig.from_dict(data)
        except TypeError as e:
            raise ConfigError("Invalid configuration value", {"error": str(e)})

    # Environment overrides
    config.api_key = os.environ.get("STEWARD_API_KEY") or os.environ.get("OPENAI_API_KEY", "")
    if model := os.environ.get("STEWARD_MODEL"):
        config.model = model
    if provider := os.environ.get("STEWARD_PROVIDER"):
        config.provider = provider
    if base_url := os.environ.get("STEWARD_BASE_URL"):
        config.base_url = base_url
    if (window := _env_int("STEWARD_CONTEXT_WINDOW")) is not None:
        config.context_window = window
    if (timeout := _env_float("STEWARD_TIMEOUT")) is not None:
        config.non_interactive_timeout = timeout
    if (limit := _env_int("STEWARD_MAX_SELF_CORRECTIONS")) is not None:
        config.max_self_corrections = limit if limit > 0 else None

    return config


def save_config(config: StewardConfig, config_file: Path | None = None) -> None:
    """Persist configuration (without the API key)."""
    path = config_file or CONFIG_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(config.to_dict(), f, indent=2)


def get_api_key(config: StewardConfig) -> str:
    """
    Get the provider API key.

    Raises:
        ConfigError: If no key is configured
    """
    if not config.api_key:
        raise ConfigError(
            "No API key configured",
            {"hint": "Export STEWARD_API_KEY or OPENAI_API_KEY"},
        )
    return config.api_key
