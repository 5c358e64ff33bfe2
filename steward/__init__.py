"""
Steward - an interactive coding agent core.

Streams model output, executes file and shell tools under a trust mode,
and checkpoints conversation plus file state so work can be rolled back.
"""

__version__ = "0.1.0"

from steward.exceptions import (
    StewardError,
    ConfigError,
    ProviderError,
    ToolError,
    CheckpointError,
)

__all__ = [
    "__version__",
    "StewardError",
    "ConfigError",
    "ProviderError",
    "ToolError",
    "CheckpointError",
]
