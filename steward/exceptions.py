"""
Steward - Exception Hierarchy

All Steward-specific exceptions inherit from StewardError. Each carries a
human-readable message plus an optional details dict for logging.
"""

from typing import Any


class StewardError(Exception):
    """Base exception for all Steward-related errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# Configuration Errors
class ConfigError(StewardError):
    """Raised when configuration is invalid or missing."""

    pass


# Provider (LLM backend) Errors
class ProviderError(StewardError):
    """Base exception for model provider errors."""

    pass


class ProviderConnectionError(ProviderError):
    """Raised when the provider cannot be reached or the stream breaks."""

    pass


class EmptyResponseError(ProviderError):
    """Raised when the provider returns no choices at all."""

    pass


class OperationCancelledError(StewardError):
    """Raised when the operator cancels an in-flight model call.

    Kept outside ProviderError so callers can tell an interruption
    apart from a transport failure.
    """

    def __init__(self, message: str = "Operation was cancelled"):
        super().__init__(message)


# Tool Errors
class ToolError(StewardError):
    """Base exception for tool registry and execution errors."""

    pass


class ToolNotFoundError(ToolError):
    """Raised when a tool name is not registered."""

    def __init__(self, tool_name: str):
        super().__init__(f"Tool '{tool_name}' is not registered", {"tool": tool_name})
        self.tool_name = tool_name


class ToolExecutionError(ToolError):
    """Raised by tool handlers when they cannot complete."""

    pass


# State Errors
class StateTransitionError(StewardError):
    """Raised when an invalid state transition is attempted.

    Includes the current state and the attempted target state for debugging.
    """

    def __init__(self, message: str, from_state: str, to_state: str):
        super().__init__(message, {"from_state": from_state, "to_state": to_state})
        self.from_state = from_state
        self.to_state = to_state


# Checkpoint Errors
class CheckpointError(StewardError):
    """Base exception for checkpoint storage errors."""

    pass


class InvalidCheckpointNameError(CheckpointError):
    """Raised when a checkpoint name is not directory-safe."""

    def __init__(self, message: str, name: str):
        super().__init__(message, {"name": name})
        self.name = name


class CheckpointExistsError(CheckpointError):
    """Raised when saving over an existing checkpoint."""

    def __init__(self, name: str):
        super().__init__(f"Checkpoint '{name}' already exists")
        self.name = name


class CheckpointNotFoundError(CheckpointError):
    """Raised when a named checkpoint is absent from the store."""

    def __init__(self, name: str):
        super().__init__(f"Checkpoint '{name}' does not exist")
        self.name = name


class CheckpointValidationError(CheckpointError):
    """Raised when integrity validation of a checkpoint fails.

    Carries every error found, not just the first.
    """

    def __init__(self, name: str, errors: list[str]):
        super().__init__(
            f"Checkpoint validation failed: {', '.join(errors)}",
            {"name": name, "errors": errors},
        )
        self.name = name
        self.errors = errors


class RestoreError(CheckpointError):
    """Raised when file snapshots cannot be restored."""

    def __init__(self, message: str, errors: list[str]):
        super().__init__(message, {"errors": errors})
        self.errors = errors
