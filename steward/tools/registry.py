"""
Tool Registry

Single source of truth for tool metadata: handler, JSON schema, approval
requirement, argument validator and whether the tool mutates files.
"""

import inspect
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from steward.config import BASH_OUTPUT_MAX_CHARS
from steward.logging import ToolLogEntry, get_session_id, now_iso, tool_logger
from steward.messages import ToolCall, ToolResult, parse_tool_arguments
from steward.state import DevelopmentMode, ModeAccessor

if TYPE_CHECKING:
    from steward.shell.executor import BashExecutor

logger = logging.getLogger(__name__)

# Characters of a result kept in the tool log
RESULT_PREVIEW_CHARS = 200


@dataclass
class ToolValidation:
    """Outcome of a tool's argument validator."""

    valid: bool
    error: str = ""

    @classmethod
    def ok(cls) -> "ToolValidation":
        return cls(valid=True)

    @classmethod
    def fail(cls, error: str) -> "ToolValidation":
        return cls(valid=False, error=error)


ToolHandler = Callable[[dict[str, Any]], "str | Awaitable[str]"]
ToolValidator = Callable[[dict[str, Any]], "ToolValidation | Awaitable[ToolValidation]"]
ApprovalPredicate = Callable[[dict[str, Any]], "bool | Awaitable[bool]"]


@dataclass
class ToolEntry:
    """Everything the engine needs to know about one tool."""

    name: str
    description: str
    handler: ToolHandler
    parameters: dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )
    # Static flag or predicate over the parsed arguments
    needs_approval: bool | ApprovalPredicate = True
    validator: ToolValidator | None = None
    mutates_files: bool = False

    def schema(self) -> dict[str, Any]:
        """OpenAI function-calling schema."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


def _default_mode() -> DevelopmentMode:
    return DevelopmentMode.NORMAL


@dataclass
class ToolContext:
    """
    Environment handed to tool implementations.

    Tools read the active mode through `get_mode` instead of a global.
    """

    workspace_root: Path
    get_mode: ModeAccessor = _default_mode
    bash_executor: "BashExecutor | None" = None
    bash_output_max_chars: int = BASH_OUTPUT_MAX_CHARS

    def resolve_path(self, path: str) -> Path:
        """
        Resolve a tool-supplied path inside the workspace.

        Raises:
            ValueError: If the path is empty or escapes the workspace
        """
        if not path or not str(path).strip():
            raise ValueError("Path must not be empty")
        root = Path(self.workspace_root).resolve()
        candidate = Path(path)
        resolved = (candidate if candidate.is_absolute() else root / candidate).resolve()
        if resolved != root and root not in resolved.parents:
            raise ValueError(f'Path "{path}" is outside the project directory')
        return resolved


async def maybe_await(value: Any) -> Any:
    """Await the value if a sync-or-async callable handed back an awaitable."""
    if inspect.isawaitable(value):
        return await value
    return value


class ToolRegistry:
    """Registry of available tools keyed by name."""

    def __init__(self, entries: list[ToolEntry] | None = None):
        self._tools: dict[str, ToolEntry] = {}
        if entries:
            self.register_many(entries)

    def register(self, entry: ToolEntry) -> None:
        self._tools[entry.name] = entry

    def register_many(self, entries: list[ToolEntry]) -> None:
        for entry in entries:
            self.register(entry)

    def unregister(self, name: str) -> None:
        self._tools.pop(name, None)

    def has_tool(self, name: str) -> bool:
        return name in self._tools

    def get_tool_entry(self, name: str) -> ToolEntry | None:
        return self._tools.get(name)

    def get_tool_validator(self, name: str) -> ToolValidator | None:
        entry = self._tools.get(name)
        return entry.validator if entry else None

    def tool_names(self) -> list[str]:
        return list(self._tools)

    def get_tool_schemas(self) -> list[dict[str, Any]]:
        return [entry.schema() for entry in self._tools.values()]

    async def validate(self, call: ToolCall) -> ToolValidation:
        """
        Run the tool's validator, if any.

        Undecodable arguments and validator exceptions are reported as
        validation failures so the error text can go back to the model.
        """
        validator = self.get_tool_validator(call.name)
        if validator is None:
            return ToolValidation.ok()
        try:
            args = call.parsed_arguments()
            result = await maybe_await(validator(args))
        except Exception as e:
            logger.debug(f"Validator for {call.name} raised: {e}")
            return ToolValidation.fail(f"Error: {e}")
        if not isinstance(result, ToolValidation):
            return ToolValidation.fail(f"Error: validator for {call.name} returned no result")
        return result

    async def execute(self, call: ToolCall) -> ToolResult:
        """
        Run a tool call.

        Handler exceptions become an "Error: ..." result; one failing tool
        never raises into the caller.
        """
        entry = self._tools.get(call.name)
        if entry is None:
            return ToolResult(call.id, call.name, f"Error: Tool '{call.name}' is not registered")

        try:
            args = parse_tool_arguments(call.arguments)
            output = await maybe_await(entry.handler(args))
        except Exception as e:
            logger.info(f"Tool {call.name} failed: {e}")
            return ToolResult(call.id, call.name, f"Error: {e}")

        return ToolResult(call.id, call.name, output if isinstance(output, str) else str(output))


def log_tool_result(
    call: ToolCall,
    result: ToolResult,
    disposition: str,
    mode: DevelopmentMode | None = None,
    started: float | None = None,
) -> None:
    """Write one tools.jsonl entry for an executed, blocked or cancelled call."""
    is_error = result.content.startswith("Error:")
    entry = ToolLogEntry(
        timestamp=now_iso(),
        session_id=get_session_id(),
        tool_call_id=call.id,
        tool_name=call.name,
        arguments=call.arguments,
        disposition=disposition,
        mode=mode.value if mode else "",
        result_preview=result.content[:RESULT_PREVIEW_CHARS],
        duration_ms=int((time.monotonic() - started) * 1000) if started is not None else 0,
        error=result.content if is_error else None,
    )
    if is_error:
        tool_logger.warning(entry.to_json())
    else:
        tool_logger.info(entry.to_json())
