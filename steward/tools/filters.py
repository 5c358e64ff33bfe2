"""
Tool call filtering.

Sanitizes the raw tool calls of one model response before any policy or
execution sees them.
"""

import logging
from dataclasses import dataclass, field
from typing import Protocol

from steward.messages import ToolCall, ToolResult

logger = logging.getLogger(__name__)

TOOL_NOT_FOUND_MESSAGE = (
    "This tool does not exist. Please use only the tools that are available in the system."
)


class ToolLookup(Protocol):
    def has_tool(self, name: str) -> bool: ...


@dataclass
class FilterResult:
    """Calls that survived filtering plus error results for unknown tools."""

    valid_tool_calls: list[ToolCall] = field(default_factory=list)
    error_results: list[ToolResult] = field(default_factory=list)
    # Calls answered by error_results, kept so the assistant turn can carry them
    rejected_calls: list[ToolCall] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return bool(self.error_results)


def filter_valid_tool_calls(
    tool_calls: list[ToolCall],
    registry: ToolLookup | None,
) -> FilterResult:
    """
    Filter raw tool calls.

    In order:
    1. Calls with a missing or blank id or name are dropped silently.
    2. Calls naming an unregistered tool get an explanatory error result.
       Skipped when no registry is available.
    3. Duplicate ids are dropped. Unknown and valid calls share one id
       space, so the first call with an id wins either way.
    4. Duplicate name + arguments signatures are dropped, first one wins.

    Never raises; input order is preserved.
    """
    result = FilterResult()
    seen_ids: set[str] = set()
    seen_signatures: set[str] = set()

    for call in tool_calls:
        if not call.id or not call.id.strip() or not call.name or not call.name.strip():
            logger.debug(f"Dropping tool call with blank id or name: {call!r}")
            continue

        if registry is not None and not registry.has_tool(call.name):
            if call.id not in seen_ids:
                seen_ids.add(call.id)
                result.rejected_calls.append(call)
                result.error_results.append(
                    ToolResult(tool_call_id=call.id, name=call.name, content=TOOL_NOT_FOUND_MESSAGE)
                )
            logger.info(f"Model requested unknown tool '{call.name}'")
            continue

        if call.id in seen_ids:
            logger.debug(f"Dropping duplicate tool call id {call.id}")
            continue

        signature = call.signature()
        if signature in seen_signatures:
            logger.debug(f"Dropping duplicate tool call {signature}")
            continue

        seen_ids.add(call.id)
        seen_signatures.add(signature)
        result.valid_tool_calls.append(call)

    return result
