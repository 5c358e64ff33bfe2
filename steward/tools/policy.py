"""
Approval policy.

Classifies each tool call as execute-directly, needs-confirmation or
blocked under the active development mode.
"""

import logging
from enum import Enum

from steward.messages import ToolCall
from steward.state import DevelopmentMode
from steward.tools.registry import ToolRegistry, maybe_await

logger = logging.getLogger(__name__)

# Shell execution asks for confirmation even in auto-accept mode
ALWAYS_CONFIRM_TOOL = "execute_bash"

# Tools blocked in plan mode in addition to entries flagged mutates_files
FILE_MUTATING_TOOLS = frozenset(
    {
        "write_file",
        "create_file",
        "string_replace",
        "delete_file",
        "insert_lines",
        "replace_lines",
        "delete_lines",
    }
)

PLAN_MODE_BLOCKED_MESSAGE = (
    "Error: Tool '{name}' modifies files and is blocked in plan mode. "
    "Describe the change you would make instead."
)


class ApprovalDecision(Enum):
    """Outcome of classifying one tool call."""

    EXECUTE_DIRECTLY = "execute-directly"
    NEEDS_CONFIRMATION = "needs-confirmation"
    BLOCKED = "blocked"


def is_file_mutating(name: str, registry: ToolRegistry | None) -> bool:
    if name in FILE_MUTATING_TOOLS:
        return True
    entry = registry.get_tool_entry(name) if registry else None
    return bool(entry and entry.mutates_files)


def blocked_message(call: ToolCall) -> str:
    return PLAN_MODE_BLOCKED_MESSAGE.format(name=call.name)


async def requires_approval(call: ToolCall, registry: ToolRegistry | None) -> bool:
    """
    Evaluate the tool's needs_approval flag or predicate.

    Unknown tools and predicate failures default to requiring approval.
    """
    entry = registry.get_tool_entry(call.name) if registry else None
    if entry is None:
        return True

    needs_approval = entry.needs_approval
    if isinstance(needs_approval, bool):
        return needs_approval

    try:
        return bool(await maybe_await(needs_approval(call.parsed_arguments())))
    except Exception as e:
        logger.debug(f"needs_approval predicate for {call.name} raised: {e}")
        return True


async def classify_tool_call(
    call: ToolCall,
    registry: ToolRegistry | None,
    mode: DevelopmentMode,
) -> ApprovalDecision:
    """
    Classify a tool call.

    1. Plan mode + file-mutating tool: BLOCKED.
    2. Validator fails or raises: EXECUTE_DIRECTLY with `validation_failed`
       set, so the validation error reaches the model without asking.
    3. No approval required, or auto-accept mode for any tool other than
       shell execution: EXECUTE_DIRECTLY.
    4. Otherwise NEEDS_CONFIRMATION.
    """
    if mode == DevelopmentMode.PLAN and is_file_mutating(call.name, registry):
        return ApprovalDecision.BLOCKED

    if registry is not None and registry.get_tool_validator(call.name) is not None:
        validation = await registry.validate(call)
        if not validation.valid:
            call.validation_failed = True
            return ApprovalDecision.EXECUTE_DIRECTLY

    if not await requires_approval(call, registry):
        return ApprovalDecision.EXECUTE_DIRECTLY

    if mode == DevelopmentMode.AUTO_ACCEPT and call.name != ALWAYS_CONFIRM_TOOL:
        return ApprovalDecision.EXECUTE_DIRECTLY

    return ApprovalDecision.NEEDS_CONFIRMATION
