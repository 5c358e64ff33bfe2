"""
Built-in tools.

File reading, listing and editing inside the workspace, plus shell
execution through the BashExecutor. Every path is resolved against the
workspace root; paths that escape it are rejected by the validators.
"""

import logging
from pathlib import Path
from typing import Any

from steward.exceptions import ToolExecutionError
from steward.tools.registry import ToolContext, ToolEntry, ToolRegistry, ToolValidation

logger = logging.getLogger(__name__)

# Directories never listed
IGNORED_DIRECTORIES = frozenset({"node_modules", "dist", "build", ".git", "coverage", ".steward"})

LIST_MAX_DEPTH = 3


def _numbered(content: str) -> str:
    return "\n".join(f"{i:>4}: {line}" for i, line in enumerate(content.split("\n"), start=1))


class BuiltinTools:
    """Handlers and validators for the built-in tool set, bound to one context."""

    def __init__(self, context: ToolContext):
        self.context = context

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------

    def _check_path(self, path: Any) -> ToolValidation | None:
        if not isinstance(path, str) or not path.strip():
            return ToolValidation.fail("Error: path is required")
        try:
            self.context.resolve_path(path)
        except ValueError as e:
            return ToolValidation.fail(
                f"Error: Invalid file path: {e}. Path must be within the project directory."
            )
        return None

    def validate_read_file(self, args: dict[str, Any]) -> ToolValidation:
        if failure := self._check_path(args.get("path")):
            return failure
        resolved = self.context.resolve_path(args["path"])
        if not resolved.is_file():
            return ToolValidation.fail(f'Error: File "{args["path"]}" does not exist')
        return ToolValidation.ok()

    def validate_write_file(self, args: dict[str, Any]) -> ToolValidation:
        if failure := self._check_path(args.get("path")):
            return failure
        if not isinstance(args.get("content"), str):
            return ToolValidation.fail("Error: content must be a string")
        resolved = self.context.resolve_path(args["path"])
        if resolved.is_dir():
            return ToolValidation.fail(f'Error: "{args["path"]}" is a directory')
        return ToolValidation.ok()

    def validate_string_replace(self, args: dict[str, Any]) -> ToolValidation:
        if failure := self._check_path(args.get("path")):
            return failure
        path = args["path"]
        resolved = self.context.resolve_path(path)
        if not resolved.is_file():
            return ToolValidation.fail(f'Error: File "{path}" does not exist')

        old_str = args.get("old_str")
        if not isinstance(old_str, str) or not old_str:
            return ToolValidation.fail(
                "Error: old_str cannot be empty. Provide the exact content to find and replace."
            )
        if not isinstance(args.get("new_str"), str):
            return ToolValidation.fail("Error: new_str must be a string")

        try:
            content = resolved.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            return ToolValidation.fail(f'Error: Error reading file "{path}": {e}')

        occurrences = content.count(old_str)
        if occurrences == 0:
            return ToolValidation.fail(
                "Error: Content not found in file. The file may have changed since you "
                f"last read it.\n\nSearching for:\n{old_str}\n\n"
                "Suggestion: Read the file again to see current contents."
            )
        if occurrences > 1:
            return ToolValidation.fail(
                f"Error: Found {occurrences} matches for the search string. Please provide "
                f"more surrounding context to make the match unique.\n\nSearching for:\n{old_str}"
            )
        return ToolValidation.ok()

    def validate_list_directory(self, args: dict[str, Any]) -> ToolValidation:
        path = args.get("path") or "."
        if failure := self._check_path(path):
            return failure
        if not self.context.resolve_path(path).is_dir():
            return ToolValidation.fail(f'Error: Directory "{path}" does not exist')
        return ToolValidation.ok()

    def validate_execute_bash(self, args: dict[str, Any]) -> ToolValidation:
        command = args.get("command")
        if not isinstance(command, str) or not command.strip():
            return ToolValidation.fail("Error: command is required")
        return ToolValidation.ok()

    # -------------------------------------------------------------------------
    # Handlers
    # -------------------------------------------------------------------------

    def read_file(self, args: dict[str, Any]) -> str:
        path = args["path"]
        resolved = self.context.resolve_path(path)
        try:
            content = resolved.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise ToolExecutionError(f'File "{path}" does not exist')
        if not content:
            raise ToolExecutionError(f'File "{path}" exists but is empty (0 tokens)')
        return _numbered(content)

    def write_file(self, args: dict[str, Any]) -> str:
        path = args["path"]
        content = args["content"]
        resolved = self.context.resolve_path(path)
        existed = resolved.exists()
        resolved.parent.mkdir(parents=True, exist_ok=True)
        resolved.write_text(content, encoding="utf-8")

        lines = content.split("\n")
        action = "overwritten" if existed else "written"
        return (
            f"File {action} successfully ({len(lines)} lines, {len(content)} characters)."
            f"\n\nFile contents after write:\n{_numbered(content)}"
        )

    def string_replace(self, args: dict[str, Any]) -> str:
        path = args["path"]
        old_str = args["old_str"]
        new_str = args["new_str"]
        resolved = self.context.resolve_path(path)
        content = resolved.read_text(encoding="utf-8")

        occurrences = content.count(old_str)
        if occurrences != 1:
            raise ToolExecutionError(
                f"Expected exactly one match for the search string, found {occurrences}"
            )

        start_line = content[: content.index(old_str)].count("\n") + 1
        end_line = start_line + old_str.count("\n")
        new_end_line = start_line + new_str.count("\n")
        updated = content.replace(old_str, new_str, 1)
        resolved.write_text(updated, encoding="utf-8")

        def describe(start: int, end: int) -> str:
            return f"line {start}" if start == end else f"lines {start}-{end}"

        return (
            f"Successfully replaced content at {describe(start_line, end_line)} "
            f"(now {describe(start_line, new_end_line)})."
            f"\n\nUpdated file contents:\n{_numbered(updated)}"
        )

    def list_directory(self, args: dict[str, Any]) -> str:
        path = args.get("path") or "."
        recursive = bool(args.get("recursive", False))
        max_depth = int(args.get("max_depth", LIST_MAX_DEPTH))
        root = self.context.resolve_path(path)

        entries: list[tuple[bool, str, int | None]] = []

        def walk(directory: Path, depth: int) -> None:
            try:
                children = sorted(directory.iterdir())
            except PermissionError:
                return
            for child in children:
                if child.name.startswith(".") and not path.startswith("."):
                    continue
                is_dir = child.is_dir()
                if is_dir and child.name in IGNORED_DIRECTORIES:
                    continue
                relative = child.relative_to(root).as_posix()
                size = child.stat().st_size if child.is_file() else None
                entries.append((is_dir, relative if recursive else child.name, size))
                if recursive and is_dir and depth < max_depth:
                    walk(child, depth + 1)

        walk(root, 0)
        if not entries:
            return f'Directory "{path}" is empty'

        # Directories first, then alphabetical
        entries.sort(key=lambda e: (not e[0], e[1]))
        lines = [f'Directory contents for "{path}":', ""]
        for is_dir, name, size in entries:
            if is_dir:
                lines.append(f"{name}/")
            else:
                lines.append(f"{name} ({size:,} bytes)" if size else name)
        if recursive:
            lines.append("")
            lines.append(f"[Recursive: showing entries up to depth {max_depth}]")
        return "\n".join(lines)

    async def execute_bash(self, args: dict[str, Any]) -> str:
        executor = self.context.bash_executor
        if executor is None:
            raise ToolExecutionError("Shell execution is not available")

        handle = await executor.execute(args["command"])
        execution = await handle.result
        if execution.error:
            raise ToolExecutionError(execution.error)

        output = execution.full_output
        if execution.stderr:
            output = f"{output}\nSTDERR:\n{execution.stderr}" if output else f"STDERR:\n{execution.stderr}"
        if execution.exit_code not in (0, None):
            output = f"{output}\nExit code: {execution.exit_code}".lstrip("\n")

        limit = self.context.bash_output_max_chars
        if len(output) > limit:
            output = f"{output[:limit]}\n\n[Output truncated: {len(output) - limit} more characters]"
        return output


def create_builtin_tools(context: ToolContext) -> list[ToolEntry]:
    """Tool entries for the built-in tool set."""
    tools = BuiltinTools(context)
    return [
        ToolEntry(
            name="read_file",
            description="Read a file from the workspace. Returns the content with line numbers.",
            handler=tools.read_file,
            parameters={
                "type": "object",
                "properties": {
                    "path": {"type": "string", "description": "Path relative to the workspace."},
                },
                "required": ["path"],
            },
            needs_approval=False,
            validator=tools.validate_read_file,
        ),
        ToolEntry(
            name="list_directory",
            description="List the entries of a directory, optionally recursively.",
            handler=tools.list_directory,
            parameters={
                "type": "object",
                "properties": {
                    "path": {"type": "string", "description": "Directory path (default: '.')."},
                    "recursive": {"type": "boolean", "description": "Descend into subdirectories."},
                    "max_depth": {"type": "integer", "description": "Recursion depth limit."},
                },
            },
            needs_approval=False,
            validator=tools.validate_list_directory,
        ),
        ToolEntry(
            name="write_file",
            description=(
                "Write content to a file, creating or overwriting it. For small "
                "targeted edits use string_replace instead."
            ),
            handler=tools.write_file,
            parameters={
                "type": "object",
                "properties": {
                    "path": {"type": "string", "description": "Path relative to the workspace."},
                    "content": {"type": "string", "description": "Complete file content."},
                },
                "required": ["path", "content"],
            },
            needs_approval=True,
            validator=tools.validate_write_file,
            mutates_files=True,
        ),
        ToolEntry(
            name="string_replace",
            description=(
                "Replace an exact, unique string in a file. Include 2-3 lines of "
                "surrounding context so the match is unique."
            ),
            handler=tools.string_replace,
            parameters={
                "type": "object",
                "properties": {
                    "path": {"type": "string", "description": "Path relative to the workspace."},
                    "old_str": {"type": "string", "description": "Exact text to replace."},
                    "new_str": {"type": "string", "description": "Replacement text."},
                },
                "required": ["path", "old_str", "new_str"],
            },
            needs_approval=True,
            validator=tools.validate_string_replace,
            mutates_files=True,
        ),
        ToolEntry(
            name="execute_bash",
            description="Run a shell command in the workspace and return its output.",
            handler=tools.execute_bash,
            parameters={
                "type": "object",
                "properties": {
                    "command": {"type": "string", "description": "Shell command to run."},
                },
                "required": ["command"],
            },
            needs_approval=True,
            validator=tools.validate_execute_bash,
        ),
    ]


def create_builtin_registry(context: ToolContext) -> ToolRegistry:
    return ToolRegistry(create_builtin_tools(context))
