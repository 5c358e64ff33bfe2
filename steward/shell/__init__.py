"""Cancellable shell command execution."""

from steward.shell.executor import BashExecution, BashExecutionHandle, BashExecutor
from steward.shell.launcher import (
    PosixShellLauncher,
    ShellLauncher,
    WindowsShellLauncher,
    default_launcher,
)

__all__ = [
    "BashExecution",
    "BashExecutionHandle",
    "BashExecutor",
    "ShellLauncher",
    "PosixShellLauncher",
    "WindowsShellLauncher",
    "default_launcher",
]
