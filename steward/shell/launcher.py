"""
Platform shell launchers.

A launcher turns a command string into an argv for the platform shell and
knows how to stop the process tree it started.
"""

import asyncio
import logging
import os
import signal
import sys
from abc import ABC, abstractmethod
from typing import Any

logger = logging.getLogger(__name__)


class ShellLauncher(ABC):
    """Builds the shell invocation for a command string."""

    @abstractmethod
    def argv(self, command: str) -> list[str]:
        """Return the argv that runs `command` through the shell."""

    def spawn_kwargs(self) -> dict[str, Any]:
        """Extra keyword arguments for asyncio.create_subprocess_exec."""
        return {}

    def terminate(self, process: asyncio.subprocess.Process) -> None:
        """Send a graceful stop request to the process."""
        if process.returncode is None:
            try:
                process.terminate()
            except ProcessLookupError:
                pass


class PosixShellLauncher(ShellLauncher):
    """`sh -c` in its own session so the whole process group can be signalled."""

    def argv(self, command: str) -> list[str]:
        return ["sh", "-c", command]

    def spawn_kwargs(self) -> dict[str, Any]:
        return {"start_new_session": True}

    def terminate(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is not None:
            return
        # Children of sh hold the pipes open, so signal the group, not just sh
        try:
            os.killpg(process.pid, signal.SIGTERM)
        except (ProcessLookupError, PermissionError) as e:
            logger.debug(f"killpg failed for {process.pid}: {e}")
            super().terminate(process)


class WindowsShellLauncher(ShellLauncher):
    """`cmd /c` launcher."""

    def argv(self, command: str) -> list[str]:
        return ["cmd", "/c", command]


def default_launcher() -> ShellLauncher:
    """Launcher for the running platform."""
    if sys.platform == "win32":
        return WindowsShellLauncher()
    return PosixShellLauncher()
