"""
Shell Command Executor

Runs shell commands as asyncio subprocesses alongside the conversation,
keeping a short trailing preview of stdout for live display. Each run
can be cancelled by id; cancellation resolves the same result future the
caller is already awaiting.
"""

import asyncio
import codecs
import dataclasses
import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field

from steward.config import BASH_OUTPUT_PREVIEW_LENGTH, BASH_PROGRESS_INTERVAL
from steward.logging import BashLogEntry, bash_logger, now_iso
from steward.shell.launcher import ShellLauncher, default_launcher

logger = logging.getLogger(__name__)

CANCELLED_ERROR = "Cancelled by user"

# Chunk size for pipe reads
READ_CHUNK_BYTES = 4096

EVENTS = ("start", "progress", "complete")


@dataclass
class BashExecution:
    """Observable state of one shell command run."""

    execution_id: str
    command: str
    output_preview: str = ""  # Trailing slice of stdout for display
    full_output: str = ""
    stderr: str = ""
    is_complete: bool = False
    exit_code: int | None = None
    error: str | None = None

    def snapshot(self) -> "BashExecution":
        """Copy handed to listeners and callers so later output cannot mutate it."""
        return dataclasses.replace(self)


@dataclass
class BashExecutionHandle:
    """Returned by execute(): the id for cancel() and the future to await."""

    execution_id: str
    result: "asyncio.Future[BashExecution]"


ExecutionListener = Callable[[BashExecution], None]


@dataclass
class _ExecutionEntry:
    state: BashExecution
    process: asyncio.subprocess.Process
    future: "asyncio.Future[BashExecution]"
    started: float
    readers: list[asyncio.Task] = field(default_factory=list)
    progress_task: asyncio.Task | None = None
    waiter: asyncio.Task | None = None


class BashExecutor:
    """
    Spawns and tracks shell commands.

    Listeners registered for "start", "progress" and "complete" receive a
    snapshot of the execution state. "complete" fires exactly once per run,
    whether the process exited, failed to spawn or was cancelled.
    """

    def __init__(
        self,
        cwd: str | None = None,
        launcher: ShellLauncher | None = None,
        preview_length: int = BASH_OUTPUT_PREVIEW_LENGTH,
        progress_interval: float = BASH_PROGRESS_INTERVAL,
    ):
        """
        Initialize the executor.

        Args:
            cwd: Working directory for commands (default: current directory)
            launcher: Shell launcher (default: platform launcher)
            preview_length: Characters of trailing stdout kept in output_preview
            progress_interval: Seconds between progress events
        """
        self.cwd = cwd
        self.launcher = launcher or default_launcher()
        self.preview_length = preview_length
        self.progress_interval = progress_interval
        self._executions: dict[str, _ExecutionEntry] = {}
        self._listeners: dict[str, list[ExecutionListener]] = {event: [] for event in EVENTS}

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def add_listener(self, event: str, listener: ExecutionListener) -> None:
        if event not in self._listeners:
            raise ValueError(f"Unknown event '{event}', expected one of {EVENTS}")
        self._listeners[event].append(listener)

    def remove_listener(self, event: str, listener: ExecutionListener) -> None:
        if listener in self._listeners.get(event, []):
            self._listeners[event].remove(listener)

    def _emit(self, event: str, state: BashExecution) -> None:
        for listener in list(self._listeners[event]):
            try:
                listener(state.snapshot())
            except Exception as e:
                # A broken display callback must not take the command down with it
                logger.warning(f"Bash {event} listener failed: {e}")

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    async def execute(self, command: str) -> BashExecutionHandle:
        """
        Start a shell command.

        Returns as soon as the process is spawned. Await `handle.result` for
        the final state; spawn failures resolve it with `error` set rather
        than raising.
        """
        execution_id = str(uuid.uuid4())
        state = BashExecution(execution_id=execution_id, command=command)
        loop = asyncio.get_running_loop()
        future: asyncio.Future[BashExecution] = loop.create_future()
        handle = BashExecutionHandle(execution_id=execution_id, result=future)
        started = time.monotonic()

        try:
            process = await asyncio.create_subprocess_exec(
                *self.launcher.argv(command),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.cwd,
                **self.launcher.spawn_kwargs(),
            )
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to spawn shell for {command!r}: {e}")
            self._emit("start", state)
            state.is_complete = True
            state.error = str(e)
            self._emit("complete", state)
            future.set_result(state.snapshot())
            self._log(state, started)
            return handle

        entry = _ExecutionEntry(state=state, process=process, future=future, started=started)
        self._executions[execution_id] = entry
        self._emit("start", state)

        entry.readers = [
            asyncio.create_task(self._read_stream(entry, process.stdout, is_stderr=False)),
            asyncio.create_task(self._read_stream(entry, process.stderr, is_stderr=True)),
        ]
        entry.progress_task = asyncio.create_task(self._progress_loop(entry))
        entry.waiter = asyncio.create_task(self._wait_for_exit(entry))

        logger.debug(f"Started execution {execution_id}: {command}")
        return handle

    async def _read_stream(
        self,
        entry: _ExecutionEntry,
        stream: asyncio.StreamReader | None,
        is_stderr: bool,
    ) -> None:
        if stream is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            chunk = await stream.read(READ_CHUNK_BYTES)
            text = decoder.decode(chunk, final=not chunk)
            if text:
                if is_stderr:
                    entry.state.stderr += text
                else:
                    entry.state.full_output += text
                    entry.state.output_preview = entry.state.full_output[-self.preview_length :]
            if not chunk:
                return

    async def _progress_loop(self, entry: _ExecutionEntry) -> None:
        while True:
            await asyncio.sleep(self.progress_interval)
            self._emit("progress", entry.state)

    async def _wait_for_exit(self, entry: _ExecutionEntry) -> None:
        execution_id = entry.state.execution_id
        # Cancelled readers come back as exceptions here instead of propagating
        await asyncio.gather(*entry.readers, return_exceptions=True)
        returncode = await entry.process.wait()

        # cancel() already settled this run
        if self._executions.get(execution_id) is not entry:
            return

        del self._executions[execution_id]
        if entry.progress_task:
            entry.progress_task.cancel()
        entry.state.is_complete = True
        entry.state.exit_code = returncode
        self._emit("complete", entry.state)
        if not entry.future.done():
            entry.future.set_result(entry.state.snapshot())
        self._log(entry.state, entry.started)
        logger.debug(f"Execution {execution_id} exited with {returncode}")

    def cancel(self, execution_id: str) -> bool:
        """
        Cancel a running command.

        Stops output collection, sends a termination signal and resolves the
        execution's future with error "Cancelled by user".

        Returns:
            False if the id is unknown or the run already finished
        """
        entry = self._executions.pop(execution_id, None)
        if entry is None:
            return False

        if entry.progress_task:
            entry.progress_task.cancel()
        for reader in entry.readers:
            reader.cancel()

        self.launcher.terminate(entry.process)

        entry.state.is_complete = True
        entry.state.error = CANCELLED_ERROR
        self._emit("complete", entry.state)
        if not entry.future.done():
            entry.future.set_result(entry.state.snapshot())
        self._log(entry.state, entry.started, cancelled=True)
        logger.info(f"Cancelled execution {execution_id}")
        return True

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_state(self, execution_id: str) -> BashExecution | None:
        entry = self._executions.get(execution_id)
        return entry.state.snapshot() if entry else None

    def has_active_executions(self) -> bool:
        return bool(self._executions)

    def get_active_execution_ids(self) -> list[str]:
        return list(self._executions)

    def close(self) -> None:
        """
        Cancel every running command.

        Safe to call multiple times.
        """
        for execution_id in self.get_active_execution_ids():
            self.cancel(execution_id)

    async def __aenter__(self) -> "BashExecutor":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _log(self, state: BashExecution, started: float, cancelled: bool = False) -> None:
        entry = BashLogEntry(
            timestamp=now_iso(),
            execution_id=state.execution_id,
            command=state.command,
            exit_code=state.exit_code,
            stdout_chars=len(state.full_output),
            stderr_chars=len(state.stderr),
            cancelled=cancelled,
            duration_ms=int((time.monotonic() - started) * 1000),
            error=state.error,
        )
        if state.error:
            bash_logger.warning(entry.to_json())
        else:
            bash_logger.info(entry.to_json())
