"""
Cancellation token for in-flight model calls.

The engine creates a fresh token per model call; the operator's abort
sets it and the provider client raises OperationCancelledError.
"""

import asyncio

from steward.exceptions import OperationCancelledError


class CancellationToken:
    """One-shot cancellation flag that coroutines can wait on."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        """Block until cancel() is called."""
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelledError()
