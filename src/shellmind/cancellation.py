"""Cancellation token passed to every tool execution."""

import asyncio


class CancellationToken:
    """
    One-shot cancellation signal.

    Raising it makes in-flight external work stop at its next await
    point; running child processes are killed rather than left behind.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason = "Cancelled by user"

    def cancel(self, reason: str | None = None) -> None:
        if reason:
            self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()
