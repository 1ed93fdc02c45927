"""
Cancellation token threaded through one batch request.

Cancelling never interrupts work that is already running: stages and
delivery tasks check the token at their own safe points and stop
before starting new work.
"""

import asyncio


class CancellationToken:
    """Cooperative cancellation flag for a single request."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    def cancel(self, reason: str = 'canceled') -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        """Block until the token is cancelled."""
        await self._event.wait()

    @classmethod
    def never(cls) -> 'CancellationToken':
        """A token nobody holds a reference to cancel."""
        return cls()
