"""
Cancellation tokens for long-running fetches
The token is owned by whoever starts the operation
"""

import asyncio
from typing import Awaitable, TypeVar

from delve_x402.errors import FetchCancelled

T = TypeVar("T")


class CancellationToken:
    """One-shot cancellation signal threaded through a network call"""

    def __init__(self):
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise FetchCancelled()

    async def run(self, awaitable: Awaitable[T]) -> T:
        """
        Await an operation, aborting it if the token fires first.

        Raises:
            FetchCancelled: If the token was cancelled before or during the call
        """
        self.raise_if_cancelled()

        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            waiter.cancel()

        if not work.done():
            work.cancel()
            await asyncio.gather(work, return_exceptions=True)
            raise FetchCancelled()

        return work.result()
