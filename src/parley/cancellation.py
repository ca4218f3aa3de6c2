"""Cooperative cancellation for in-flight requests.

A token is checked at every suspension point a driver goes through (opening
the stream and each read). Pending reads are raced against the token so a
cancelled request stops waiting on the network immediately.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, TypeVar

from parley.errors import RequestAborted

if TYPE_CHECKING:
    from collections.abc import AsyncIterable, AsyncIterator, Awaitable

T = TypeVar("T")

_EXHAUSTED: Any = object()


async def _anext(iterator: Any) -> Any:
    try:
        return await iterator.__anext__()
    except StopAsyncIteration:
        return _EXHAUSTED


class CancellationToken:
    """One-shot cancellation signal owned by a single request."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        """Whether ``cancel()`` has been called."""
        return self._event.is_set()

    def cancel(self) -> None:
        """Signal cancellation. Calling it again is a no-op."""
        self._event.set()

    def raise_if_cancelled(self) -> None:
        """Raise ``RequestAborted`` once the token has fired."""
        if self._event.is_set():
            raise RequestAborted()

    async def race(self, awaitable: Awaitable[T]) -> T:
        """Await *awaitable* unless the token fires first.

        When the token wins, the pending operation is cancelled and
        ``RequestAborted`` is raised.
        """
        self.raise_if_cancelled()
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            waiter.cancel()
            raise
        if task.done():
            waiter.cancel()
            return task.result()
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise RequestAborted()

    async def iterate(self, source: AsyncIterable[T]) -> AsyncIterator[T]:
        """Yield items from *source*, observing the token around each read."""
        iterator = source.__aiter__()
        while True:
            item = await self.race(_anext(iterator))
            if item is _EXHAUSTED:
                return
            self.raise_if_cancelled()
            yield item

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.cancelled})"
