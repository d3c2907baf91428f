"""Cooperative cancellation for a single streaming request."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from ..exceptions import RequestCancelledError

T = TypeVar("T")


class CancellationHandle:
    """
    Cancellation signal owned by one request.

    `cancel()` only sets a flag; the request observes it at its next
    suspension point via `race()` or `raise_if_cancelled()`.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RequestCancelledError()

    async def race(self, awaitable: Awaitable[T]) -> T:
        """
        Await `awaitable` unless cancellation arrives first.

        Raises:
            RequestCancelledError: If the handle was cancelled before or while
                waiting. The pending awaitable is cancelled.
        """
        operation = asyncio.ensure_future(awaitable)
        if not self._event.is_set():
            waiter = asyncio.ensure_future(self._event.wait())
            try:
                await asyncio.wait(
                    {operation, waiter}, return_when=asyncio.FIRST_COMPLETED
                )
            except asyncio.CancelledError:
                operation.cancel()
                raise
            finally:
                waiter.cancel()

            if operation.done():
                return operation.result()

        operation.cancel()
        await asyncio.wait({operation})
        if operation.cancelled() or operation.exception() is not None:
            raise RequestCancelledError()
        # Finished before the cancel landed; the caller sees the flag next time
        return operation.result()
