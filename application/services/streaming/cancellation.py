"""Cooperative cancellation for in-flight generations."""

import asyncio
from typing import Awaitable, Optional, TypeVar

T = TypeVar("T")


class OperationCancelled(Exception):
    """The awaited operation was abandoned because of a cancel request."""


class CancellationToken:
    """One-shot cancellation flag that can also be awaited.

    Setting the token is idempotent. Observers check ``cancelled`` between
    chunks or race ``wait()`` against a pending read.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> bool:
        """Request cancellation. Returns True if this call changed the state."""
        if self._event.is_set():
            return False
        self._event.set()
        return True

    async def wait(self) -> None:
        await self._event.wait()


async def run_cancellable(
    awaitable: Awaitable[T],
    token: CancellationToken,
    timeout: Optional[float] = None,
) -> T:
    """Await ``awaitable`` unless ``token`` is cancelled or ``timeout`` expires first.

    The pending operation is cancelled and awaited before returning, so no task
    is left behind.

    Raises:
        OperationCancelled: the token fired before the operation completed
        asyncio.TimeoutError: the operation did not complete within ``timeout``
    """
    if token.cancelled:
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise OperationCancelled()

    operation = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(token.wait())
    try:
        await asyncio.wait(
            {operation, waiter},
            timeout=timeout,
            return_when=asyncio.FIRST_COMPLETED,
        )
    finally:
        waiter.cancel()
        if not operation.done():
            operation.cancel()
        await asyncio.gather(waiter, operation, return_exceptions=True)

    if not operation.cancelled():
        return operation.result()
    if token.cancelled:
        raise OperationCancelled()
    raise asyncio.TimeoutError()
