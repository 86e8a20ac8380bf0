"""Lazy, finite, non-restartable sequence of text deltas over an open response."""

import asyncio
import logging
from collections import deque
from typing import AsyncIterator, Deque, Optional

import httpx

from application.services.provider.sse_parser import SSEDecoder, parse_chunk
from application.services.streaming.cancellation import CancellationToken
from common.exception import NetworkError, ProviderError, StreamTimeoutError

logger = logging.getLogger(__name__)


class DeltaStream:
    """Async iterator of text deltas from a streaming chat completion.

    Iteration ends on the ``[DONE]`` marker, at end of body, or as soon as the
    cancellation token is observed. Cancellation ends the iteration silently,
    except that deltas received together with the terminal signal are still
    delivered. Failures raise a classified ``ProviderError``. The underlying
    response is closed on every exit path, bounded by ``grace_period``.
    """

    def __init__(
        self,
        response: httpx.Response,
        cancel_token: CancellationToken,
        idle_timeout: Optional[float] = None,
        grace_period: float = 2.0,
    ):
        self._response = response
        self._cancel_token = cancel_token
        self._idle_timeout = idle_timeout
        self._grace_period = grace_period
        self._chunks: AsyncIterator[str] = response.aiter_text()
        self._decoder = SSEDecoder()
        self._pending: Deque[str] = deque()
        self._finished = False
        self._closed = False
        self._error: Optional[ProviderError] = None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def finished(self) -> bool:
        """True once the provider signalled the end (``[DONE]`` or end of body)."""
        return self._finished

    async def __aenter__(self) -> "DeltaStream":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    def __aiter__(self) -> "DeltaStream":
        return self

    async def __anext__(self) -> str:
        while True:
            if self._cancel_token.cancelled and not self._finished:
                await self.aclose()
                raise StopAsyncIteration
            if self._pending:
                return self._pending.popleft()
            if self._error is not None:
                await self.aclose()
                raise self._error
            if self._finished or self._closed:
                await self.aclose()
                raise StopAsyncIteration
            try:
                await self._read_more()
            except BaseException:
                await self.aclose()
                raise

    async def aclose(self) -> None:
        """Close the upstream connection (idempotent)."""
        if self._closed:
            return
        self._closed = True
        try:
            await asyncio.wait_for(self._response.aclose(), timeout=self._grace_period)
        except asyncio.TimeoutError:
            logger.warning(
                f"Provider connection did not close within {self._grace_period}s"
            )
        except httpx.HTTPError as e:
            logger.debug(f"Error while closing provider connection: {e}")

    async def _read_more(self) -> None:
        text = await self._next_text()
        try:
            if text is None:
                if not self._cancel_token.cancelled:
                    self._handle_payload(self._decoder.flush())
                    self._finished = True
                return

            for payload in self._decoder.feed(text):
                self._handle_payload(payload)
                if self._finished:
                    break
        except ProviderError as e:
            # Deltas decoded ahead of the failure are delivered first
            self._error = e

    def _handle_payload(self, payload: Optional[str]) -> None:
        if payload is None or self._finished:
            return
        chunk = parse_chunk(payload)
        if chunk.done:
            logger.info("Stream finished with [DONE]")
            self._finished = True
        elif chunk.delta:
            self._pending.append(chunk.delta)

    async def _next_text(self) -> Optional[str]:
        """Read the next body slice, racing the cancel token and the idle window.

        Returns None at end of body or when cancelled.
        """
        read = asyncio.ensure_future(self._read_text())
        waiter = asyncio.ensure_future(self._cancel_token.wait())
        try:
            await asyncio.wait(
                {read, waiter},
                timeout=self._idle_timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            waiter.cancel()
            if not read.done():
                read.cancel()
            await asyncio.gather(waiter, read, return_exceptions=True)

        if read.done() and not read.cancelled():
            return read.result()
        if self._cancel_token.cancelled:
            return None
        raise StreamTimeoutError(self._idle_timeout)

    async def _read_text(self) -> Optional[str]:
        try:
            return await self._chunks.__anext__()
        except StopAsyncIteration:
            return None
        except httpx.HTTPError as e:
            raise NetworkError(f"Error reading provider stream: {e}") from e
