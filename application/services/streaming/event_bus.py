"""Process-wide, many-subscriber channel for stream lifecycle events."""

import asyncio
import logging
import threading
from typing import List, Optional

from application.services.streaming.events import StreamEvent

logger = logging.getLogger(__name__)


class Subscription:
    """A subscriber's private FIFO of events.

    Every event published while the subscription is open is enqueued exactly
    once. Iterating the subscription yields events until it is closed.
    """

    _CLOSED = object()

    def __init__(self, bus: "EventBus"):
        self._bus = bus
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def pending(self) -> int:
        return self._queue.qsize()

    def deliver(self, event: StreamEvent) -> None:
        if not self._closed:
            self._queue.put_nowait(event)

    async def get(self, timeout: Optional[float] = None) -> Optional[StreamEvent]:
        """Next event; None once closed or when ``timeout`` expires."""
        if self._closed and self._queue.empty():
            return None
        try:
            item = await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None
        return None if item is self._CLOSED else item

    def get_nowait(self) -> Optional[StreamEvent]:
        try:
            item = self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None
        return None if item is self._CLOSED else item

    def close(self) -> None:
        """Detach from the bus; pending events can still be drained."""
        if self._closed:
            return
        self._bus.unsubscribe(self)
        self._closed = True
        self._queue.put_nowait(self._CLOSED)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> StreamEvent:
        item = await self._queue.get()
        if item is self._CLOSED:
            raise StopAsyncIteration
        return item


class EventBus:
    """Fan-out of ``StreamEvent`` instances to every open subscription.

    ``publish`` never blocks and never awaits: each subscriber has an unbounded
    queue, so the per-message publish order is the order every subscriber
    observes. Callers must not publish while holding the session registry lock.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscriptions: List[Subscription] = []

    def subscribe(self) -> Subscription:
        subscription = Subscription(self)
        with self._lock:
            self._subscriptions.append(subscription)
        logger.debug(f"Event bus subscriber added ({self.subscriber_count} total)")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def publish(self, event: StreamEvent) -> None:
        with self._lock:
            subscriptions = list(self._subscriptions)
        logger.debug(
            f"Publishing {event.event_type.value} to {len(subscriptions)} subscribers"
        )
        for subscription in subscriptions:
            subscription.deliver(event)
