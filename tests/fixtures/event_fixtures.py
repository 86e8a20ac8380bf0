"""
Test helpers for observing the event bus.
"""

import asyncio
from typing import List, Optional

from application.services.streaming.event_bus import Subscription
from application.services.streaming.events import StreamEvent, StreamEventType


async def collect_until(
    subscription: Subscription,
    event_type: StreamEventType = StreamEventType.FINISHED,
    message_id: Optional[str] = None,
    timeout: float = 2.0,
) -> List[StreamEvent]:
    """
    Drain events until one of ``event_type`` (optionally for ``message_id``) arrives.

    Returns:
        Every event received, the matching one last

    Raises:
        AssertionError: nothing arrived within ``timeout``
    """
    events: List[StreamEvent] = []
    while True:
        event = await subscription.get(timeout=timeout)
        assert event is not None, (
            f"Timed out waiting for {event_type.value}; received {events!r}"
        )
        events.append(event)
        if event.event_type == event_type and (
            message_id is None or event.message_id == message_id
        ):
            return events


def drain(subscription: Subscription) -> List[StreamEvent]:
    """Everything already queued on ``subscription``."""
    events = []
    while True:
        event = subscription.get_nowait()
        if event is None:
            return events
        events.append(event)


def event_types(events: List[StreamEvent]) -> List[str]:
    return [e.event_type.value for e in events]


def deltas(events: List[StreamEvent]) -> List[str]:
    return [e.data["delta"] for e in events if e.event_type == StreamEventType.CHUNK]


async def wait_for_condition(predicate, timeout: float = 2.0, message: str = ""):
    """Poll ``predicate`` until it holds; fail after ``timeout`` seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        assert loop.time() < deadline, message or "Condition not met in time"
        await asyncio.sleep(0.005)
