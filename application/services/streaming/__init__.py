"""Streaming generation pipeline primitives.

Import ``StreamDispatcher`` from ``application.services.streaming.dispatcher``.
"""

from application.services.streaming.cancellation import (
    CancellationToken,
    OperationCancelled,
)
from application.services.streaming.event_bus import EventBus, Subscription
from application.services.streaming.events import StreamEvent, StreamEventType
from application.services.streaming.registry import (
    StreamSession,
    StreamSessionRegistry,
    StreamState,
)

__all__ = [
    "CancellationToken",
    "EventBus",
    "OperationCancelled",
    "StreamEvent",
    "StreamEventType",
    "StreamSession",
    "StreamSessionRegistry",
    "StreamState",
    "Subscription",
]
