"""
Event stream route.

Exposes the event bus as Server-Sent Events. Every event published while the
client is connected is written exactly once, in publish order; comment
heartbeats keep idle connections open.
"""

import logging
from typing import AsyncGenerator

from quart import Blueprint, Response

from application.services.service_factory import get_service_factory
from application.services.streaming.event_bus import Subscription
from common.config.config import SSE_HEARTBEAT_INTERVAL

logger = logging.getLogger(__name__)

events_bp = Blueprint("events", __name__)

HEARTBEAT_COMMENT = ": heartbeat\n\n"


def build_stream_response(event_gen: AsyncGenerator[str, None]) -> Response:
    """Build SSE response with proper headers."""
    return Response(
        event_gen,
        mimetype="text/event-stream",
        headers={
            "Cache-Control": "no-cache, no-transform",
            "X-Accel-Buffering": "no",
            "Connection": "keep-alive",
            "Content-Encoding": "none",
        },
    )


async def stream_events(
    subscription: Subscription, heartbeat_interval: float = SSE_HEARTBEAT_INTERVAL
) -> AsyncGenerator[str, None]:
    """Yield SSE frames for a subscription until the client disconnects."""
    try:
        yield ": connected\n\n"
        while not subscription.closed:
            event = await subscription.get(timeout=heartbeat_interval)
            if event is None:
                if subscription.closed:
                    break
                yield HEARTBEAT_COMMENT
                continue
            yield event.to_sse()
    finally:
        subscription.close()
        logger.info("Event stream client disconnected")


@events_bp.route("/events", methods=["GET"])
async def events():
    """Subscribe to stream lifecycle events."""
    subscription = get_service_factory().event_bus.subscribe()
    logger.info("Event stream client connected")
    return build_stream_response(stream_events(subscription))
