"""Tests for the SSE event stream route."""

import json

import pytest

from application.routes import events as events_module
from application.routes.events import (
    HEARTBEAT_COMMENT,
    build_stream_response,
    stream_events,
)
from application.services.streaming.events import StreamEvent


def parse_frame(frame: str) -> dict:
    fields = dict(line.split(": ", 1) for line in frame.strip().split("\n"))
    return {"event": fields["event"], "data": json.loads(fields["data"])}


class TestStreamEvents:
    """Tests for the SSE frame generator."""

    @pytest.mark.asyncio
    async def test_frames_follow_publish_order(self, event_bus):
        """Test the connected comment followed by one frame per event."""
        subscription = event_bus.subscribe()
        gen = stream_events(subscription, heartbeat_interval=1.0)

        assert await gen.__anext__() == ": connected\n\n"

        event_bus.publish(StreamEvent.started("c1", "m1"))
        event_bus.publish(StreamEvent.chunk("c1", "m1", "Hi"))
        started = parse_frame(await gen.__anext__())
        chunk = parse_frame(await gen.__anext__())

        assert started["event"] == "stream-started"
        assert chunk["event"] == "stream-chunk"
        assert chunk["data"]["delta"] == "Hi"
        assert chunk["data"]["message_id"] == "m1"
        await gen.aclose()

    @pytest.mark.asyncio
    async def test_heartbeat_when_idle(self, event_bus):
        """Test that an idle stream emits comment heartbeats."""
        gen = stream_events(event_bus.subscribe(), heartbeat_interval=0.01)
        await gen.__anext__()

        assert await gen.__anext__() == HEARTBEAT_COMMENT
        await gen.aclose()

    @pytest.mark.asyncio
    async def test_disconnect_unsubscribes(self, event_bus):
        """Test that closing the generator detaches the subscriber."""
        subscription = event_bus.subscribe()
        gen = stream_events(subscription, heartbeat_interval=1.0)
        await gen.__anext__()
        assert event_bus.subscriber_count == 1

        await gen.aclose()

        assert subscription.closed
        assert event_bus.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_generator_ends_when_subscription_closes(self, event_bus):
        """Test that a closed subscription ends the stream."""
        subscription = event_bus.subscribe()
        gen = stream_events(subscription, heartbeat_interval=1.0)
        await gen.__anext__()

        subscription.close()

        with pytest.raises(StopAsyncIteration):
            await gen.__anext__()


class TestEventsRoute:
    """Tests for GET /events."""

    def test_stream_response_headers(self):
        """Test the SSE mimetype and anti-buffering headers."""

        async def empty():
            yield ""

        response = build_stream_response(empty())

        assert response.mimetype == "text/event-stream"
        assert response.headers["Cache-Control"] == "no-cache, no-transform"
        assert response.headers["X-Accel-Buffering"] == "no"

    @pytest.mark.asyncio
    async def test_route_subscribes_to_bus(self, app, event_bus):
        """Test that the handler opens a subscription for the client."""
        async with app.test_request_context("/api/v1/events"):
            response = await events_module.events()

        assert response.mimetype == "text/event-stream"
        assert event_bus.subscriber_count == 1
        async with response.response:
            pass
