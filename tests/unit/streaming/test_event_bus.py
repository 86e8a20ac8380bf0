"""Tests for the event bus and stream events."""

import asyncio
import json

import pytest

from application.services.streaming.event_bus import EventBus
from application.services.streaming.events import StreamEvent, StreamEventType


class TestEventBus:
    """Tests for fan-out delivery."""

    @pytest.mark.asyncio
    async def test_every_subscriber_sees_publish_order(self):
        """Test FIFO delivery of the same sequence to all subscribers."""
        bus = EventBus()
        first, second = bus.subscribe(), bus.subscribe()
        events = [
            StreamEvent.started("c", "m"),
            StreamEvent.chunk("c", "m", "a"),
            StreamEvent.chunk("c", "m", "b"),
            StreamEvent.finished("c", "m"),
        ]

        for event in events:
            bus.publish(event)

        for subscription in (first, second):
            received = [await subscription.get(timeout=1.0) for _ in events]
            assert received == events
            assert subscription.get_nowait() is None

    def test_publish_without_subscribers(self):
        """Test that publishing to nobody is harmless."""
        EventBus().publish(StreamEvent.finished("c", "m"))

    @pytest.mark.asyncio
    async def test_late_subscriber_misses_earlier_events(self):
        """Test that only events published while subscribed are delivered."""
        bus = EventBus()
        bus.publish(StreamEvent.started("c", "m"))
        subscription = bus.subscribe()
        bus.publish(StreamEvent.finished("c", "m"))

        event = await subscription.get(timeout=1.0)

        assert event.event_type == StreamEventType.FINISHED
        assert subscription.pending() == 0

    @pytest.mark.asyncio
    async def test_close_stops_delivery_and_iteration(self):
        """Test that a closed subscription drains then ends."""
        bus = EventBus()
        subscription = bus.subscribe()
        bus.publish(StreamEvent.chunk("c", "m", "x"))

        subscription.close()
        bus.publish(StreamEvent.chunk("c", "m", "y"))

        received = [event async for event in subscription]
        assert [e.data["delta"] for e in received] == ["x"]
        assert bus.subscriber_count == 0
        assert subscription.closed

    @pytest.mark.asyncio
    async def test_get_times_out(self):
        """Test that get returns None when nothing arrives in time."""
        subscription = EventBus().subscribe()

        assert await subscription.get(timeout=0.01) is None

    @pytest.mark.asyncio
    async def test_close_wakes_pending_get(self):
        """Test that closing releases a blocked consumer."""
        subscription = EventBus().subscribe()
        getter = asyncio.create_task(subscription.get())
        await asyncio.sleep(0)

        subscription.close()

        assert await asyncio.wait_for(getter, timeout=1.0) is None

    def test_context_manager_unsubscribes(self):
        """Test the with-statement form."""
        bus = EventBus()
        with bus.subscribe():
            assert bus.subscriber_count == 1
        assert bus.subscriber_count == 0


class TestStreamEvent:
    """Tests for event construction and SSE formatting."""

    def test_payloads(self):
        """Test the payload of each lifecycle event."""
        assert StreamEvent.started("c", "m").data == {
            "conversation_id": "c",
            "message_id": "m",
        }
        assert StreamEvent.chunk("c", "m", "hi").data["delta"] == "hi"
        error = StreamEvent.error("c", "m", "auth", "bad key")
        assert error.data["kind"] == "auth"
        assert error.data["message"] == "bad key"
        updated = StreamEvent.conversation_updated("c")
        assert updated.conversation_id == "c"
        assert updated.message_id is None

    def test_to_sse(self):
        """Test SSE framing of an event."""
        event = StreamEvent.chunk("c", "m", "hi")

        sse = event.to_sse()

        lines = sse.rstrip("\n").split("\n")
        assert sse.endswith("\n\n")
        assert lines[0] == f"id: {event.event_id}"
        assert lines[1] == "event: stream-chunk"
        data = json.loads(lines[2][len("data: "):])
        assert data["delta"] == "hi"
        assert data["message_id"] == "m"
        assert "timestamp" in data

    def test_event_type_is_coerced(self):
        """Test that a raw type string is accepted."""
        event = StreamEvent("stream-finished", {"message_id": "m"})

        assert event.event_type is StreamEventType.FINISHED
