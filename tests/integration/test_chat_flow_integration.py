"""
Integration test for a complete chat exchange over the HTTP API.

Creates a conversation, sends a turn, follows the event stream to completion
and reads the persisted history and generated title back.
"""

import pytest

from application.services.streaming.events import StreamEventType
from tests.fixtures.event_fixtures import collect_until, deltas, wait_for_condition
from tests.fixtures.provider_fixtures import TEST_API_KEY


class TestChatFlow:
    """End-to-end flow through routes, dispatcher, storage and titling."""

    @pytest.mark.asyncio
    async def test_first_exchange(
        self, client, model_config, provider_backend, subscription
    ):
        """Test send, streamed reply, persistence and automatic titling."""
        provider_backend.add_stream(["Paris ", "is the capital."])
        provider_backend.add_completion("Capital of France")

        created = await client.post("/api/v1/conversations", json={})
        conversation_id = (await created.get_json())["id"]

        send = await client.post(
            f"/api/v1/conversations/{conversation_id}/messages",
            json={"content": "What is the capital of France?"},
        )
        ack = await send.get_json()
        events = await collect_until(subscription, message_id=ack["message_id"])

        assert deltas(events) == ["Paris ", "is the capital."]
        assert all(e.conversation_id == conversation_id for e in events)

        history = await (
            await client.get(f"/api/v1/conversations/{conversation_id}/messages")
        ).get_json()
        assert history["streaming"] is False
        assert [(m["role"], m["content"]) for m in history["messages"]] == [
            ("user", "What is the capital of France?"),
            ("assistant", "Paris is the capital."),
        ]
        assert history["messages"][1]["id"] == ack["message_id"]

        await collect_until(
            subscription, event_type=StreamEventType.CONVERSATION_UPDATED
        )
        conversation = await (
            await client.get(f"/api/v1/conversations/{conversation_id}")
        ).get_json()
        assert conversation["title"] == "Capital of France"

        stream_request = provider_backend.stream_requests[0]
        assert stream_request["stream"] is True
        assert stream_request["messages"][-1] == {
            "role": "user",
            "content": "What is the capital of France?",
        }
        assert provider_backend.request_headers[0]["authorization"] == (
            f"Bearer {TEST_API_KEY}"
        )

    @pytest.mark.asyncio
    async def test_stop_then_follow_up(
        self, client, conversation, provider_backend, subscription
    ):
        """Test that a stopped reply stays in history and the next send works."""
        body = provider_backend.add_controlled_stream()
        provider_backend.add_stream(["second answer"])
        url = f"/api/v1/conversations/{conversation.id}/messages"

        first = await (await client.post(url, json={"content": "one"})).get_json()
        body.push_delta("partial")
        await collect_until(
            subscription,
            event_type=StreamEventType.CHUNK,
            message_id=first["message_id"],
        )
        await client.post(f"/api/v1/messages/{first['message_id']}/stop")
        await collect_until(subscription, message_id=first["message_id"])

        second = await (await client.post(url, json={"content": "two"})).get_json()
        await collect_until(subscription, message_id=second["message_id"])

        history = await (await client.get(url)).get_json()
        assert [m["content"] for m in history["messages"]] == [
            "one",
            "partial",
            "two",
            "second answer",
        ]
        assert history["messages"][1]["metadata"] == {"stopped": True}
        await wait_for_condition(lambda: len(provider_backend.stream_requests) == 2)
        follow_up = provider_backend.stream_requests[1]["messages"]
        assert {"role": "assistant", "content": "partial"} in follow_up
