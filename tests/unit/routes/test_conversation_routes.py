"""
Unit tests for conversation and model config routes.

Uses the blueprint test app from conftest with real storage.
"""

import pytest

from application.entity.message import MessageRole
from tests.fixtures.provider_fixtures import (
    create_test_message,
    create_test_model_config,
)


class TestListAndCreate:
    """Tests for GET/POST /conversations."""

    @pytest.mark.asyncio
    async def test_create_with_first_model_config(self, client, model_config):
        """Test creating a conversation without naming a model config."""
        response = await client.post("/api/v1/conversations", json={})

        assert response.status_code == 201
        data = await response.get_json()
        assert data["title"] == "New Chat"
        assert data["model_config_id"] == model_config.id

    @pytest.mark.asyncio
    async def test_create_without_any_model_config(self, client, database):
        """Test that creation fails when nothing is configured."""
        response = await client.post("/api/v1/conversations", json={})

        assert response.status_code == 400
        data = await response.get_json()
        assert data["error_code"] == "NO_MODEL_CONFIG"

    @pytest.mark.asyncio
    async def test_create_with_unknown_model_config(self, client, model_config):
        """Test that an unknown model config id is a 404."""
        response = await client.post(
            "/api/v1/conversations", json={"model_config_id": "missing"}
        )

        assert response.status_code == 404
        data = await response.get_json()
        assert data["error_code"] == "MODEL_CONFIG_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_create_requires_json_body(self, client, model_config):
        """Test the validation error for a missing body."""
        response = await client.post("/api/v1/conversations")

        assert response.status_code == 400
        assert (await response.get_json())["error_code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_list(self, client, conversation_repository, model_config):
        """Test listing conversations."""
        first = await conversation_repository.create_conversation(model_config.id)
        second = await conversation_repository.create_conversation(
            model_config.id, title="Second"
        )

        response = await client.get("/api/v1/conversations")

        assert response.status_code == 200
        data = await response.get_json()
        ids = [c["id"] for c in data["conversations"]]
        assert set(ids) == {first.id, second.id}


class TestConversationDetail:
    """Tests for GET/PATCH/DELETE /conversations/<id> and model changes."""

    @pytest.mark.asyncio
    async def test_get(self, client, conversation):
        """Test reading one conversation."""
        response = await client.get(f"/api/v1/conversations/{conversation.id}")

        assert response.status_code == 200
        assert (await response.get_json())["id"] == conversation.id

    @pytest.mark.asyncio
    async def test_get_missing(self, client, database):
        """Test the 404 error body."""
        response = await client.get("/api/v1/conversations/missing")

        assert response.status_code == 404
        data = await response.get_json()
        assert data["error_code"] == "CONVERSATION_NOT_FOUND"
        assert "missing" in data["error"]

    @pytest.mark.asyncio
    async def test_rename(self, client, conversation):
        """Test renaming with whitespace trimmed."""
        response = await client.patch(
            f"/api/v1/conversations/{conversation.id}", json={"title": "  Trip  "}
        )

        assert response.status_code == 200
        assert (await response.get_json())["title"] == "Trip"

    @pytest.mark.asyncio
    async def test_rename_rejects_blank_title(self, client, conversation):
        """Test validation of the new title."""
        response = await client.patch(
            f"/api/v1/conversations/{conversation.id}", json={"title": "   "}
        )

        assert response.status_code == 400
        data = await response.get_json()
        assert data["details"]["errors"][0]["field"] == "title"

    @pytest.mark.asyncio
    async def test_change_model(
        self, client, conversation, model_config_repository
    ):
        """Test switching a conversation to another model config."""
        other = await model_config_repository.add_model_config(
            create_test_model_config(name="Other")
        )

        response = await client.put(
            f"/api/v1/conversations/{conversation.id}/model",
            json={"model_config_id": other.id},
        )

        assert response.status_code == 200
        assert (await response.get_json())["model_config_id"] == other.id

    @pytest.mark.asyncio
    async def test_delete(self, client, conversation, conversation_repository):
        """Test deletion and the 404 that follows."""
        response = await client.delete(f"/api/v1/conversations/{conversation.id}")

        assert response.status_code == 200
        assert await conversation_repository.get_conversation(conversation.id) is None
        again = await client.delete(f"/api/v1/conversations/{conversation.id}")
        assert again.status_code == 404

    @pytest.mark.asyncio
    async def test_delete_stops_active_generation(
        self, client, conversation, registry, provider_backend, dispatcher
    ):
        """Test that deleting a streaming conversation cancels its generation."""
        provider_backend.add_controlled_stream()
        await dispatcher.send(conversation.id, "hi")
        session = registry.get(conversation.id)

        response = await client.delete(f"/api/v1/conversations/{conversation.id}")

        assert response.status_code == 200
        assert session.cancelled


class TestMessages:
    """Tests for GET /conversations/<id>/messages."""

    @pytest.mark.asyncio
    async def test_history_and_streaming_status(
        self,
        client,
        conversation,
        conversation_repository,
        provider_backend,
        dispatcher,
    ):
        """Test the persisted history plus the active message id."""
        await conversation_repository.append_message(
            create_test_message(
                conversation.id, role=MessageRole.ASSISTANT, content="earlier"
            )
        )
        body = provider_backend.add_controlled_stream()
        ack = await dispatcher.send(conversation.id, "now")

        response = await client.get(
            f"/api/v1/conversations/{conversation.id}/messages"
        )

        data = await response.get_json()
        assert response.status_code == 200
        assert [m["content"] for m in data["messages"]] == ["earlier", "now"]
        assert data["messages"][0]["role"] == "assistant"
        assert data["streaming"] is True
        assert data["streaming_message_id"] == ack.message_id
        body.end()

    @pytest.mark.asyncio
    async def test_reply_being_regenerated_is_hidden(
        self,
        client,
        conversation,
        conversation_repository,
        provider_backend,
        dispatcher,
    ):
        """Test that the reply a regenerate replaces is not listed beside it."""
        await conversation_repository.append_message(
            create_test_message(conversation.id, content="question")
        )
        await conversation_repository.append_message(
            create_test_message(
                conversation.id, role=MessageRole.ASSISTANT, content="old"
            )
        )
        body = provider_backend.add_controlled_stream()
        ack = await dispatcher.regenerate(conversation.id)

        response = await client.get(
            f"/api/v1/conversations/{conversation.id}/messages"
        )

        data = await response.get_json()
        assert [m["content"] for m in data["messages"]] == ["question"]
        assert data["streaming_message_id"] == ack.message_id
        body.end()

    @pytest.mark.asyncio
    async def test_messages_of_missing_conversation(self, client, database):
        """Test the 404 for an unknown conversation."""
        response = await client.get("/api/v1/conversations/missing/messages")

        assert response.status_code == 404


class TestModelConfigs:
    """Tests for the /model-configs endpoints."""

    @pytest.mark.asyncio
    async def test_add_and_list(self, client, database):
        """Test registering an endpoint and reading it back."""
        response = await client.post(
            "/api/v1/model-configs",
            json={
                "name": "Local LLM",
                "api_url": "http://localhost:11434/v1",
                "api_key_ref": "env:LOCAL_KEY",
                "provider_options": {"model": "llama3"},
            },
        )

        assert response.status_code == 201
        created = await response.get_json()
        assert created["provider"] == "openai_compatible"

        listed = await (await client.get("/api/v1/model-configs")).get_json()
        assert [c["id"] for c in listed["model_configs"]] == [created["id"]]
        assert listed["model_configs"][0]["provider_options"] == {"model": "llama3"}

    @pytest.mark.asyncio
    async def test_add_requires_name_and_url(self, client, database):
        """Test validation of the request body."""
        response = await client.post("/api/v1/model-configs", json={"name": "x"})

        assert response.status_code == 400
        data = await response.get_json()
        assert [e["field"] for e in data["details"]["errors"]] == ["api_url"]

    @pytest.mark.asyncio
    async def test_update(self, client, model_config):
        """Test replacing a config's fields with whitespace trimmed."""
        response = await client.put(
            f"/api/v1/model-configs/{model_config.id}",
            json={
                "name": " Renamed ",
                "api_url": "http://localhost:8080/v1",
                "api_key_ref": "env:OTHER_KEY",
                "provider_options": {"model": "other"},
            },
        )

        assert response.status_code == 200
        data = await response.get_json()
        assert data["id"] == model_config.id
        assert data["name"] == "Renamed"
        listed = await (await client.get("/api/v1/model-configs")).get_json()
        assert listed["model_configs"][0]["api_url"] == "http://localhost:8080/v1"

    @pytest.mark.asyncio
    async def test_update_rejects_blank_fields(self, client, model_config):
        """Test that blank name and url are refused."""
        response = await client.put(
            f"/api/v1/model-configs/{model_config.id}",
            json={"name": "  ", "api_url": ""},
        )

        assert response.status_code == 400
        data = await response.get_json()
        assert {e["field"] for e in data["details"]["errors"]} == {"name", "api_url"}

    @pytest.mark.asyncio
    async def test_update_unknown(self, client, database):
        """Test the 404 for an unknown config."""
        response = await client.put(
            "/api/v1/model-configs/missing",
            json={"name": "x", "api_url": "http://localhost/v1"},
        )

        assert response.status_code == 404
        assert (await response.get_json())["error_code"] == "MODEL_CONFIG_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_delete(self, client, model_config):
        """Test deletion and the 404 that follows."""
        response = await client.delete(f"/api/v1/model-configs/{model_config.id}")

        assert response.status_code == 200
        listed = await (await client.get("/api/v1/model-configs")).get_json()
        assert listed["model_configs"] == []
        again = await client.delete(f"/api/v1/model-configs/{model_config.id}")
        assert again.status_code == 404
