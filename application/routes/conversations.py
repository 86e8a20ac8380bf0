"""
Conversation routes.

Thin wrappers over storage: list, create, rename, change model, delete and
read the message history of conversations.
"""

import logging

from quart import Blueprint

from application.models import (
    ChangeModelRequest,
    ConversationListResponse,
    CreateConversationRequest,
    MessageListResponse,
    RenameConversationRequest,
)
from application.routes.common.response import APIResponse
from application.routes.common.validation import validate_json
from application.services.service_factory import get_service_factory
from common.exception import ConversationNotFoundError, ModelConfigNotFoundError

logger = logging.getLogger(__name__)

conversations_bp = Blueprint("conversations", __name__)


async def _require_model_config(model_config_id: str) -> None:
    factory = get_service_factory()
    if await factory.model_config_repository.get_model_config(model_config_id) is None:
        raise ModelConfigNotFoundError(model_config_id)


@conversations_bp.route("", methods=["GET"])
async def list_conversations():
    """List conversations, most recently updated first."""
    repository = get_service_factory().conversation_repository
    conversations = await repository.list_conversations()
    return APIResponse.success(
        ConversationListResponse(
            conversations=[c.model_dump(mode="json") for c in conversations]
        )
    )


@conversations_bp.route("", methods=["POST"])
@validate_json(CreateConversationRequest)
async def create_conversation(data: CreateConversationRequest):
    """Create a conversation using the given or the first configured model."""
    factory = get_service_factory()
    model_config_id = data.model_config_id
    if model_config_id is None:
        configs = await factory.model_config_repository.list_model_configs()
        if not configs:
            return APIResponse.error(
                "No model configuration available", 400, error_code="NO_MODEL_CONFIG"
            )
        model_config_id = configs[0].id
    else:
        await _require_model_config(model_config_id)

    conversation = await factory.conversation_repository.create_conversation(
        model_config_id, title=data.title
    )
    return APIResponse.success(conversation.model_dump(mode="json"), 201)


@conversations_bp.route("/<conversation_id>", methods=["GET"])
async def get_conversation(conversation_id: str):
    conversation = await get_service_factory().conversation_repository.get_conversation(
        conversation_id
    )
    if conversation is None:
        raise ConversationNotFoundError(conversation_id)
    return APIResponse.success(conversation.model_dump(mode="json"))


@conversations_bp.route("/<conversation_id>", methods=["PATCH"])
@validate_json(RenameConversationRequest)
async def rename_conversation(conversation_id: str, data: RenameConversationRequest):
    repository = get_service_factory().conversation_repository
    if not await repository.rename_conversation(conversation_id, data.title):
        raise ConversationNotFoundError(conversation_id)
    conversation = await repository.get_conversation(conversation_id)
    return APIResponse.success(conversation.model_dump(mode="json"))


@conversations_bp.route("/<conversation_id>/model", methods=["PUT"])
@validate_json(ChangeModelRequest)
async def change_model(conversation_id: str, data: ChangeModelRequest):
    """Switch the model config used by future generations of a conversation."""
    await _require_model_config(data.model_config_id)
    repository = get_service_factory().conversation_repository
    if not await repository.update_conversation_model(
        conversation_id, data.model_config_id
    ):
        raise ConversationNotFoundError(conversation_id)
    conversation = await repository.get_conversation(conversation_id)
    return APIResponse.success(conversation.model_dump(mode="json"))


@conversations_bp.route("/<conversation_id>", methods=["DELETE"])
async def delete_conversation(conversation_id: str):
    """Delete a conversation, stopping its generation first if one is active."""
    factory = get_service_factory()
    if factory.registry.cancel(conversation_id):
        logger.info(f"Stopped generation of deleted conversation {conversation_id}")
    if not await factory.conversation_repository.delete_conversation(conversation_id):
        raise ConversationNotFoundError(conversation_id)
    return APIResponse.success({"deleted": conversation_id})


@conversations_bp.route("/<conversation_id>/messages", methods=["GET"])
async def list_messages(conversation_id: str):
    """Return the persisted history plus the conversation's streaming status."""
    factory = get_service_factory()
    repository = factory.conversation_repository
    if await repository.get_conversation(conversation_id) is None:
        raise ConversationNotFoundError(conversation_id)

    messages = await repository.load_history(conversation_id)
    session = factory.registry.get(conversation_id)
    if session is not None and session.replaces_message_id:
        # The reply being regenerated is superseded by the streaming message
        messages = [m for m in messages if m.id != session.replaces_message_id]
    return APIResponse.success(
        MessageListResponse(
            conversation_id=conversation_id,
            messages=[m.model_dump(mode="json") for m in messages],
            streaming=session is not None,
            streaming_message_id=session.message_id if session else None,
        )
    )
