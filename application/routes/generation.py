"""
Generation command routes.

``send`` and ``regenerate`` answer 202 with an acknowledgement carrying the id
of the assistant message being generated; progress is delivered through the
event stream. Rejected commands surface as 404/409 via the error handlers.
"""

import logging

from quart import Blueprint
from quart_rate_limiter import rate_limit

from application.models import SendMessageRequest
from application.routes.common.rate_limiting import (
    COMMAND_RATE_LIMIT,
    COMMAND_RATE_PERIOD,
    default_rate_limit_key,
)
from application.routes.common.response import APIResponse
from application.routes.common.validation import validate_json
from application.services.service_factory import get_service_factory

logger = logging.getLogger(__name__)

generation_bp = Blueprint("generation", __name__)


@generation_bp.route("/conversations/<conversation_id>/messages", methods=["POST"])
@rate_limit(
    COMMAND_RATE_LIMIT, COMMAND_RATE_PERIOD, key_function=default_rate_limit_key
)
@validate_json(SendMessageRequest)
async def send_message(conversation_id: str, data: SendMessageRequest):
    """Send a user turn and start streaming the assistant reply."""
    ack = await get_service_factory().dispatcher.send(conversation_id, data.content)
    return APIResponse.success(ack, 202)


@generation_bp.route("/conversations/<conversation_id>/regenerate", methods=["POST"])
@rate_limit(
    COMMAND_RATE_LIMIT, COMMAND_RATE_PERIOD, key_function=default_rate_limit_key
)
async def regenerate(conversation_id: str):
    """Replace the last assistant reply with a new generation."""
    ack = await get_service_factory().dispatcher.regenerate(conversation_id)
    return APIResponse.success(ack, 202)


@generation_bp.route("/messages/<message_id>/stop", methods=["POST"])
async def stop_generation(message_id: str):
    """Stop a generation; stopping an inactive message is acknowledged as a no-op."""
    ack = get_service_factory().dispatcher.stop(message_id)
    return APIResponse.success(ack)
