"""
Application models package.

Contains the request DTOs and response/acknowledgement models of the chat API.
"""

from application.models.request_models import (
    AddModelConfigRequest,
    ChangeModelRequest,
    CreateConversationRequest,
    RenameConversationRequest,
    SendMessageRequest,
    UpdateModelConfigRequest,
)
from application.models.response_models import (
    ConversationListResponse,
    ErrorResponse,
    MessageListResponse,
    RegenerateAck,
    SendAck,
    StopAck,
)

__all__ = [
    # Request models
    "AddModelConfigRequest",
    "ChangeModelRequest",
    "CreateConversationRequest",
    "RenameConversationRequest",
    "SendMessageRequest",
    "UpdateModelConfigRequest",
    # Response models
    "ConversationListResponse",
    "ErrorResponse",
    "MessageListResponse",
    "RegenerateAck",
    "SendAck",
    "StopAck",
]
