"""
Response models for the chat API.

Command acknowledgements are returned by the stream dispatcher and serialized
as-is by the HTTP layer.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str = Field(..., description="Error message")
    error_code: str = Field(default="INTERNAL_ERROR", description="Stable error code")
    details: Optional[Dict[str, Any]] = Field(
        default=None, description="Additional error details"
    )


class SendAck(BaseModel):
    """Acknowledgement of an accepted send command."""

    conversation_id: str = Field(..., description="Conversation the turn belongs to")
    user_message_id: str = Field(..., description="ID of the persisted user message")
    message_id: str = Field(
        ..., description="ID the assistant message is being generated under"
    )


class RegenerateAck(BaseModel):
    """Acknowledgement of an accepted regenerate command."""

    conversation_id: str = Field(..., description="Conversation being regenerated")
    message_id: str = Field(..., description="ID of the replacement assistant message")
    replaced_message_id: str = Field(
        ..., description="ID of the assistant message that was removed"
    )


class StopAck(BaseModel):
    """Acknowledgement of a stop command; ``stopped`` is False when it was a no-op."""

    message_id: str = Field(..., description="Message the stop was addressed to")
    stopped: bool = Field(..., description="Whether this call signalled cancellation")


class ConversationListResponse(BaseModel):
    """Response model for listing conversations."""

    conversations: List[Dict[str, Any]] = Field(
        ..., description="Conversations, most recently updated first"
    )


class MessageListResponse(BaseModel):
    """Response model for a conversation's message history."""

    conversation_id: str
    messages: List[Dict[str, Any]]
    streaming: bool = Field(
        default=False, description="Whether a generation is currently active"
    )
    streaming_message_id: Optional[str] = None
