"""
Request models for the chat API.

Defines the request DTOs validated by the HTTP endpoints.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CreateConversationRequest(BaseModel):
    """Request model for creating a new conversation."""

    model_config = ConfigDict(protected_namespaces=())

    title: Optional[str] = Field(
        default=None, description="Display title; defaults to the placeholder title"
    )
    model_config_id: Optional[str] = Field(
        default=None,
        description="Model configuration to use; defaults to the first configured one",
    )


class RenameConversationRequest(BaseModel):
    """Request model for renaming a conversation."""

    title: str = Field(..., description="New title")

    @field_validator("title")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("title must not be empty")
        return value.strip()


class ChangeModelRequest(BaseModel):
    """Request model for switching a conversation to another model config."""

    model_config = ConfigDict(protected_namespaces=())

    model_config_id: str = Field(..., description="Target model configuration ID")


class SendMessageRequest(BaseModel):
    """Request model for sending a user turn."""

    content: str = Field(..., description="The message content")

    @field_validator("content")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("content must not be empty")
        return value


class AddModelConfigRequest(BaseModel):
    """Request model for registering an OpenAI-compatible endpoint."""

    name: str = Field(..., description="User-facing name")
    api_url: str = Field(..., description="Base URL of the endpoint")
    api_key_ref: Optional[str] = Field(
        default=None, description="Credential reference, e.g. 'env:OPENAI_API_KEY'"
    )
    provider_options: Dict[str, Any] = Field(
        default_factory=dict, description="Options; 'model' names the remote model"
    )

    @field_validator("name", "api_url")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value.strip()


class UpdateModelConfigRequest(AddModelConfigRequest):
    """Request model for replacing the fields of an existing model config."""
