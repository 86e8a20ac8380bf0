"""
Conversation entity.

A conversation is owned by storage; the state store only caches it read-only.
"""

import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field

from common.config.config import DEFAULT_CONVERSATION_TITLE


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Conversation(BaseModel):
    """Conversation metadata (messages are stored separately)."""

    model_config = ConfigDict(protected_namespaces=())

    id: str = Field(
        default_factory=lambda: str(uuid.uuid4()), description="Conversation ID"
    )
    title: str = Field(
        default=DEFAULT_CONVERSATION_TITLE, description="Display title"
    )
    created_at: datetime = Field(
        default_factory=utc_now, description="Creation timestamp (UTC)"
    )
    last_updated_at: datetime = Field(
        default_factory=utc_now,
        description="Timestamp of the last appended message or metadata change",
    )
    model_config_id: str = Field(
        ..., description="ID of the model configuration used for generations"
    )

    def has_default_title(self) -> bool:
        return self.title == DEFAULT_CONVERSATION_TITLE
