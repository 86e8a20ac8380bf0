"""
Message entity.

Messages are immutable once persisted; only ``metadata`` may be attached later
(for example to mark a generation that was stopped mid-stream).
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from application.entity.conversation import utc_now


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


STOPPED_METADATA_KEY = "stopped"


class Message(BaseModel):
    """A single conversation turn."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Message ID")
    conversation_id: str = Field(..., description="Owning conversation ID")
    role: MessageRole = Field(..., description="Author role")
    content: str = Field(default="", description="Text content")
    timestamp: datetime = Field(default_factory=utc_now, description="UTC timestamp")
    metadata: Optional[Dict[str, Any]] = Field(
        default=None, description="Optional metadata, e.g. {'stopped': true}"
    )

    @property
    def is_stopped(self) -> bool:
        return bool(self.metadata and self.metadata.get(STOPPED_METADATA_KEY))

    def to_provider_message(self) -> Dict[str, str]:
        """Wire shape used by OpenAI-compatible chat completion requests."""
        return {"role": self.role.value, "content": self.content}
