"""Stream lifecycle events and SSE formatting."""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class StreamEventType(str, Enum):
    STARTED = "stream-started"
    CHUNK = "stream-chunk"
    FINISHED = "stream-finished"
    ERROR = "stream-error"
    CONVERSATION_UPDATED = "conversation-updated"


class StreamEvent:
    """Represents a lifecycle event published on the event bus."""

    def __init__(
        self,
        event_type: StreamEventType,
        data: Dict[str, Any],
        event_id: Optional[str] = None,
    ):
        """Initialize a stream event.

        Args:
            event_type: Lifecycle event type
            data: Event payload (conversation_id, message_id, delta, kind...)
            event_id: Optional event ID for client tracking
        """
        now = datetime.now(timezone.utc)
        self.event_type = StreamEventType(event_type)
        self.data = data
        self.event_id = event_id or str(int(now.timestamp() * 1000))
        self.timestamp = now.isoformat()

    def __repr__(self) -> str:
        return f"StreamEvent({self.event_type.value}, {self.data!r})"

    @property
    def conversation_id(self) -> Optional[str]:
        return self.data.get("conversation_id")

    @property
    def message_id(self) -> Optional[str]:
        return self.data.get("message_id")

    @classmethod
    def started(cls, conversation_id: str, message_id: str) -> "StreamEvent":
        return cls(
            StreamEventType.STARTED,
            {"conversation_id": conversation_id, "message_id": message_id},
        )

    @classmethod
    def chunk(cls, conversation_id: str, message_id: str, delta: str) -> "StreamEvent":
        return cls(
            StreamEventType.CHUNK,
            {
                "conversation_id": conversation_id,
                "message_id": message_id,
                "delta": delta,
            },
        )

    @classmethod
    def finished(cls, conversation_id: str, message_id: str) -> "StreamEvent":
        return cls(
            StreamEventType.FINISHED,
            {"conversation_id": conversation_id, "message_id": message_id},
        )

    @classmethod
    def error(
        cls, conversation_id: str, message_id: str, kind: str, message: str = ""
    ) -> "StreamEvent":
        return cls(
            StreamEventType.ERROR,
            {
                "conversation_id": conversation_id,
                "message_id": message_id,
                "kind": kind,
                "message": message,
            },
        )

    @classmethod
    def conversation_updated(cls, conversation_id: str) -> "StreamEvent":
        return cls(
            StreamEventType.CONVERSATION_UPDATED, {"conversation_id": conversation_id}
        )

    def to_sse(self) -> str:
        """Convert event to SSE format.

        Returns:
            SSE-formatted string with event type, data, and optional ID
        """
        lines = [
            f"id: {self.event_id}",
            f"event: {self.event_type.value}",
        ]

        event_data = {**self.data, "timestamp": self.timestamp}
        lines.append(f"data: {json.dumps(event_data)}")

        return "\n".join(lines) + "\n\n"
