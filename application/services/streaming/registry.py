"""
Stream session registry.

Single owner of per-conversation generation state. ``begin`` is the only place
where the at-most-one-active-generation rule is enforced; it checks and inserts
under one registry-wide lock. The lock only guards map operations and is never
held across an await or while publishing events.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from application.entity.conversation import utc_now
from application.services.streaming.cancellation import CancellationToken
from common.exception import AlreadyStreamingError

logger = logging.getLogger(__name__)


class StreamState(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    STREAMING = "streaming"
    COMPLETING = "completing"
    CANCELLING = "cancelling"
    FAILING = "failing"


@dataclass(eq=False)
class StreamSession:
    """Ephemeral state of one in-progress generation."""

    conversation_id: str
    message_id: str
    token: CancellationToken = field(default_factory=CancellationToken)
    buffer: List[str] = field(default_factory=list)
    state: StreamState = StreamState.REQUESTING
    started_at: datetime = field(default_factory=utc_now)
    task: Optional[asyncio.Task] = None
    started_emitted: bool = False
    # Assistant message a regenerate replaces once the new reply is persisted
    replaces_message_id: Optional[str] = None

    @property
    def content(self) -> str:
        return "".join(self.buffer)

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled

    def append(self, delta: str) -> None:
        self.buffer.append(delta)


class StreamSessionRegistry:
    """Thread-safe map of conversation id to its active ``StreamSession``."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sessions: Dict[str, StreamSession] = {}

    def begin(self, conversation_id: str, message_id: str) -> StreamSession:
        """Atomically register a new session for ``conversation_id``.

        Raises:
            AlreadyStreamingError: a session already exists for the conversation
        """
        with self._lock:
            if conversation_id in self._sessions:
                raise AlreadyStreamingError(conversation_id)
            session = StreamSession(
                conversation_id=conversation_id, message_id=message_id
            )
            self._sessions[conversation_id] = session
        logger.info(
            f"Stream session begun: conversation={conversation_id} message={message_id}"
        )
        return session

    def cancel(self, conversation_id: str) -> bool:
        """Signal the session's token. Returns False if nothing was signalled."""
        with self._lock:
            session = self._sessions.get(conversation_id)
        if session is None:
            return False
        return session.token.cancel()

    def cancel_message(self, message_id: str) -> bool:
        session = self.find_by_message(message_id)
        if session is None:
            return False
        return session.token.cancel()

    def end(
        self, conversation_id: str, session: Optional[StreamSession] = None
    ) -> bool:
        """Remove the conversation's session (idempotent).

        When ``session`` is given, only that exact session is removed, so a
        stale cleanup can never end a newer generation.
        """
        with self._lock:
            current = self._sessions.get(conversation_id)
            if current is None or (session is not None and current is not session):
                return False
            del self._sessions[conversation_id]
        logger.info(
            f"Stream session ended: conversation={conversation_id} "
            f"message={current.message_id}"
        )
        return True

    def is_active(self, conversation_id: str) -> bool:
        with self._lock:
            return conversation_id in self._sessions

    def get(self, conversation_id: str) -> Optional[StreamSession]:
        with self._lock:
            return self._sessions.get(conversation_id)

    def find_by_message(self, message_id: str) -> Optional[StreamSession]:
        with self._lock:
            for session in self._sessions.values():
                if session.message_id == message_id:
                    return session
        return None

    def active_sessions(self) -> List[StreamSession]:
        with self._lock:
            return list(self._sessions.values())
