"""
Conversation Repository for data access operations.

Provides the storage interface consumed by the stream dispatcher
(``load_history``, ``append_message``, ``touch_conversation``) together with the
conversation and message CRUD used by the HTTP routes.
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import aiosqlite

from application.entity.conversation import Conversation, utc_now
from application.entity.message import Message, MessageRole
from application.repositories.database import Database

logger = logging.getLogger(__name__)


def _to_text(value: datetime) -> str:
    return value.isoformat(timespec="microseconds")


def _from_text(value: str) -> datetime:
    return datetime.fromisoformat(value)


class ConversationRepository:
    """
    Repository for conversations and their messages.

    Encapsulates SQL and row mapping; callers only see entities.
    """

    _CONVERSATION_COLUMNS = "id, title, created_at, last_updated_at, model_config_id"
    _MESSAGE_COLUMNS = "id, conversation_id, role, content, timestamp, metadata"

    def __init__(self, database: Database):
        """
        Initialize conversation repository.

        Args:
            database: Database providing aiosqlite connections
        """
        self.database = database

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    async def create_conversation(
        self, model_config_id: str, title: Optional[str] = None
    ) -> Conversation:
        """
        Create a new conversation with the default title unless one is given.

        Args:
            model_config_id: Model config to use for generations
            title: Optional initial title

        Returns:
            The created Conversation
        """
        conversation = Conversation(model_config_id=model_config_id)
        if title and title.strip():
            conversation.title = title.strip()

        async with self.database.connection() as conn:
            await conn.execute(
                f"INSERT INTO conversations ({self._CONVERSATION_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?)",
                (
                    conversation.id,
                    conversation.title,
                    _to_text(conversation.created_at),
                    _to_text(conversation.last_updated_at),
                    conversation.model_config_id,
                ),
            )
            await conn.commit()

        logger.info(f"Created conversation {conversation.id}")
        return conversation

    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        """Return the conversation or None if it does not exist."""
        async with self.database.connection() as conn:
            cur = await conn.execute(
                f"SELECT {self._CONVERSATION_COLUMNS} FROM conversations WHERE id = ?",
                (conversation_id,),
            )
            row = await cur.fetchone()
        return self._row_to_conversation(row) if row else None

    async def list_conversations(self) -> List[Conversation]:
        """List conversations, most recently updated first."""
        async with self.database.connection() as conn:
            cur = await conn.execute(
                f"SELECT {self._CONVERSATION_COLUMNS} FROM conversations "
                "ORDER BY last_updated_at DESC"
            )
            rows = await cur.fetchall()
        return [self._row_to_conversation(r) for r in rows]

    async def rename_conversation(self, conversation_id: str, title: str) -> bool:
        """Set a new title. Returns True if the conversation exists."""
        return await self._update_conversation(
            conversation_id,
            "title = ?, last_updated_at = ?",
            (title, _to_text(utc_now())),
        )

    async def update_conversation_model(
        self, conversation_id: str, model_config_id: str
    ) -> bool:
        """Switch the model config used for future generations."""
        return await self._update_conversation(
            conversation_id,
            "model_config_id = ?, last_updated_at = ?",
            (model_config_id, _to_text(utc_now())),
        )

    async def touch_conversation(
        self, conversation_id: str, timestamp: Optional[datetime] = None
    ) -> bool:
        """Update the conversation's last-updated timestamp."""
        return await self._update_conversation(
            conversation_id,
            "last_updated_at = ?",
            (_to_text(timestamp or utc_now()),),
        )

    async def delete_conversation(self, conversation_id: str) -> bool:
        """Delete a conversation and (by cascade) its messages."""
        async with self.database.connection() as conn:
            cur = await conn.execute(
                "DELETE FROM conversations WHERE id = ?", (conversation_id,)
            )
            await conn.commit()
            deleted = cur.rowcount > 0
        if deleted:
            logger.warning(f"Deleted conversation {conversation_id}")
        return deleted

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def load_history(self, conversation_id: str) -> List[Message]:
        """
        Load all messages of a conversation in timestamp order.

        Insertion order breaks ties between equal timestamps.
        """
        async with self.database.connection() as conn:
            cur = await conn.execute(
                f"SELECT {self._MESSAGE_COLUMNS} FROM messages "
                "WHERE conversation_id = ? ORDER BY timestamp ASC, rowid ASC",
                (conversation_id,),
            )
            rows = await cur.fetchall()
        return [self._row_to_message(r) for r in rows]

    async def get_message(self, message_id: str) -> Optional[Message]:
        async with self.database.connection() as conn:
            cur = await conn.execute(
                f"SELECT {self._MESSAGE_COLUMNS} FROM messages WHERE id = ?",
                (message_id,),
            )
            row = await cur.fetchone()
        return self._row_to_message(row) if row else None

    async def append_message(
        self, message: Message, replaces: Optional[str] = None
    ) -> Message:
        """
        Persist a new message.

        When ``replaces`` names an existing message, it is deleted in the same
        transaction.
        """
        async with self.database.connection() as conn:
            if replaces is not None:
                await conn.execute("DELETE FROM messages WHERE id = ?", (replaces,))
            await conn.execute(
                f"INSERT INTO messages ({self._MESSAGE_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    message.id,
                    message.conversation_id,
                    message.role.value,
                    message.content,
                    _to_text(message.timestamp),
                    (
                        json.dumps(message.metadata)
                        if message.metadata is not None
                        else None
                    ),
                ),
            )
            await conn.commit()
        logger.debug(
            f"Saved {message.role.value} message {message.id} "
            f"for conversation {message.conversation_id}"
            + (f" replacing {replaces}" if replaces else "")
        )
        return message

    async def update_message_metadata(
        self, message_id: str, metadata: Dict[str, Any]
    ) -> bool:
        """Merge ``metadata`` into the stored metadata of a message."""
        message = await self.get_message(message_id)
        if message is None:
            return False
        merged = {**(message.metadata or {}), **metadata}
        async with self.database.connection() as conn:
            await conn.execute(
                "UPDATE messages SET metadata = ? WHERE id = ?",
                (json.dumps(merged), message_id),
            )
            await conn.commit()
        return True

    async def delete_message(self, message_id: str) -> bool:
        async with self.database.connection() as conn:
            cur = await conn.execute("DELETE FROM messages WHERE id = ?", (message_id,))
            await conn.commit()
            return cur.rowcount > 0

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _update_conversation(
        self, conversation_id: str, assignments: str, params: tuple
    ) -> bool:
        async with self.database.connection() as conn:
            cur = await conn.execute(
                f"UPDATE conversations SET {assignments} WHERE id = ?",
                (*params, conversation_id),
            )
            await conn.commit()
            return cur.rowcount > 0

    @staticmethod
    def _row_to_conversation(row: aiosqlite.Row) -> Conversation:
        return Conversation(
            id=row["id"],
            title=row["title"],
            created_at=_from_text(row["created_at"]),
            last_updated_at=_from_text(row["last_updated_at"]),
            model_config_id=row["model_config_id"],
        )

    @staticmethod
    def _row_to_message(row: aiosqlite.Row) -> Message:
        raw_metadata = row["metadata"]
        return Message(
            id=row["id"],
            conversation_id=row["conversation_id"],
            role=MessageRole(row["role"]),
            content=row["content"],
            timestamp=_from_text(row["timestamp"]),
            metadata=json.loads(raw_metadata) if raw_metadata else None,
        )
