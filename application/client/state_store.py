"""
Conversation state store (consumer side of the event bus).

Keeps, per conversation, the message list shown to the user, the streaming
flag with the id of the message being generated, and an authoritative
partial-content buffer that survives navigation. Optimistic placeholders are
tagged locally and swapped for the authoritative ids carried by the command
acknowledgement and the ``stream-started`` event.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from application.client.render_throttle import RenderThrottle
from application.entity.conversation import Conversation
from application.entity.message import Message, MessageRole
from application.models.response_models import RegenerateAck, SendAck, StopAck
from application.repositories.conversation_repository import ConversationRepository
from application.services.streaming.dispatcher import StreamDispatcher
from application.services.streaming.event_bus import EventBus
from application.services.streaming.events import StreamEvent, StreamEventType
from common.config.config import RENDER_INTERVAL

logger = logging.getLogger(__name__)

LOCAL_TAG_PREFIX = "local-"

RenderCallback = Callable[[str, List[Message]], None]
ConversationsCallback = Callable[[List[Conversation]], None]


def new_local_tag() -> str:
    return f"{LOCAL_TAG_PREFIX}{uuid.uuid4()}"


def is_local_tag(message_id: str) -> bool:
    return message_id.startswith(LOCAL_TAG_PREFIX)


@dataclass
class PendingGeneration:
    """Correlation entry: the placeholder waiting for its authoritative id."""

    local_tag: str
    message_id: Optional[str] = None


class ConversationStateStore:
    """Per-conversation reducer over stream lifecycle events."""

    def __init__(
        self,
        dispatcher: StreamDispatcher,
        conversation_repository: ConversationRepository,
        event_bus: EventBus,
        on_render: Optional[RenderCallback] = None,
        on_conversations_changed: Optional[ConversationsCallback] = None,
        render_interval: float = RENDER_INTERVAL,
    ):
        self.dispatcher = dispatcher
        self.conversation_repository = conversation_repository
        self.on_render = on_render
        self.on_conversations_changed = on_conversations_changed

        self.displayed_conversation_id: Optional[str] = None
        self.conversations: List[Conversation] = []
        self._messages: Dict[str, List[Message]] = {}
        self._streaming: Dict[str, str] = {}
        self._partial: Dict[str, List[str]] = {}
        self._pending: Dict[str, PendingGeneration] = {}
        self._last_errors: Dict[str, Dict[str, str]] = {}

        self._throttle = RenderThrottle(self._render_displayed, render_interval)
        self._subscription = event_bus.subscribe()
        self._task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> asyncio.Task:
        if self._task is None:
            self._task = asyncio.create_task(
                self.run(), name="conversation-state-store"
            )
        return self._task

    async def run(self) -> None:
        """Apply every event from the bus until the store is closed."""
        async for event in self._subscription:
            try:
                await self.apply(event)
            except Exception:
                logger.exception(f"Failed to apply {event!r}")

    async def close(self) -> None:
        self._throttle.cancel()
        self._subscription.close()
        if self._task is not None:
            await self._task
            self._task = None

    # ------------------------------------------------------------------
    # Read models
    # ------------------------------------------------------------------

    def messages(self, conversation_id: Optional[str] = None) -> List[Message]:
        conversation_id = conversation_id or self.displayed_conversation_id
        if conversation_id is None:
            return []
        return list(self._messages.get(conversation_id, []))

    def is_streaming(self, conversation_id: str) -> bool:
        return conversation_id in self._streaming or conversation_id in self._pending

    def streaming_message_id(self, conversation_id: str) -> Optional[str]:
        if conversation_id in self._streaming:
            return self._streaming[conversation_id]
        pending = self._pending.get(conversation_id)
        return pending.message_id if pending else None

    def partial_content(self, conversation_id: str) -> str:
        return "".join(self._partial.get(conversation_id, []))

    def last_error(self, conversation_id: str) -> Optional[Dict[str, str]]:
        return self._last_errors.get(conversation_id)

    def pending_tag(self, conversation_id: str) -> Optional[str]:
        pending = self._pending.get(conversation_id)
        return pending.local_tag if pending else None

    # ------------------------------------------------------------------
    # Navigation and commands
    # ------------------------------------------------------------------

    async def refresh_conversations(self) -> List[Conversation]:
        self.conversations = await self.conversation_repository.list_conversations()
        if self.on_conversations_changed:
            self.on_conversations_changed(list(self.conversations))
        return self.conversations

    async def select_conversation(self, conversation_id: str) -> List[Message]:
        """Display a conversation, showing the live buffer if it is streaming."""
        self.displayed_conversation_id = conversation_id
        await self._reload(conversation_id)
        self._throttle.flush()
        return self.messages(conversation_id)

    async def send(
        self, content: str, conversation_id: Optional[str] = None
    ) -> SendAck:
        """Optimistically append placeholders, then issue the send command.

        Placeholders are rolled back if the command is rejected.
        """
        conversation_id = self._target(conversation_id)
        user_tag, assistant_tag = new_local_tag(), new_local_tag()
        messages = self._messages.setdefault(conversation_id, [])
        messages.append(
            Message(
                id=user_tag,
                conversation_id=conversation_id,
                role=MessageRole.USER,
                content=content,
            )
        )
        messages.append(
            Message(
                id=assistant_tag,
                conversation_id=conversation_id,
                role=MessageRole.ASSISTANT,
            )
        )
        previous = self._pending.get(conversation_id)
        self._pending[conversation_id] = PendingGeneration(local_tag=assistant_tag)
        self._last_errors.pop(conversation_id, None)
        self._request_render(conversation_id, immediate=True)

        try:
            ack = await self.dispatcher.send(conversation_id, content)
        except Exception:
            self._rollback(
                conversation_id, [user_tag, assistant_tag], assistant_tag, previous
            )
            raise

        self._swap_id(conversation_id, user_tag, ack.user_message_id)
        self._bind_ack(conversation_id, assistant_tag, ack.message_id)
        return ack

    async def regenerate(self, conversation_id: Optional[str] = None) -> RegenerateAck:
        """Replace the trailing assistant reply with a placeholder and regenerate."""
        conversation_id = self._target(conversation_id)
        messages = self._messages.setdefault(conversation_id, [])
        removed: Optional[Message] = None
        if messages and messages[-1].role == MessageRole.ASSISTANT:
            removed = messages.pop()

        assistant_tag = new_local_tag()
        messages.append(
            Message(
                id=assistant_tag,
                conversation_id=conversation_id,
                role=MessageRole.ASSISTANT,
            )
        )
        previous = self._pending.get(conversation_id)
        self._pending[conversation_id] = PendingGeneration(local_tag=assistant_tag)
        self._last_errors.pop(conversation_id, None)
        self._request_render(conversation_id, immediate=True)

        try:
            ack = await self.dispatcher.regenerate(conversation_id)
        except Exception:
            self._rollback(conversation_id, [assistant_tag], assistant_tag, previous)
            if removed is not None:
                self._messages[conversation_id].append(removed)
                self._request_render(conversation_id, immediate=True)
            raise

        self._bind_ack(conversation_id, assistant_tag, ack.message_id)
        return ack

    def stop(self, conversation_id: Optional[str] = None) -> Optional[StopAck]:
        """Stop the active generation of the (displayed) conversation."""
        conversation_id = conversation_id or self.displayed_conversation_id
        if conversation_id is None:
            return None
        message_id = self.streaming_message_id(conversation_id)
        if message_id is None:
            return None
        return self.dispatcher.stop(message_id)

    # ------------------------------------------------------------------
    # Reducer
    # ------------------------------------------------------------------

    async def apply(self, event: StreamEvent) -> None:
        """Fold one bus event into the store."""
        if event.event_type == StreamEventType.STARTED:
            self._on_started(event.conversation_id, event.message_id)
        elif event.event_type == StreamEventType.CHUNK:
            self._on_chunk(event.conversation_id, event.message_id, event.data["delta"])
        elif event.event_type == StreamEventType.FINISHED:
            await self._on_finished(event.conversation_id, event.message_id)
        elif event.event_type == StreamEventType.ERROR:
            self._on_error(event)
        elif event.event_type == StreamEventType.CONVERSATION_UPDATED:
            await self.refresh_conversations()

    def _on_started(self, conversation_id: str, message_id: str) -> None:
        pending = self._pending.pop(conversation_id, None)
        if pending and pending.message_id and pending.message_id != message_id:
            logger.warning(
                f"stream-started for {message_id} does not match acknowledged "
                f"{pending.message_id} in {conversation_id}"
            )
        self._streaming[conversation_id] = message_id
        self._partial[conversation_id] = []

        if conversation_id != self.displayed_conversation_id:
            return
        if pending is None or not self._swap_id(
            conversation_id, pending.local_tag, message_id
        ):
            self._ensure_placeholder(conversation_id, message_id)
        self._request_render(conversation_id, immediate=True)

    def _on_chunk(self, conversation_id: str, message_id: str, delta: str) -> None:
        current = self._streaming.get(conversation_id)
        if current is None:
            self._streaming[conversation_id] = current = message_id
        if current != message_id:
            logger.debug(f"Ignoring chunk for stale message {message_id}")
            return
        self._partial.setdefault(conversation_id, []).append(delta)

        if conversation_id != self.displayed_conversation_id:
            return
        message = self._find(conversation_id, message_id)
        if message is None:
            message = self._ensure_placeholder(conversation_id, message_id)
            message.content = self.partial_content(conversation_id)
        else:
            message.content += delta
        self._request_render(conversation_id)

    async def _on_finished(
        self, conversation_id: Optional[str], message_id: str
    ) -> None:
        if conversation_id is None:
            conversation_id = next(
                (c for c, m in self._streaming.items() if m == message_id), None
            )
            if conversation_id is None:
                return

        # Storage is read first; state is then cleared and replaced in one step
        history = None
        if conversation_id == self.displayed_conversation_id:
            history = await self.conversation_repository.load_history(conversation_id)

        if self._streaming.get(conversation_id) == message_id:
            del self._streaming[conversation_id]
        self._partial.pop(conversation_id, None)
        pending = self._pending.get(conversation_id)
        if pending and pending.message_id == message_id:
            del self._pending[conversation_id]

        if history is not None and conversation_id == self.displayed_conversation_id:
            self._messages[conversation_id] = self._overlay(conversation_id, history)
            self._request_render(conversation_id, immediate=True)

    def _on_error(self, event: StreamEvent) -> None:
        conversation_id = event.conversation_id
        self._last_errors[conversation_id] = {
            "message_id": event.message_id,
            "kind": event.data.get("kind", ""),
            "message": event.data.get("message", ""),
        }
        logger.info(
            f"Generation {event.message_id} in {conversation_id} failed: "
            f"{event.data.get('kind')}"
        )
        if conversation_id == self.displayed_conversation_id:
            self._request_render(conversation_id, immediate=True)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _reload(self, conversation_id: str) -> None:
        messages = await self.conversation_repository.load_history(conversation_id)
        self._messages[conversation_id] = self._overlay(conversation_id, messages)

    def _overlay(self, conversation_id: str, messages: List[Message]) -> List[Message]:
        """Add the in-flight assistant message that storage does not have yet."""
        replaced = self.dispatcher.replaced_message_id(conversation_id)
        if replaced is not None:
            messages = [m for m in messages if m.id != replaced]
        message_id = self._streaming.get(conversation_id)
        if message_id is not None:
            if not any(m.id == message_id for m in messages):
                messages.append(
                    Message(
                        id=message_id,
                        conversation_id=conversation_id,
                        role=MessageRole.ASSISTANT,
                        content=self.partial_content(conversation_id),
                    )
                )
        elif conversation_id in self._pending:
            messages.append(
                Message(
                    id=self._pending[conversation_id].local_tag,
                    conversation_id=conversation_id,
                    role=MessageRole.ASSISTANT,
                )
            )
        return messages

    def _target(self, conversation_id: Optional[str]) -> str:
        conversation_id = conversation_id or self.displayed_conversation_id
        if conversation_id is None:
            raise ValueError("No conversation selected")
        return conversation_id

    def _find(self, conversation_id: str, message_id: str) -> Optional[Message]:
        for message in self._messages.get(conversation_id, []):
            if message.id == message_id:
                return message
        return None

    def _swap_id(self, conversation_id: str, old_id: str, new_id: str) -> bool:
        message = self._find(conversation_id, old_id)
        if message is None:
            return False
        message.id = new_id
        return True

    def _bind_ack(self, conversation_id: str, local_tag: str, message_id: str) -> None:
        pending = self._pending.get(conversation_id)
        if pending is not None and pending.local_tag == local_tag:
            pending.message_id = message_id

    def _ensure_placeholder(self, conversation_id: str, message_id: str) -> Message:
        message = self._find(conversation_id, message_id)
        if message is None:
            message = Message(
                id=message_id,
                conversation_id=conversation_id,
                role=MessageRole.ASSISTANT,
            )
            self._messages.setdefault(conversation_id, []).append(message)
        return message

    def _rollback(
        self,
        conversation_id: str,
        message_ids: List[str],
        local_tag: str,
        previous: Optional[PendingGeneration] = None,
    ) -> None:
        messages = self._messages.get(conversation_id, [])
        self._messages[conversation_id] = [
            m for m in messages if m.id not in message_ids
        ]
        pending = self._pending.get(conversation_id)
        if pending is not None and pending.local_tag == local_tag:
            if previous is not None:
                self._pending[conversation_id] = previous
            else:
                del self._pending[conversation_id]
        self._request_render(conversation_id, immediate=True)

    def _request_render(self, conversation_id: str, immediate: bool = False) -> None:
        if conversation_id != self.displayed_conversation_id:
            return
        if immediate:
            self._throttle.flush()
        else:
            self._throttle.request()

    def _render_displayed(self) -> None:
        if self.on_render is None or self.displayed_conversation_id is None:
            return
        conversation_id = self.displayed_conversation_id
        self.on_render(conversation_id, self.messages(conversation_id))
