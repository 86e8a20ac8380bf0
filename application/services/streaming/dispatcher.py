"""
Stream dispatcher.

Orchestrates one generation per accepted command:

    Idle -> Requesting -> Streaming -> {Completing | Cancelling | Failing} -> Idle

Each generation runs as its own asyncio task. Commands return as soon as the
session is registered; everything observers need to know afterwards is
published on the event bus as ``stream-started``, ``stream-chunk``,
``stream-error`` and ``stream-finished`` (always last, exactly once).
"""

import asyncio
import logging
import uuid
from typing import Dict, List, Optional, Set, Tuple

from application.entity.conversation import Conversation, utc_now
from application.entity.message import STOPPED_METADATA_KEY, Message, MessageRole
from application.entity.model_config import ModelConfig
from application.models.response_models import RegenerateAck, SendAck, StopAck
from application.repositories.conversation_repository import ConversationRepository
from application.repositories.model_config_repository import ModelConfigRepository
from application.services.credential_resolver import CredentialResolver
from application.services.provider.openai_compatible import OpenAICompatibleProvider
from application.services.streaming.cancellation import OperationCancelled
from application.services.streaming.constants import (
    CONFIG_ERROR_KIND,
    INTERNAL_ERROR_KIND,
    SHUTDOWN_TIMEOUT,
    SYSTEM_PROMPT_TEMPLATE,
)
from application.services.streaming.event_bus import EventBus
from application.services.streaming.events import StreamEvent
from application.services.streaming.registry import (
    StreamSession,
    StreamSessionRegistry,
    StreamState,
)
from application.services.titling_service import TitlingService
from common.config.config import STREAM_IDLE_TIMEOUT
from common.exception import (
    AuthError,
    ConversationNotFoundError,
    CredentialNotFoundError,
    ModelConfigNotFoundError,
    NoAssistantMessageToReplaceError,
    ProviderError,
)

logger = logging.getLogger(__name__)


class StreamDispatcher:
    """Accepts send/regenerate/stop commands and runs generations."""

    def __init__(
        self,
        conversation_repository: ConversationRepository,
        model_config_repository: ModelConfigRepository,
        credential_resolver: CredentialResolver,
        provider: OpenAICompatibleProvider,
        registry: StreamSessionRegistry,
        event_bus: EventBus,
        titling_service: Optional[TitlingService] = None,
        idle_timeout: Optional[float] = STREAM_IDLE_TIMEOUT,
    ):
        self.conversation_repository = conversation_repository
        self.model_config_repository = model_config_repository
        self.credential_resolver = credential_resolver
        self.provider = provider
        self.registry = registry
        self.event_bus = event_bus
        self.titling_service = titling_service
        self.idle_timeout = idle_timeout
        self._tasks: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def send(self, conversation_id: str, content: str) -> SendAck:
        """Persist a user turn and start generating the assistant reply.

        Raises:
            ConversationNotFoundError: unknown conversation
            AlreadyStreamingError: a generation is already active for it
        """
        conversation = await self._require_conversation(conversation_id)
        session = self.registry.begin(conversation_id, self._new_message_id())

        try:
            user_message = Message(
                conversation_id=conversation_id, role=MessageRole.USER, content=content
            )
            await self.conversation_repository.append_message(user_message)
            await self.conversation_repository.touch_conversation(
                conversation_id, user_message.timestamp
            )
        except BaseException:
            self.registry.end(conversation_id, session)
            raise

        self._start(session, conversation)
        return SendAck(
            conversation_id=conversation_id,
            user_message_id=user_message.id,
            message_id=session.message_id,
        )

    async def regenerate(self, conversation_id: str) -> RegenerateAck:
        """Replace the trailing assistant message with a fresh generation.

        The replaced message stays stored until the new reply is persisted, so a
        failed regeneration leaves the conversation unchanged.

        Raises:
            ConversationNotFoundError: unknown conversation
            AlreadyStreamingError: a generation is already active for it
            NoAssistantMessageToReplaceError: the last message is not an assistant reply
        """
        conversation = await self._require_conversation(conversation_id)
        session = self.registry.begin(conversation_id, self._new_message_id())

        try:
            history = await self.conversation_repository.load_history(conversation_id)
            if not history or history[-1].role != MessageRole.ASSISTANT:
                raise NoAssistantMessageToReplaceError(conversation_id)
            replaced = history[-1]
        except BaseException:
            self.registry.end(conversation_id, session)
            raise

        session.replaces_message_id = replaced.id
        logger.info(
            f"Regenerating assistant message {replaced.id} in {conversation_id}"
        )
        self._start(session, conversation)
        return RegenerateAck(
            conversation_id=conversation_id,
            message_id=session.message_id,
            replaced_message_id=replaced.id,
        )

    def replaced_message_id(self, conversation_id: str) -> Optional[str]:
        """Id of the stored reply an active regenerate will replace, if any."""
        session = self.registry.get(conversation_id)
        return session.replaces_message_id if session else None

    def stop(self, message_id: str) -> StopAck:
        """Request cancellation of the generation producing ``message_id``.

        Unknown or already-stopped messages are acknowledged as a no-op.
        """
        stopped = self.registry.cancel_message(message_id)
        if stopped:
            logger.info(f"Stop requested for message {message_id}")
        else:
            logger.debug(f"Stop for message {message_id} had nothing to cancel")
        return StopAck(message_id=message_id, stopped=stopped)

    async def shutdown(self, timeout: float = SHUTDOWN_TIMEOUT) -> None:
        """Cancel every in-flight generation and wait for it to wind down."""
        for session in self.registry.active_sessions():
            session.token.cancel()

        tasks = list(self._tasks)
        if not tasks:
            return
        logger.info(f"Waiting for {len(tasks)} streaming tasks to finish")
        await asyncio.wait(tasks, timeout=timeout)

        # Stragglers, including titling tasks spawned while winding down
        pending = [task for task in self._tasks if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # ------------------------------------------------------------------
    # Generation task
    # ------------------------------------------------------------------

    def _start(self, session: StreamSession, conversation: Conversation) -> None:
        task = asyncio.create_task(
            self._run(session, conversation),
            name=f"stream-{session.conversation_id}-{session.message_id}",
        )
        session.task = task
        self._track(task)

    def _track(self, task: asyncio.Task) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, session: StreamSession, conversation: Conversation) -> None:
        completed = False
        try:
            completed = await self._generate(session, conversation)
        except asyncio.CancelledError:
            logger.warning(
                f"Stream task for {session.conversation_id} cancelled during shutdown"
            )
            raise
        except ProviderError as e:
            self._fail(session, e.kind, str(e))
        except CredentialNotFoundError as e:
            self._fail(session, AuthError.kind, str(e))
        except ModelConfigNotFoundError as e:
            self._fail(session, CONFIG_ERROR_KIND, str(e))
        except Exception as e:
            logger.exception(
                f"Unexpected error in stream for {session.conversation_id}"
            )
            self._fail(session, INTERNAL_ERROR_KIND, str(e))
        finally:
            self.registry.end(session.conversation_id, session)
            self._emit_started(session)
            self.event_bus.publish(
                StreamEvent.finished(session.conversation_id, session.message_id)
            )
            session.state = StreamState.IDLE

        if completed and conversation.has_default_title():
            self._spawn_titling(session.conversation_id)

    async def _generate(
        self, session: StreamSession, conversation: Conversation
    ) -> bool:
        """Run one generation; True when it completed naturally."""
        config, api_key, messages = await self._prepare(
            conversation, exclude_message_id=session.replaces_message_id
        )

        try:
            stream = await self.provider.open_stream(
                config,
                api_key,
                messages,
                session.token,
                idle_timeout=self.idle_timeout,
            )
        except OperationCancelled:
            stream = None

        if stream is not None:
            session.state = StreamState.STREAMING
            self._emit_started(session)
            async with stream:
                async for delta in stream:
                    session.append(delta)
                    self.event_bus.publish(
                        StreamEvent.chunk(
                            session.conversation_id, session.message_id, delta
                        )
                    )

        # A stop that lands after the terminal signal does not make the reply stopped
        natural_end = stream is not None and stream.finished
        if session.token.cancelled and not natural_end:
            session.state = StreamState.CANCELLING
            logger.info(
                f"Stream for {session.conversation_id} cancelled after "
                f"{len(session.buffer)} chunks"
            )
            if await self.conversation_repository.get_conversation(
                session.conversation_id
            ) is None:
                logger.info(f"Conversation {session.conversation_id} was deleted")
                return False
            await self._persist(session, stopped=True)
            return False

        session.state = StreamState.COMPLETING
        await self._persist(session, stopped=False)
        logger.info(
            f"Stream for {session.conversation_id} completed "
            f"({len(session.content)} characters)"
        )
        return True

    async def _prepare(
        self, conversation: Conversation, exclude_message_id: Optional[str] = None
    ) -> Tuple[ModelConfig, str, List[Dict[str, str]]]:
        config = await self.model_config_repository.get_model_config(
            conversation.model_config_id
        )
        if config is None:
            raise ModelConfigNotFoundError(conversation.model_config_id)
        api_key = await self.credential_resolver.resolve_secret(config.id)

        history = await self.conversation_repository.load_history(conversation.id)
        messages = [
            {
                "role": MessageRole.SYSTEM.value,
                "content": SYSTEM_PROMPT_TEMPLATE.format(name=config.name),
            }
        ]
        messages.extend(
            m.to_provider_message()
            for m in history
            if m.content and m.id != exclude_message_id
        )
        return config, api_key, messages

    async def _persist(self, session: StreamSession, stopped: bool) -> Message:
        message = Message(
            id=session.message_id,
            conversation_id=session.conversation_id,
            role=MessageRole.ASSISTANT,
            content=session.content,
            timestamp=utc_now(),
            metadata={STOPPED_METADATA_KEY: True} if stopped else None,
        )
        await self.conversation_repository.append_message(
            message, replaces=session.replaces_message_id
        )
        await self.conversation_repository.touch_conversation(
            session.conversation_id, message.timestamp
        )
        return message

    def _fail(self, session: StreamSession, kind: str, detail: str) -> None:
        session.state = StreamState.FAILING
        logger.error(
            f"Stream for {session.conversation_id} failed ({kind}): {detail}; "
            f"discarding {len(session.buffer)} chunks"
        )
        self._emit_started(session)
        self.event_bus.publish(
            StreamEvent.error(session.conversation_id, session.message_id, kind, detail)
        )

    def _emit_started(self, session: StreamSession) -> None:
        if session.started_emitted:
            return
        session.started_emitted = True
        self.event_bus.publish(
            StreamEvent.started(session.conversation_id, session.message_id)
        )

    def _spawn_titling(self, conversation_id: str) -> None:
        if self.titling_service is None:
            return
        task = asyncio.create_task(
            self.titling_service.generate_title(conversation_id),
            name=f"title-{conversation_id}",
        )
        self._track(task)

    async def _require_conversation(self, conversation_id: str) -> Conversation:
        conversation = await self.conversation_repository.get_conversation(
            conversation_id
        )
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)
        return conversation

    @staticmethod
    def _new_message_id() -> str:
        return str(uuid.uuid4())
