"""
Automatic conversation titling.

After the first completed assistant turn of a conversation that still carries
the placeholder title, a single non-streaming completion is requested with a
fixed instruction template and the result becomes the conversation title.
"""

import logging
import re
from typing import List, Optional

from application.entity.message import Message, MessageRole
from application.entity.model_config import ModelConfig
from application.repositories.conversation_repository import ConversationRepository
from application.repositories.model_config_repository import ModelConfigRepository
from application.services.credential_resolver import CredentialResolver
from application.services.provider.openai_compatible import OpenAICompatibleProvider
from application.services.streaming.event_bus import EventBus
from application.services.streaming.events import StreamEvent
from common.config.config import TITLE_MAX_LENGTH, TITLE_MODEL_CONFIG_ID
from common.exception import LocalChatError, ModelConfigNotFoundError

logger = logging.getLogger(__name__)

TITLE_INSTRUCTION = (
    "Generate a short, descriptive title (at most six words) for a conversation "
    "that starts with the exchange below. Reply with the title only, without "
    "quotes or punctuation at the end.\n\n"
    "User: {user}\n\n"
    "Assistant: {assistant}"
)

# Characters of each turn included in the titling prompt
EXCERPT_LENGTH = 1000

_TITLE_PREFIX = re.compile(r"^\s*title\s*:\s*", re.IGNORECASE)


def clean_title(raw: str, max_length: int = TITLE_MAX_LENGTH) -> str:
    """Normalize a model-produced title to a single clean line."""
    lines = [line for line in raw.strip().splitlines() if line.strip()]
    if not lines:
        return ""
    title = _TITLE_PREFIX.sub("", lines[0])
    title = title.strip().strip("\"'`*#").strip()
    title = title.rstrip(".!:;,").strip()
    title = re.sub(r"\s+", " ", title)
    if len(title) > max_length:
        title = title[:max_length].rstrip()
    return title


class TitlingService:
    """Generates and applies titles for conversations with the placeholder title."""

    def __init__(
        self,
        conversation_repository: ConversationRepository,
        model_config_repository: ModelConfigRepository,
        credential_resolver: CredentialResolver,
        provider: OpenAICompatibleProvider,
        event_bus: EventBus,
        title_model_config_id: Optional[str] = TITLE_MODEL_CONFIG_ID,
        max_length: int = TITLE_MAX_LENGTH,
    ):
        self.conversation_repository = conversation_repository
        self.model_config_repository = model_config_repository
        self.credential_resolver = credential_resolver
        self.provider = provider
        self.event_bus = event_bus
        self.title_model_config_id = title_model_config_id
        self.max_length = max_length

    async def generate_title(self, conversation_id: str) -> Optional[str]:
        """Title the conversation if it still has the placeholder title.

        Failures are logged and reported as None; they never propagate to the
        generation that triggered titling.
        """
        try:
            return await self._generate_title(conversation_id)
        except LocalChatError as e:
            logger.warning(f"Title generation failed for {conversation_id}: {e}")
        except Exception as e:
            logger.exception(
                f"Unexpected error generating title for {conversation_id}: {e}"
            )
        return None

    async def _generate_title(self, conversation_id: str) -> Optional[str]:
        conversation = await self.conversation_repository.get_conversation(
            conversation_id
        )
        if conversation is None or not conversation.has_default_title():
            return None

        history = await self.conversation_repository.load_history(conversation_id)
        prompt = self._build_prompt(history)
        if prompt is None:
            logger.debug(f"No completed exchange to title in {conversation_id}")
            return None

        config = await self._resolve_config(conversation.model_config_id)
        api_key = await self.credential_resolver.resolve_secret(config.id)
        logger.info(
            f"Generating title for {conversation_id} with model config '{config.name}'"
        )
        raw = await self.provider.complete(
            config, api_key, [{"role": MessageRole.USER.value, "content": prompt}]
        )

        title = clean_title(raw, self.max_length)
        if not title:
            logger.warning(f"Model returned an empty title for {conversation_id}")
            return None

        # Renamed by the user while the title was being generated
        latest = await self.conversation_repository.get_conversation(conversation_id)
        if latest is None or not latest.has_default_title():
            return None

        await self.conversation_repository.rename_conversation(conversation_id, title)
        logger.info(f"Conversation {conversation_id} titled '{title}'")
        self.event_bus.publish(StreamEvent.conversation_updated(conversation_id))
        return title

    async def _resolve_config(self, conversation_config_id: str) -> ModelConfig:
        if self.title_model_config_id:
            config = await self.model_config_repository.get_model_config(
                self.title_model_config_id
            )
            if config is not None:
                return config
            logger.warning(
                f"Title model config {self.title_model_config_id} not found, "
                f"using the conversation's model"
            )
        config = await self.model_config_repository.get_model_config(
            conversation_config_id
        )
        if config is None:
            raise ModelConfigNotFoundError(conversation_config_id)
        return config

    @staticmethod
    def _build_prompt(history: List[Message]) -> Optional[str]:
        user = next((m for m in history if m.role == MessageRole.USER), None)
        assistant = next(
            (m for m in history if m.role == MessageRole.ASSISTANT and m.content), None
        )
        if user is None or assistant is None:
            return None
        return TITLE_INSTRUCTION.format(
            user=user.content[:EXCERPT_LENGTH],
            assistant=assistant.content[:EXCERPT_LENGTH],
        )
