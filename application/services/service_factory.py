"""
Service Factory for centralized service initialization.

Implements the Factory pattern for creating and managing service instances.
Provides singleton access to the storage layer, the provider client and the
streaming pipeline across the application.
"""

import logging
from typing import Optional

from application.repositories.conversation_repository import ConversationRepository
from application.repositories.database import Database
from application.repositories.model_config_repository import ModelConfigRepository
from application.services.credential_resolver import CredentialResolver
from application.services.provider.openai_compatible import OpenAICompatibleProvider
from application.services.streaming.dispatcher import StreamDispatcher
from application.services.streaming.event_bus import EventBus
from application.services.streaming.registry import StreamSessionRegistry
from application.services.titling_service import TitlingService

logger = logging.getLogger(__name__)


class ServiceFactory:
    """
    Factory for creating and managing service instances.

    Implements singleton pattern for services to ensure single instance
    across the application. Manages dependencies between services.
    """

    _instance: Optional["ServiceFactory"] = None

    # Service instances (lazy-loaded)
    _database: Optional[Database] = None
    _conversation_repository: Optional[ConversationRepository] = None
    _model_config_repository: Optional[ModelConfigRepository] = None
    _credential_resolver: Optional[CredentialResolver] = None
    _provider: Optional[OpenAICompatibleProvider] = None
    _registry: Optional[StreamSessionRegistry] = None
    _event_bus: Optional[EventBus] = None
    _titling_service: Optional[TitlingService] = None
    _dispatcher: Optional[StreamDispatcher] = None

    def __new__(cls):
        """Ensure only one instance exists (Singleton pattern)."""
        if cls._instance is None:
            cls._instance = super(ServiceFactory, cls).__new__(cls)
            logger.debug("ServiceFactory instance created")
        return cls._instance

    @property
    def database(self) -> Database:
        """
        Get Database instance.

        Returns:
            Database: SQLite database handle (path from LOCALCHAT_DB_PATH)
        """
        if self._database is None:
            self._database = Database()
            logger.debug(f"Database initialized at {self._database.db_path}")
        return self._database

    @property
    def conversation_repository(self) -> ConversationRepository:
        """
        Get ConversationRepository instance.

        Returns:
            ConversationRepository: Conversation and message data access

        Example:
            >>> factory = ServiceFactory()
            >>> repo = factory.conversation_repository
        """
        if self._conversation_repository is None:
            self._conversation_repository = ConversationRepository(self.database)
            logger.debug("ConversationRepository initialized")
        return self._conversation_repository

    @property
    def model_config_repository(self) -> ModelConfigRepository:
        if self._model_config_repository is None:
            self._model_config_repository = ModelConfigRepository(self.database)
            logger.debug("ModelConfigRepository initialized")
        return self._model_config_repository

    @property
    def credential_resolver(self) -> CredentialResolver:
        if self._credential_resolver is None:
            self._credential_resolver = CredentialResolver(self.model_config_repository)
            logger.debug("CredentialResolver initialized")
        return self._credential_resolver

    @property
    def provider(self) -> OpenAICompatibleProvider:
        """
        Get OpenAICompatibleProvider instance.

        Returns:
            OpenAICompatibleProvider: HTTP client shared by all generations
        """
        if self._provider is None:
            self._provider = OpenAICompatibleProvider()
            logger.debug("OpenAICompatibleProvider initialized")
        return self._provider

    @property
    def registry(self) -> StreamSessionRegistry:
        if self._registry is None:
            self._registry = StreamSessionRegistry()
            logger.debug("StreamSessionRegistry initialized")
        return self._registry

    @property
    def event_bus(self) -> EventBus:
        if self._event_bus is None:
            self._event_bus = EventBus()
            logger.debug("EventBus initialized")
        return self._event_bus

    @property
    def titling_service(self) -> TitlingService:
        if self._titling_service is None:
            self._titling_service = TitlingService(
                conversation_repository=self.conversation_repository,
                model_config_repository=self.model_config_repository,
                credential_resolver=self.credential_resolver,
                provider=self.provider,
                event_bus=self.event_bus,
            )
            logger.debug("TitlingService initialized")
        return self._titling_service

    @property
    def dispatcher(self) -> StreamDispatcher:
        """
        Get StreamDispatcher instance.

        Automatically initializes dependencies (repositories, resolver,
        provider, registry, event bus, titling).

        Returns:
            StreamDispatcher: Generation command handler

        Example:
            >>> factory = ServiceFactory()
            >>> ack = await factory.dispatcher.send(conversation_id, "hi")
        """
        if self._dispatcher is None:
            self._dispatcher = StreamDispatcher(
                conversation_repository=self.conversation_repository,
                model_config_repository=self.model_config_repository,
                credential_resolver=self.credential_resolver,
                provider=self.provider,
                registry=self.registry,
                event_bus=self.event_bus,
                titling_service=self.titling_service,
            )
            logger.debug("StreamDispatcher initialized")
        return self._dispatcher

    async def initialize(self) -> None:
        """Create the schema and seed the default model config."""
        await self.database.initialize()
        seeded = await self.model_config_repository.add_default_model_config_if_none()
        if seeded is not None:
            logger.info(f"Seeded default model config '{seeded.name}'")

    async def shutdown(self) -> None:
        """Wind down in-flight generations and release the HTTP client."""
        if self._dispatcher is not None:
            await self._dispatcher.shutdown()
        if self._provider is not None:
            await self._provider.aclose()

    def clear_cache(self):
        """
        Clear all cached service instances.

        Useful for testing or when services need to be re-initialized.

        Example:
            >>> factory = ServiceFactory()
            >>> factory.clear_cache()  # Force re-initialization
        """
        self._database = None
        self._conversation_repository = None
        self._model_config_repository = None
        self._credential_resolver = None
        self._provider = None
        self._registry = None
        self._event_bus = None
        self._titling_service = None
        self._dispatcher = None
        logger.debug("ServiceFactory cache cleared")


# Global factory instance
_factory_instance: Optional[ServiceFactory] = None


def get_service_factory() -> ServiceFactory:
    """
    Get global ServiceFactory instance.

    Returns:
        ServiceFactory: Singleton factory instance

    Example:
        >>> from application.services.service_factory import get_service_factory
        >>> factory = get_service_factory()
        >>> dispatcher = factory.dispatcher
    """
    global _factory_instance
    if _factory_instance is None:
        _factory_instance = ServiceFactory()
    return _factory_instance
