"""Pytest configuration for tests.

Sets up Python path and fixtures for all tests.
"""

import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

# Add project root to Python path so imports work correctly
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from quart import Quart  # noqa: E402

from application.repositories.conversation_repository import (  # noqa: E402
    ConversationRepository,
)
from application.repositories.database import Database  # noqa: E402
from application.repositories.model_config_repository import (  # noqa: E402
    ModelConfigRepository,
)
from application.routes import (  # noqa: E402
    conversations_bp,
    events_bp,
    generation_bp,
    model_configs_bp,
)
from application.routes.common.error_handlers import (  # noqa: E402
    register_error_handlers,
)
from application.services.credential_resolver import CredentialResolver  # noqa: E402
from application.services.provider.openai_compatible import (  # noqa: E402
    OpenAICompatibleProvider,
)
from application.services.streaming.dispatcher import StreamDispatcher  # noqa: E402
from application.services.streaming.event_bus import EventBus  # noqa: E402
from application.services.streaming.registry import (  # noqa: E402
    StreamSessionRegistry,
)
from application.services.titling_service import TitlingService  # noqa: E402
from tests.fixtures.provider_fixtures import (  # noqa: E402
    TEST_API_KEY,
    TEST_API_KEY_ENV,
    FakeProviderBackend,
    create_test_model_config,
)


@pytest_asyncio.fixture
async def database(tmp_path):
    """Initialized SQLite database in a temporary directory."""
    database = Database(tmp_path / "localchat.db")
    await database.initialize()
    return database


@pytest.fixture
def conversation_repository(database):
    return ConversationRepository(database)


@pytest.fixture
def model_config_repository(database):
    return ModelConfigRepository(database)


@pytest.fixture
def api_key(monkeypatch):
    """Expose the test secret through the referenced environment variable."""
    monkeypatch.setenv(TEST_API_KEY_ENV, TEST_API_KEY)
    return TEST_API_KEY


@pytest_asyncio.fixture
async def model_config(model_config_repository, api_key):
    return await model_config_repository.add_model_config(create_test_model_config())


@pytest_asyncio.fixture
async def conversation(conversation_repository, model_config):
    """Conversation with the placeholder title bound to ``model_config``."""
    return await conversation_repository.create_conversation(model_config.id)


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def registry():
    return StreamSessionRegistry()


@pytest.fixture
def provider_backend():
    return FakeProviderBackend()


@pytest_asyncio.fixture
async def provider(provider_backend):
    """Provider client talking to the scripted backend."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(provider_backend))
    provider = OpenAICompatibleProvider(client=client, grace_period=0.5)
    yield provider
    await client.aclose()


@pytest.fixture
def credential_resolver(model_config_repository):
    return CredentialResolver(model_config_repository)


@pytest.fixture
def titling_service(
    conversation_repository,
    model_config_repository,
    credential_resolver,
    provider,
    event_bus,
):
    return TitlingService(
        conversation_repository=conversation_repository,
        model_config_repository=model_config_repository,
        credential_resolver=credential_resolver,
        provider=provider,
        event_bus=event_bus,
        title_model_config_id=None,
    )


@pytest_asyncio.fixture
async def dispatcher(
    conversation_repository,
    model_config_repository,
    credential_resolver,
    provider,
    registry,
    event_bus,
    titling_service,
):
    """Dispatcher over real storage and the scripted provider backend."""
    dispatcher = StreamDispatcher(
        conversation_repository=conversation_repository,
        model_config_repository=model_config_repository,
        credential_resolver=credential_resolver,
        provider=provider,
        registry=registry,
        event_bus=event_bus,
        titling_service=titling_service,
        idle_timeout=2.0,
    )
    yield dispatcher
    await dispatcher.shutdown(timeout=1.0)


@pytest.fixture
def subscription(event_bus):
    """Subscription opened before any command is issued."""
    subscription = event_bus.subscribe()
    yield subscription
    subscription.close()


@pytest.fixture
def service_factory(
    database,
    conversation_repository,
    model_config_repository,
    credential_resolver,
    provider,
    registry,
    event_bus,
    titling_service,
    dispatcher,
):
    """Stand-in for the ServiceFactory wired to the test components."""
    factory = MagicMock()
    factory.database = database
    factory.conversation_repository = conversation_repository
    factory.model_config_repository = model_config_repository
    factory.credential_resolver = credential_resolver
    factory.provider = provider
    factory.registry = registry
    factory.event_bus = event_bus
    factory.titling_service = titling_service
    factory.dispatcher = dispatcher
    return factory


ROUTE_MODULES = ("conversations", "events", "generation", "model_configs")


@pytest.fixture
def app(service_factory):
    """Create test Quart application with all blueprints and real services."""
    app = Quart(__name__)
    app.register_blueprint(conversations_bp, url_prefix="/api/v1/conversations")
    app.register_blueprint(generation_bp, url_prefix="/api/v1")
    app.register_blueprint(events_bp, url_prefix="/api/v1")
    app.register_blueprint(model_configs_bp, url_prefix="/api/v1/model-configs")
    register_error_handlers(app)

    patchers = [
        patch(
            f"application.routes.{module}.get_service_factory",
            return_value=service_factory,
        )
        for module in ROUTE_MODULES
    ]
    for patcher in patchers:
        patcher.start()

    yield app

    for patcher in patchers:
        patcher.stop()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()
