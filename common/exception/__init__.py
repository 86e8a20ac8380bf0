from common.exception.exceptions import (
    AlreadyStreamingError,
    AuthError,
    ConfigurationError,
    ConversationNotFoundError,
    CredentialNotFoundError,
    HttpError,
    LocalChatError,
    ModelConfigNotFoundError,
    NetworkError,
    NoAssistantMessageToReplaceError,
    ParseError,
    ProviderError,
    StreamTimeoutError,
)

__all__ = [
    "AlreadyStreamingError",
    "AuthError",
    "ConfigurationError",
    "ConversationNotFoundError",
    "CredentialNotFoundError",
    "HttpError",
    "LocalChatError",
    "ModelConfigNotFoundError",
    "NetworkError",
    "NoAssistantMessageToReplaceError",
    "ParseError",
    "ProviderError",
    "StreamTimeoutError",
]
