"""
Exception taxonomy for the chat backend.

Command errors are raised to the caller of a command. Provider errors are raised
by the provider client and surfaced to observers as ``stream-error`` events
carrying their ``kind``.
"""

from typing import Optional


class LocalChatError(Exception):
    """Base class for all application errors."""

    status_code = 500
    error_code = "INTERNAL_ERROR"


# ============================================================================
# Command errors
# ============================================================================


class AlreadyStreamingError(LocalChatError):
    """A generation is already active for the conversation."""

    status_code = 409
    error_code = "ALREADY_STREAMING"

    def __init__(self, conversation_id: str):
        super().__init__(f"Conversation {conversation_id} is already streaming")
        self.conversation_id = conversation_id


class NoAssistantMessageToReplaceError(LocalChatError):
    """Regenerate was requested but the last message is not an assistant reply."""

    status_code = 409
    error_code = "NO_ASSISTANT_MESSAGE_TO_REPLACE"

    def __init__(self, conversation_id: str):
        super().__init__(
            f"Conversation {conversation_id} has no assistant message to replace"
        )
        self.conversation_id = conversation_id


class ConversationNotFoundError(LocalChatError):
    status_code = 404
    error_code = "CONVERSATION_NOT_FOUND"

    def __init__(self, conversation_id: str):
        super().__init__(f"Conversation {conversation_id} not found")
        self.conversation_id = conversation_id


class ModelConfigNotFoundError(LocalChatError):
    status_code = 404
    error_code = "MODEL_CONFIG_NOT_FOUND"

    def __init__(self, model_config_id: str):
        super().__init__(f"Model config {model_config_id} not found")
        self.model_config_id = model_config_id


class CredentialNotFoundError(LocalChatError):
    """No usable secret could be resolved for a model config."""

    status_code = 404
    error_code = "CREDENTIAL_NOT_FOUND"

    def __init__(self, model_config_id: str, reason: str = "no credential available"):
        super().__init__(f"Credential for model config {model_config_id}: {reason}")
        self.model_config_id = model_config_id
        self.reason = reason


# ============================================================================
# Provider errors
# ============================================================================


class ProviderError(LocalChatError):
    """Failure of a provider request or of its response stream."""

    status_code = 502
    error_code = "PROVIDER_ERROR"
    kind = "provider"


class AuthError(ProviderError):
    """Missing or rejected credential."""

    error_code = "AUTH_ERROR"
    kind = "auth"


class ConfigurationError(ProviderError):
    """Model config cannot produce a valid provider request."""

    error_code = "CONFIGURATION_ERROR"
    kind = "config"


class HttpError(ProviderError):
    """Provider answered with a non-success status."""

    error_code = "HTTP_ERROR"
    kind = "http"

    def __init__(self, status: int, message: Optional[str] = None):
        super().__init__(message or f"Provider responded with HTTP {status}")
        self.status = status


class ParseError(ProviderError):
    """Malformed chunk framing or payload."""

    error_code = "PARSE_ERROR"
    kind = "parse"


class NetworkError(ProviderError):
    """Transport-level failure (connect, read, reset)."""

    error_code = "NETWORK_ERROR"
    kind = "network"


class StreamTimeoutError(NetworkError):
    """No chunk and no terminal signal arrived within the idle window."""

    error_code = "STREAM_TIMEOUT"
    kind = "timeout"

    def __init__(self, idle_seconds: float):
        super().__init__(f"No data received from provider for {idle_seconds:g}s")
        self.idle_seconds = idle_seconds
