"""
Configuration module for the local chat backend.

Values are read once from the environment (after loading an optional .env file)
and exposed as module-level constants.
"""

import os

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def get_env(key: str) -> str:
    """Get environment variable or raise exception if not found."""
    value = os.getenv(key)
    if value is None:
        raise Exception(f"{key} not found")
    return value


def _get_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None or value == "":
        return default
    return float(value)


# Storage
LOCALCHAT_DB_PATH = os.getenv(
    "LOCALCHAT_DB_PATH", os.path.expanduser("~/.localchat/localchat.db")
)
DEFAULT_CONVERSATION_TITLE = os.getenv("DEFAULT_CONVERSATION_TITLE", "New Chat")

# Streaming generation
STREAM_IDLE_TIMEOUT = _get_float("STREAM_IDLE_TIMEOUT", 60.0)
CANCEL_GRACE_PERIOD = _get_float("CANCEL_GRACE_PERIOD", 2.0)
PROVIDER_CONNECT_TIMEOUT = _get_float("PROVIDER_CONNECT_TIMEOUT", 15.0)

# Auto-titling ("utility model")
TITLE_MODEL_CONFIG_ID = os.getenv("TITLE_MODEL_CONFIG_ID") or None
TITLE_MAX_LENGTH = int(os.getenv("TITLE_MAX_LENGTH", "60"))

# Client-side rendering and SSE delivery
RENDER_INTERVAL = _get_float("RENDER_INTERVAL", 0.05)
SSE_HEARTBEAT_INTERVAL = _get_float("SSE_HEARTBEAT_INTERVAL", 15.0)

# Seed model configuration, inserted when no model configs exist
DEFAULT_MODEL_NAME = os.getenv("DEFAULT_MODEL_NAME", "Default OpenAI Compatible")
DEFAULT_MODEL_API_URL = os.getenv("DEFAULT_MODEL_API_URL", "https://api.openai.com/v1")
DEFAULT_MODEL_API_KEY_REF = os.getenv("DEFAULT_MODEL_API_KEY_REF", "env:OPENAI_API_KEY")
DEFAULT_MODEL = os.getenv("DEFAULT_MODEL", "gpt-4o-mini")

# Server
APP_HOST = os.getenv("APP_HOST", "127.0.0.1")
APP_PORT = int(os.getenv("APP_PORT", "8000"))
APP_DEBUG = os.getenv("APP_DEBUG", "false").lower() == "true"
APP_LOG_FILE = os.getenv("APP_LOG_FILE", "localchat.log")
# Keep-alive timeout for long-lived event streams (seconds)
APP_TIMEOUT = int(os.getenv("APP_TIMEOUT", "600"))
