"""
Application entities package.

Contains the domain entities of the chat backend.
"""

from application.entity.conversation import Conversation
from application.entity.message import Message, MessageRole
from application.entity.model_config import ModelConfig

__all__ = ["Conversation", "Message", "MessageRole", "ModelConfig"]
