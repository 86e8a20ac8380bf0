"""Client-side state: conversation state store and render throttling."""

from application.client.render_throttle import RenderThrottle
from application.client.state_store import ConversationStateStore

__all__ = ["ConversationStateStore", "RenderThrottle"]
