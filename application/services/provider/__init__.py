"""Provider client: OpenAI-compatible chat completions over HTTP."""

from application.services.provider.delta_stream import DeltaStream
from application.services.provider.openai_compatible import OpenAICompatibleProvider

__all__ = ["DeltaStream", "OpenAICompatibleProvider"]
