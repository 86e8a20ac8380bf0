"""
Model configuration entity.

Read-only input to the provider client. The secret itself is never stored here,
only a reference to where it can be resolved (e.g. ``env:OPENAI_API_KEY``).
"""

import uuid
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

OPENAI_COMPATIBLE_PROVIDER = "openai_compatible"


class ModelConfig(BaseModel):
    """A configured OpenAI-compatible endpoint and model."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Config ID")
    name: str = Field(..., description="User-facing name, e.g. 'OpenAI GPT-4o Mini'")
    provider: str = Field(
        default=OPENAI_COMPATIBLE_PROVIDER, description="Provider protocol"
    )
    api_url: str = Field(..., description="Base URL, e.g. https://api.openai.com/v1")
    api_key_ref: Optional[str] = Field(
        default=None, description="Credential reference, e.g. 'env:OPENAI_API_KEY'"
    )
    provider_options: Dict[str, Any] = Field(
        default_factory=dict,
        description="Provider options; 'model' names the remote model",
    )

    @field_validator("name", "api_url", "provider")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must not be empty")
        return value.strip()

    @property
    def model_name(self) -> Optional[str]:
        model = self.provider_options.get("model")
        return model if isinstance(model, str) and model else None
