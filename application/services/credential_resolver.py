"""Credential resolution for model configurations."""

import logging
import os

from application.repositories.model_config_repository import ModelConfigRepository
from common.exception import CredentialNotFoundError

logger = logging.getLogger(__name__)

ENV_REF_PREFIX = "env:"


class CredentialResolver:
    """Resolves the secret referenced by a model config's ``api_key_ref``.

    Supported reference: ``env:NAME`` (read from the process environment,
    which includes values loaded from ``.env``).
    """

    def __init__(self, model_config_repository: ModelConfigRepository):
        self.model_config_repository = model_config_repository

    async def resolve_secret(self, model_config_id: str) -> str:
        """Return the secret for ``model_config_id``.

        Raises:
            CredentialNotFoundError: config missing, reference missing or
                unsupported, or the referenced value is empty
        """
        config = await self.model_config_repository.get_model_config(model_config_id)
        if config is None:
            raise CredentialNotFoundError(model_config_id, "model config not found")

        ref = config.api_key_ref
        if not ref:
            raise CredentialNotFoundError(
                model_config_id, f"no API key reference set for '{config.name}'"
            )

        if not ref.startswith(ENV_REF_PREFIX):
            raise CredentialNotFoundError(
                model_config_id,
                f"unsupported api_key_ref for '{config.name}' (expected env:NAME)",
            )

        var_name = ref[len(ENV_REF_PREFIX):]
        logger.debug(f"Retrieving API key from environment variable: {var_name}")
        secret = os.getenv(var_name)
        if not secret:
            raise CredentialNotFoundError(
                model_config_id, f"environment variable '{var_name}' is not set"
            )
        return secret
