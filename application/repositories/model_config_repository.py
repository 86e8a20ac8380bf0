"""
Model Config Repository.

Stores the OpenAI-compatible endpoints conversations are bound to and seeds a
default entry on first start.
"""

import json
import logging
from typing import List, Optional

import aiosqlite

from application.entity.model_config import ModelConfig
from application.repositories.database import Database
from common.config.config import (
    DEFAULT_MODEL,
    DEFAULT_MODEL_API_KEY_REF,
    DEFAULT_MODEL_API_URL,
    DEFAULT_MODEL_NAME,
)

logger = logging.getLogger(__name__)


class ModelConfigRepository:
    """Repository for model configuration records."""

    _COLUMNS = "id, name, provider, api_url, api_key_ref, provider_options"

    def __init__(self, database: Database):
        self.database = database

    async def list_model_configs(self) -> List[ModelConfig]:
        async with self.database.connection() as conn:
            cur = await conn.execute(
                f"SELECT {self._COLUMNS} FROM model_configs ORDER BY name ASC"
            )
            rows = await cur.fetchall()
        return [self._row_to_config(r) for r in rows]

    async def get_model_config(self, config_id: str) -> Optional[ModelConfig]:
        async with self.database.connection() as conn:
            cur = await conn.execute(
                f"SELECT {self._COLUMNS} FROM model_configs WHERE id = ?", (config_id,)
            )
            row = await cur.fetchone()
        return self._row_to_config(row) if row else None

    async def add_model_config(self, config: ModelConfig) -> ModelConfig:
        async with self.database.connection() as conn:
            await conn.execute(
                f"INSERT INTO model_configs ({self._COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    config.id,
                    config.name,
                    config.provider,
                    config.api_url,
                    config.api_key_ref,
                    json.dumps(config.provider_options),
                ),
            )
            await conn.commit()
        logger.info(f"Added model config {config.name} ({config.id})")
        return config

    async def update_model_config(self, config: ModelConfig) -> bool:
        """Overwrite a stored config. Returns False if it does not exist."""
        async with self.database.connection() as conn:
            cur = await conn.execute(
                "UPDATE model_configs SET name = ?, provider = ?, api_url = ?, "
                "api_key_ref = ?, provider_options = ? WHERE id = ?",
                (
                    config.name,
                    config.provider,
                    config.api_url,
                    config.api_key_ref,
                    json.dumps(config.provider_options),
                    config.id,
                ),
            )
            await conn.commit()
            updated = cur.rowcount > 0
        if updated:
            logger.info(f"Updated model config {config.name} ({config.id})")
        else:
            logger.warning(f"Attempted to update unknown model config {config.id}")
        return updated

    async def delete_model_config(self, config_id: str) -> bool:
        """
        Delete a config. Returns False if it does not exist.

        Conversations still bound to it fail their next generation with a
        configuration error until they are switched to another model.
        """
        async with self.database.connection() as conn:
            cur = await conn.execute(
                "DELETE FROM model_configs WHERE id = ?", (config_id,)
            )
            await conn.commit()
            deleted = cur.rowcount > 0
        if deleted:
            logger.warning(f"Deleted model config {config_id}")
        return deleted

    async def add_default_model_config_if_none(self) -> Optional[ModelConfig]:
        """
        Insert the configured default model config when the table is empty.

        Returns:
            The inserted config, or None if configs already existed
        """
        async with self.database.connection() as conn:
            cur = await conn.execute("SELECT COUNT(*) FROM model_configs")
            (count,) = await cur.fetchone()

        if count:
            logger.debug(f"Found {count} existing model configs, skipping default")
            return None

        logger.info("No model configs found, adding the default config")
        return await self.add_model_config(
            ModelConfig(
                name=DEFAULT_MODEL_NAME,
                api_url=DEFAULT_MODEL_API_URL,
                api_key_ref=DEFAULT_MODEL_API_KEY_REF,
                provider_options={"model": DEFAULT_MODEL},
            )
        )

    @staticmethod
    def _row_to_config(row: aiosqlite.Row) -> ModelConfig:
        raw_options = row["provider_options"]
        return ModelConfig(
            id=row["id"],
            name=row["name"],
            provider=row["provider"],
            api_url=row["api_url"],
            api_key_ref=row["api_key_ref"],
            provider_options=json.loads(raw_options) if raw_options else {},
        )
