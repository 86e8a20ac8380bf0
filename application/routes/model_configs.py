"""Model configuration routes: manage the OpenAI-compatible endpoints."""

import logging

from quart import Blueprint

from application.entity.model_config import ModelConfig
from application.models import AddModelConfigRequest, UpdateModelConfigRequest
from application.routes.common.response import APIResponse
from application.routes.common.validation import validate_json
from application.services.service_factory import get_service_factory
from common.exception import ModelConfigNotFoundError

logger = logging.getLogger(__name__)

model_configs_bp = Blueprint("model_configs", __name__)


@model_configs_bp.route("", methods=["GET"])
async def list_model_configs():
    configs = await get_service_factory().model_config_repository.list_model_configs()
    return APIResponse.success(
        {"model_configs": [c.model_dump(mode="json") for c in configs]}
    )


@model_configs_bp.route("", methods=["POST"])
@validate_json(AddModelConfigRequest)
async def add_model_config(data: AddModelConfigRequest):
    """Register a model config. Only a reference to the API key is stored."""
    config = ModelConfig(
        name=data.name,
        api_url=data.api_url,
        api_key_ref=data.api_key_ref,
        provider_options=data.provider_options,
    )
    await get_service_factory().model_config_repository.add_model_config(config)
    return APIResponse.success(config.model_dump(mode="json"), 201)


@model_configs_bp.route("/<config_id>", methods=["PUT"])
@validate_json(UpdateModelConfigRequest)
async def update_model_config(config_id: str, data: UpdateModelConfigRequest):
    """Replace the endpoint, credential reference and options of a config."""
    repository = get_service_factory().model_config_repository
    existing = await repository.get_model_config(config_id)
    if existing is None:
        raise ModelConfigNotFoundError(config_id)

    config = existing.model_copy(
        update={
            "name": data.name,
            "api_url": data.api_url,
            "api_key_ref": data.api_key_ref,
            "provider_options": data.provider_options,
        }
    )
    if not await repository.update_model_config(config):
        raise ModelConfigNotFoundError(config_id)
    return APIResponse.success(config.model_dump(mode="json"))


@model_configs_bp.route("/<config_id>", methods=["DELETE"])
async def delete_model_config(config_id: str):
    repository = get_service_factory().model_config_repository
    if not await repository.delete_model_config(config_id):
        raise ModelConfigNotFoundError(config_id)
    return APIResponse.success({"deleted": config_id})
