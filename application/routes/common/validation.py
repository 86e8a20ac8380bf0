"""
Validation utilities for route handlers.

Provides a decorator for automatic request validation using Pydantic models.
"""

import logging
from functools import wraps
from typing import Any, Dict, List, Type, TypeVar

from pydantic import BaseModel, ValidationError
from quart import request

from application.routes.common.response import APIResponse

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


def format_validation_errors(error: ValidationError) -> List[Dict[str, Any]]:
    """Flatten pydantic errors into ``{"field", "message", "type"}`` entries."""
    errors = []
    for err in error.errors():
        field = " -> ".join(str(loc) for loc in err["loc"])
        errors.append({"field": field, "message": err["msg"], "type": err["type"]})
    return errors


def validate_json(model: Type[T]):
    """
    Decorator to validate JSON request body against Pydantic model.

    The validated model is passed to the handler as the ``data`` keyword
    argument.

    Args:
        model: Pydantic model class for validation

    Example:
        >>> @validate_json(SendMessageRequest)
        >>> async def send_message(conversation_id: str, data: SendMessageRequest):
        >>>     ack = await dispatcher.send(conversation_id, data.content)
        >>>     return APIResponse.success(ack, 202)

    Validation errors are returned as 400 Bad Request with detailed messages.
    """

    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            json_data = await request.get_json(silent=True)
            if json_data is None:
                return APIResponse.error(
                    "Request body required",
                    400,
                    details={"expected": "application/json"},
                    error_code="VALIDATION_ERROR",
                )

            try:
                validated = model.model_validate(json_data)
            except ValidationError as e:
                errors = format_validation_errors(e)
                logger.warning(f"Validation error in {func.__name__}: {errors}")
                return APIResponse.error(
                    "Validation failed",
                    400,
                    details={"errors": errors},
                    error_code="VALIDATION_ERROR",
                )

            return await func(*args, data=validated, **kwargs)

        return wrapper

    return decorator
