"""
Centralized error handling.

Maps application exceptions to the standard ``{"error", "error_code"}`` JSON
body so route handlers can let command errors propagate.
"""

import logging

from pydantic import ValidationError
from quart import Quart
from werkzeug.exceptions import HTTPException

from application.routes.common.response import APIResponse
from application.routes.common.validation import format_validation_errors
from common.exception import LocalChatError

logger = logging.getLogger(__name__)


def register_error_handlers(app: Quart) -> None:
    """
    Register centralized error handlers for the application.

    Handles:
    - ValidationError (Pydantic) -> 400 Bad Request
    - LocalChatError -> the exception's own status and error code
    - HTTPException (Werkzeug) -> Appropriate status
    - Exception (Generic) -> 500 Internal Server Error

    Args:
        app: Quart application instance
    """

    @app.errorhandler(ValidationError)
    async def handle_validation_error(error: ValidationError):
        errors = format_validation_errors(error)
        logger.warning(f"Validation error: {errors}")
        return APIResponse.error(
            "Validation failed",
            400,
            details={"errors": errors},
            error_code="VALIDATION_ERROR",
        )

    @app.errorhandler(LocalChatError)
    async def handle_local_chat_error(error: LocalChatError):
        """
        Handle command and lookup errors.

        Rejected commands (e.g. already streaming) are expected and logged at
        INFO; server-side failures are logged as errors.
        """
        if error.status_code >= 500:
            logger.error(f"{type(error).__name__}: {error}")
        else:
            logger.info(f"Command rejected ({error.error_code}): {error}")
        return APIResponse.error(
            str(error), error.status_code, error_code=error.error_code
        )

    @app.errorhandler(HTTPException)
    async def handle_http_exception(error: HTTPException):
        """Preserve the original HTTP status code."""
        logger.info(f"HTTP exception: {error.code} - {error.description}")
        return APIResponse.error(
            error.description or error.name,
            error.code or 500,
            error_code=error.name.upper().replace(" ", "_"),
        )

    @app.errorhandler(Exception)
    async def handle_generic_exception(error: Exception):
        """
        Handle all uncaught exceptions.

        Logs full stack trace for debugging.
        """
        logger.exception(f"Unhandled exception: {error}")
        return APIResponse.internal_error("An unexpected error occurred")
