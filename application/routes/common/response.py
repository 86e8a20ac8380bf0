"""
Response utilities for standardized API responses.

Provides consistent response formatting across all routes.
"""

from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel
from quart import Response, jsonify


class APIResponse:
    """
    Standardized API response helper.

    Ensures consistent response format across all endpoints.
    """

    @staticmethod
    def success(data: Any, status: int = 200) -> Tuple[Response, int]:
        """
        Create a successful response.

        Args:
            data: Response data (dict, list, pydantic model or serializable object)
            status: HTTP status code (default: 200)

        Returns:
            tuple: (Response object, status code)

        Example:
            >>> return APIResponse.success({"conversations": [...]})
            >>> return APIResponse.success(ack, 202)
        """
        if isinstance(data, BaseModel):
            data = data.model_dump(mode="json")
        return jsonify(data), status

    @staticmethod
    def error(
        message: str,
        status: int = 400,
        details: Any = None,
        error_code: Optional[str] = None,
    ) -> Tuple[Response, int]:
        """
        Create an error response.

        Args:
            message: Error message
            status: HTTP status code (default: 400)
            details: Additional error details (optional)
            error_code: Error code for client-side handling (optional)

        Returns:
            tuple: (Response object, status code)

        Example:
            >>> return APIResponse.error("Invalid request", 400)
            >>> return APIResponse.error("Busy", 409, error_code="ALREADY_STREAMING")
        """
        error_data: Dict[str, Any] = {"error": message}
        if details is not None:
            error_data["details"] = details
        if error_code is not None:
            error_data["error_code"] = error_code
        return jsonify(error_data), status

    @staticmethod
    def internal_error(message: str = "Internal server error") -> Tuple[Response, int]:
        """
        Create a 500 Internal Server Error response.

        Args:
            message: Custom error message

        Returns:
            tuple: (Response object, 500)
        """
        return APIResponse.error(message, 500, error_code="INTERNAL_ERROR")
