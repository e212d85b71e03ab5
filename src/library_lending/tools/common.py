"""
Response helpers shared by the tool handlers.

Every handler answers in one of two shapes:

    {"content": [{"type": "text", "text": ...}], "data": {...}}
    {"isError": True, "errorType": ..., "content": [{"type": "text", "text": ...}]}

``errorType`` lets a client tell a missing record (``not_found``) from a
collision (``conflict``), a rejected request (``bad_request``), malformed
arguments (``invalid_input``) and a server fault (``internal_error``).
"""

import logging
from typing import Any

from pydantic import ValidationError

from ..database.repository import BadRequestError, ConflictError, NotFoundError

logger = logging.getLogger(__name__)


def success_response(message: str, data: dict[str, Any]) -> dict[str, Any]:
    return {"content": [{"type": "text", "text": message}], "data": data}


def error_response(message: str, error_type: str) -> dict[str, Any]:
    return {
        "isError": True,
        "errorType": error_type,
        "content": [{"type": "text", "text": message}],
    }


def invalid_input_response(tool_name: str, error: ValidationError) -> dict[str, Any]:
    logger.warning("Invalid %s parameters: %s", tool_name, error)
    return error_response(f"Invalid {tool_name} parameters: {error}", "invalid_input")


def repository_error_response(operation: str, error: Exception) -> dict[str, Any]:
    """Map a repository failure onto an MCP error response."""
    if isinstance(error, NotFoundError):
        logger.info("%s failed - not found: %s", operation, error)
        return error_response(str(error), "not_found")
    if isinstance(error, ConflictError):
        logger.info("%s failed - conflict: %s", operation, error)
        return error_response(str(error), "conflict")
    if isinstance(error, BadRequestError):
        logger.info("%s failed - business rule: %s", operation, error)
        return error_response(str(error), "bad_request")

    logger.exception("%s failed unexpectedly", operation)
    return error_response(f"{operation} failed: {error!s}", "internal_error")
