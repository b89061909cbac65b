"""
Response helpers shared by the tool handlers.

Tools answer with a ``content`` array of text items. Successful calls add a
``data`` object with the structured payload; failed calls set ``isError`` and
add an ``error`` object carrying the stable error kind.
"""

import logging
from typing import Any

from pydantic import ValidationError

from ..errors import CatalogError

logger = logging.getLogger(__name__)


def success_response(message: str, data: dict[str, Any]) -> dict[str, Any]:
    return {
        "content": [{"type": "text", "text": message}],
        "data": data,
    }


def error_response(kind: str, message: str) -> dict[str, Any]:
    return {
        "isError": True,
        "error": {"kind": kind, "message": message},
        "content": [{"type": "text", "text": message}],
    }


def catalog_error_response(error: CatalogError) -> dict[str, Any]:
    return error_response(**error.to_dict())


def validation_error_response(tool: str, error: ValidationError) -> dict[str, Any]:
    logger.warning("Invalid %s parameters: %s", tool, error)
    details = "; ".join(
        f"{'.'.join(str(loc) for loc in err['loc']) or 'input'}: {err['msg']}"
        for err in error.errors()
    )
    return error_response("InvalidInput", f"Invalid {tool} parameters: {details}")


def unexpected_error_response(tool: str) -> dict[str, Any]:
    logger.exception("Unexpected error in %s tool", tool)
    return error_response("InternalError", "An unexpected error occurred")
