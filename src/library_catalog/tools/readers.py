"""Reader account tool: delete_reader."""

import asyncio
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from ..circulation.coordinator import get_coordinator
from ..errors import CatalogError
from .circulation import READER_ID_PATTERN
from .responses import (
    catalog_error_response,
    success_response,
    unexpected_error_response,
    validation_error_response,
)


class DeleteReaderInput(BaseModel):
    """Input schema for delete_reader."""

    reader_id: str = Field(
        ...,
        description="Identifier of the reader account to remove",
        pattern=READER_ID_PATTERN,
    )


async def delete_reader_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    try:
        params = DeleteReaderInput.model_validate(arguments)
    except ValidationError as e:
        return validation_error_response("delete_reader", e)

    try:
        await asyncio.to_thread(get_coordinator().delete_reader, params.reader_id)
    except CatalogError as e:
        return catalog_error_response(e)
    except Exception:
        return unexpected_error_response("delete_reader")

    return success_response("Reader deleted successfully", {"reader_id": params.reader_id})


delete_reader = {
    "name": "delete_reader",
    "description": "Delete a reader account. Refused while the reader still holds books.",
    "inputSchema": DeleteReaderInput.model_json_schema(),
    "handler": delete_reader_handler,
}
