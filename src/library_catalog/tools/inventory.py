"""Inventory tool: an author changes the stock of one of their titles."""

import asyncio
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from ..circulation.coordinator import get_coordinator
from ..errors import CatalogError
from .circulation import BOOK_ID_PATTERN, READER_ID_PATTERN
from .responses import (
    catalog_error_response,
    success_response,
    unexpected_error_response,
    validation_error_response,
)


class UpdateStockInput(BaseModel):
    """Input schema for update_book_stock."""

    author_id: str = Field(
        ...,
        description="Identifier of the authenticated author; must own the book",
        pattern=READER_ID_PATTERN,
    )
    book_id: str = Field(..., pattern=BOOK_ID_PATTERN)
    stock: int = Field(..., description="New total number of copies", ge=0, le=10_000)


async def update_book_stock_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    try:
        params = UpdateStockInput.model_validate(arguments)
    except ValidationError as e:
        return validation_error_response("update_book_stock", e)

    try:
        availability = await asyncio.to_thread(
            get_coordinator().set_total_stock,
            params.book_id,
            params.stock,
            params.author_id,
        )
    except CatalogError as e:
        return catalog_error_response(e)
    except Exception:
        return unexpected_error_response("update_book_stock")

    return success_response(
        "Book updated successfully",
        availability.model_dump(),
    )


update_book_stock = {
    "name": "update_book_stock",
    "description": (
        "Change the total stock of a book you published. The new stock cannot be "
        "lower than the number of copies currently borrowed."
    ),
    "inputSchema": UpdateStockInput.model_json_schema(),
    "handler": update_book_stock_handler,
}
