"""
Circulation tools: borrow_book, return_book, list_borrowed_books.

These handlers stand where an HTTP controller would: they validate the
identifiers, call the coordinator, and map the outcome onto a response.

The coordinator is synchronous and may wait on record locks or retry a
conflicting commit, so it runs in a worker thread. If the awaiting request is
cancelled, the worker still finishes its transaction; a cancellation only
decides whether the caller sees the response, never what was committed.
"""

import asyncio
import logging
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from ..circulation.coordinator import get_coordinator
from ..errors import CatalogError
from .responses import (
    catalog_error_response,
    success_response,
    unexpected_error_response,
    validation_error_response,
)

logger = logging.getLogger(__name__)

READER_ID_PATTERN = r"^user_[a-f0-9]{6,}$"
BOOK_ID_PATTERN = r"^book_[a-f0-9]{6,}$"


class CirculationInput(BaseModel):
    """Input schema for borrow_book and return_book."""

    reader_id: str = Field(
        ...,
        description="Identifier of the authenticated reader",
        pattern=READER_ID_PATTERN,
        examples=["user_9b2c4e6f8a10"],
    )

    book_id: str = Field(
        ...,
        description="Identifier of the book",
        pattern=BOOK_ID_PATTERN,
        examples=["book_3f9a1c2b7d4e"],
    )


class BorrowedBooksInput(BaseModel):
    """Input schema for list_borrowed_books."""

    reader_id: str = Field(..., pattern=READER_ID_PATTERN)


async def borrow_book_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Borrow one copy of a book for a reader."""
    try:
        params = CirculationInput.model_validate(arguments)
    except ValidationError as e:
        return validation_error_response("borrow", e)

    try:
        outcome = await asyncio.to_thread(
            get_coordinator().borrow, params.reader_id, params.book_id
        )
    except CatalogError as e:
        logger.info("Borrow rejected (%s): %s", e.kind, e.message)
        return catalog_error_response(e)
    except Exception:
        return unexpected_error_response("borrow_book")

    return success_response(
        "Book borrowed successfully",
        {
            "book": {
                "id": outcome.book_id,
                "title": outcome.title,
                "genre": outcome.genre,
                "remaining_stock": outcome.remaining_stock,
            },
            "book_id": outcome.book_id,
            "remaining_stock": outcome.remaining_stock,
        },
    )


async def return_book_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Return a borrowed copy."""
    try:
        params = CirculationInput.model_validate(arguments)
    except ValidationError as e:
        return validation_error_response("return", e)

    try:
        outcome = await asyncio.to_thread(
            get_coordinator().return_book, params.reader_id, params.book_id
        )
    except CatalogError as e:
        logger.info("Return rejected (%s): %s", e.kind, e.message)
        return catalog_error_response(e)
    except Exception:
        return unexpected_error_response("return_book")

    return success_response(
        "Book returned successfully",
        {
            "book": {
                "id": outcome.book_id,
                "title": outcome.title,
                "genre": outcome.genre,
                "available_stock": outcome.available_stock,
            },
            "book_id": outcome.book_id,
            "available_stock": outcome.available_stock,
        },
    )


async def list_borrowed_books_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """List a reader's current loans and remaining borrow slots."""
    try:
        params = BorrowedBooksInput.model_validate(arguments)
    except ValidationError as e:
        return validation_error_response("list_borrowed_books", e)

    try:
        borrowed = await asyncio.to_thread(get_coordinator().borrowed_books, params.reader_id)
    except CatalogError as e:
        return catalog_error_response(e)
    except Exception:
        return unexpected_error_response("list_borrowed_books")

    if borrowed.total_borrowed:
        message = (
            f"Reader holds {borrowed.total_borrowed} book(s); "
            f"{borrowed.remaining_slots} slot(s) remaining"
        )
    else:
        message = "Reader holds no books"

    return success_response(message, borrowed.model_dump(mode="json"))


borrow_book = {
    "name": "borrow_book",
    "description": (
        "Borrow one copy of a book for a reader. Fails if the reader already holds "
        "the title, holds the maximum of 5 titles, or no copies are available."
    ),
    "inputSchema": CirculationInput.model_json_schema(),
    "handler": borrow_book_handler,
}

return_book = {
    "name": "return_book",
    "description": "Return a copy of a book the reader currently holds.",
    "inputSchema": CirculationInput.model_json_schema(),
    "handler": return_book_handler,
}

list_borrowed_books = {
    "name": "list_borrowed_books",
    "description": "List the books a reader currently holds and how many more they may borrow.",
    "inputSchema": BorrowedBooksInput.model_json_schema(),
    "handler": list_borrowed_books_handler,
}
