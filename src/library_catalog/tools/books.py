"""
Publishing tools: an author adds, edits, lists and removes their titles.

Edits and deletes are checked against the book's author inside the same
locked transaction as the change, so an author can only touch their own
books and a delete can never race a borrow of the same title.
"""

import asyncio
import logging
from typing import Any

from pydantic import BaseModel, Field, ValidationError, model_validator

from ..catalog.query_service import CatalogQueryService
from ..circulation.coordinator import get_coordinator
from ..database.repository import PaginatedResponse, PaginationParams
from ..errors import CatalogError
from ..models.book import Book
from .circulation import BOOK_ID_PATTERN, READER_ID_PATTERN
from .responses import (
    catalog_error_response,
    success_response,
    unexpected_error_response,
    validation_error_response,
)

logger = logging.getLogger(__name__)

AUTHOR_ID_PATTERN = READER_ID_PATTERN


class PublishBookInput(BaseModel):
    """Input schema for publish_book."""

    author_id: str = Field(
        ...,
        description="Identifier of the authenticated author",
        pattern=AUTHOR_ID_PATTERN,
    )
    title: str = Field(..., description="Title of the book", examples=["Middlemarch"])
    genre: str = Field(..., description="Genre of the book", examples=["Classic"])
    stock: int = Field(..., description="Number of lendable copies", ge=0, le=10_000)


class UpdateBookInput(BaseModel):
    """Input schema for update_book. Omitted fields are left unchanged."""

    author_id: str = Field(
        ...,
        description="Identifier of the authenticated author; must own the book",
        pattern=AUTHOR_ID_PATTERN,
    )
    book_id: str = Field(..., pattern=BOOK_ID_PATTERN)
    title: str | None = None
    genre: str | None = None
    stock: int | None = Field(
        default=None, description="New total number of copies", ge=0, le=10_000
    )

    @model_validator(mode="after")
    def require_change(self) -> "UpdateBookInput":
        if self.title is None and self.genre is None and self.stock is None:
            raise ValueError("Nothing to update")
        return self


class DeleteBookInput(BaseModel):
    """Input schema for delete_book."""

    author_id: str = Field(..., pattern=AUTHOR_ID_PATTERN)
    book_id: str = Field(..., pattern=BOOK_ID_PATTERN)


class AuthorBooksInput(BaseModel):
    """Input schema for list_author_books."""

    author_id: str = Field(..., pattern=AUTHOR_ID_PATTERN)
    page: int = Field(default=1, ge=1, le=1000)
    page_size: int | None = Field(default=None, ge=1)

    def to_pagination_params(self) -> PaginationParams:
        if self.page_size is None:
            return PaginationParams(page=self.page)
        return PaginationParams(page=self.page, page_size=self.page_size)


def _book_data(book: Book) -> dict[str, Any]:
    return book.model_dump(mode="json")


async def publish_book_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Add a new title for an author."""
    try:
        params = PublishBookInput.model_validate(arguments)
    except ValidationError as e:
        return validation_error_response("publish_book", e)

    try:
        book = await asyncio.to_thread(
            get_coordinator().publish_book,
            params.author_id,
            params.title,
            params.genre,
            params.stock,
        )
    except CatalogError as e:
        return catalog_error_response(e)
    except Exception:
        return unexpected_error_response("publish_book")

    return success_response("Book created successfully", {"book": _book_data(book)})


async def update_book_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Edit the title, genre or stock of the author's own book."""
    try:
        params = UpdateBookInput.model_validate(arguments)
    except ValidationError as e:
        return validation_error_response("update_book", e)

    try:
        book = await asyncio.to_thread(
            get_coordinator().update_book,
            params.book_id,
            owner_id=params.author_id,
            title=params.title,
            genre=params.genre,
            stock=params.stock,
        )
    except CatalogError as e:
        logger.info("Update rejected (%s): %s", e.kind, e.message)
        return catalog_error_response(e)
    except Exception:
        return unexpected_error_response("update_book")

    return success_response("Book updated successfully", {"book": _book_data(book)})


async def delete_book_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Remove the author's own book once every copy is back."""
    try:
        params = DeleteBookInput.model_validate(arguments)
    except ValidationError as e:
        return validation_error_response("delete_book", e)

    try:
        await asyncio.to_thread(
            get_coordinator().delete_book, params.book_id, owner_id=params.author_id
        )
    except CatalogError as e:
        logger.info("Delete rejected (%s): %s", e.kind, e.message)
        return catalog_error_response(e)
    except Exception:
        return unexpected_error_response("delete_book")

    return success_response("Book deleted successfully", {"book_id": params.book_id})


def _list_author_books(params: AuthorBooksInput) -> PaginatedResponse[Book]:
    coordinator = get_coordinator()
    with coordinator.db.session_scope() as session:
        return CatalogQueryService(session).books_by_author(
            params.author_id, params.to_pagination_params()
        )


async def list_author_books_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """One page of an author's titles, newest first."""
    try:
        params = AuthorBooksInput.model_validate(arguments)
    except ValidationError as e:
        return validation_error_response("list_author_books", e)

    try:
        result = await asyncio.to_thread(_list_author_books, params)
    except CatalogError as e:
        return catalog_error_response(e)
    except Exception:
        return unexpected_error_response("list_author_books")

    return success_response(
        f"Author has {result.total} book(s)",
        {
            "books": [_book_data(book) for book in result.items],
            "pagination": {
                "page": result.page,
                "page_size": result.page_size,
                "total": result.total,
                "total_pages": result.total_pages,
                "has_next": result.has_next,
                "has_previous": result.has_previous,
            },
        },
    )


publish_book = {
    "name": "publish_book",
    "description": "Add a new book to the catalog. Only authors may publish.",
    "inputSchema": PublishBookInput.model_json_schema(),
    "handler": publish_book_handler,
}

update_book = {
    "name": "update_book",
    "description": (
        "Edit a book you published. Stock cannot be lowered below the number of "
        "copies currently borrowed."
    ),
    "inputSchema": UpdateBookInput.model_json_schema(),
    "handler": update_book_handler,
}

delete_book = {
    "name": "delete_book",
    "description": "Delete a book you published. Refused while any copy is borrowed.",
    "inputSchema": DeleteBookInput.model_json_schema(),
    "handler": delete_book_handler,
}

list_author_books = {
    "name": "list_author_books",
    "description": "List the books an author has published, newest first.",
    "inputSchema": AuthorBooksInput.model_json_schema(),
    "handler": list_author_books_handler,
}
