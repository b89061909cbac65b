"""
Search tool for the Library Catalog.

Reads go through ``CatalogQueryService`` and the coordinator's advisory
cache. Results reflect committed state as of the query (or of the cached
page, which is dropped on every commit).
"""

import asyncio
import logging
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from ..catalog.query_service import BookSearchParams, BookSortOptions, CatalogQueryService
from ..circulation.coordinator import get_coordinator
from ..database.repository import PaginatedResponse, PaginationParams
from ..errors import CatalogError
from ..models.book import BookSummary
from .responses import (
    catalog_error_response,
    success_response,
    unexpected_error_response,
    validation_error_response,
)

logger = logging.getLogger(__name__)


class SearchCatalogInput(BaseModel):
    """Input schema for the search_catalog tool."""

    title: str | None = Field(
        default=None,
        description="Case-insensitive substring of the title",
        max_length=200,
        examples=["gatsby"],
    )

    genre: str | None = Field(
        default=None,
        description="Case-insensitive substring of the genre",
        max_length=50,
        examples=["Fiction", "Mystery"],
    )

    author_id: str | None = Field(
        default=None,
        description="Only books published by this author",
        pattern=r"^user_[a-f0-9]{6,}$",
    )

    available_only: bool = Field(default=False, description="Only books with available copies")

    page: int = Field(default=1, ge=1, le=1000)

    page_size: int | None = Field(
        default=None,
        description="Results per page; defaults to the configured page size",
        ge=1,
    )

    sort_by: BookSortOptions = Field(default=BookSortOptions.NEWEST)

    @field_validator("title", "genre")
    @classmethod
    def strip_whitespace(cls, v: str | None) -> str | None:
        if v is not None:
            v = v.strip()
            if not v:
                return None
        return v

    def to_search_params(self) -> BookSearchParams:
        return BookSearchParams(
            title=self.title,
            genre=self.genre,
            author_id=self.author_id,
            available_only=self.available_only,
        )

    def to_pagination_params(self) -> PaginationParams:
        if self.page_size is None:
            return PaginationParams(page=self.page)
        return PaginationParams(page=self.page, page_size=self.page_size)


def _run_search(params: SearchCatalogInput) -> PaginatedResponse[BookSummary]:
    coordinator = get_coordinator()
    with coordinator.db.session_scope() as session:
        service = CatalogQueryService(session, cache=coordinator.cache)
        return service.search(
            search_params=params.to_search_params(),
            pagination=params.to_pagination_params(),
            sort_by=params.sort_by,
        )


async def search_catalog_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Search the catalog and return one page of book summaries."""
    try:
        params = SearchCatalogInput.model_validate(arguments)
    except ValidationError as e:
        return validation_error_response("search", e)

    try:
        result = await asyncio.to_thread(_run_search, params)
    except CatalogError as e:
        return catalog_error_response(e)
    except Exception:
        return unexpected_error_response("search_catalog")

    if not result.items:
        message = "No books found matching your search criteria."
    else:
        message = f"Found {result.total} book(s)"
        if result.total > len(result.items):
            message += f" (showing page {result.page} of {result.total_pages})"

    return success_response(
        message,
        {
            "books": [book.model_dump(mode="json") for book in result.items],
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


search_catalog = {
    "name": "search_catalog",
    "description": (
        "Search the catalog by title, genre or author. Each result includes the "
        "number of copies currently available."
    ),
    "inputSchema": SearchCatalogInput.model_json_schema(),
    "handler": search_catalog_handler,
}
