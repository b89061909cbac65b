"""Read-only catalog access: search, listings and the advisory result cache."""

from .cache import CatalogCache
from .query_service import BookSearchParams, BookSortOptions, CatalogQueryService

__all__ = [
    "BookSearchParams",
    "BookSortOptions",
    "CatalogCache",
    "CatalogQueryService",
]
