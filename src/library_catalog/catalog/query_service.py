"""
Catalog Query Service - read-only search and listing over book records.

Only committed Book Ledger state is read; the service never takes circulation
locks and never writes. Results may trail an in-flight borrow or return, but
since ``available_copies`` and ``total_stock`` commit together with the
holder rows, a page never shows a negative count or a stock/holder mismatch.
"""

import enum
import logging

from pydantic import BaseModel, Field, field_validator
from sqlalchemy import and_, func, select

from ..database.repository import BaseRepository, PaginatedResponse, PaginationParams
from ..database.schema import Book as BookDB
from ..database.schema import User as UserDB
from ..database.session import safe_query
from ..errors import NotFoundError
from ..models.book import Book as BookModel
from ..models.book import BookSummary
from .cache import CatalogCache

logger = logging.getLogger(__name__)


class BookSearchParams(BaseModel):
    """Filters accepted by ``CatalogQueryService.search``."""

    title: str | None = Field(default=None, max_length=200)  # Title contains
    genre: str | None = Field(default=None, max_length=50)  # Genre contains
    author_id: str | None = None  # Exact author
    available_only: bool = False

    @field_validator("title", "genre")
    @classmethod
    def strip_whitespace(cls, v: str | None) -> str | None:
        if v is not None:
            v = v.strip()
            if not v:
                return None
        return v


class BookSortOptions(str, enum.Enum):
    """Sorting options for book queries."""

    NEWEST = "newest"
    TITLE = "title"
    AVAILABILITY = "availability"


class CatalogQueryService(BaseRepository[BookDB, BookModel]):
    """Read path over the catalog, optionally fronted by an advisory cache."""

    def __init__(self, session, cache: CatalogCache | None = None):
        super().__init__(session)
        self.cache = cache

    @property
    def model_class(self):
        return BookDB

    @property
    def response_schema(self):
        return BookModel

    def search(
        self,
        search_params: BookSearchParams | None = None,
        pagination: PaginationParams | None = None,
        sort_by: BookSortOptions = BookSortOptions.NEWEST,
    ) -> PaginatedResponse[BookSummary]:
        """
        Search books and return a page of summaries with availability.

        Args:
            search_params: Filter criteria (all optional)
            pagination: Page and page size (page size capped by ``max_page_size``)
            sort_by: Ordering of the results
        """
        search_params = search_params or BookSearchParams()
        pagination = pagination or PaginationParams()
        pagination.validate_params()

        if self.cache is None:
            return self._search(search_params, pagination, sort_by)

        key = "|".join(
            (
                search_params.model_dump_json(),
                pagination.model_dump_json(),
                sort_by.value,
            )
        )
        result = self.cache.get_or_compute(
            key, lambda: self._search(search_params, pagination, sort_by)
        )
        return result.model_copy(deep=True)

    def _search(
        self,
        search_params: BookSearchParams,
        pagination: PaginationParams,
        sort_by: BookSortOptions,
    ) -> PaginatedResponse[BookSummary]:
        filters = []

        if search_params.title:
            filters.append(BookDB.title.ilike(f"%{search_params.title}%"))

        if search_params.genre:
            filters.append(BookDB.genre.ilike(f"%{search_params.genre}%"))

        if search_params.author_id:
            filters.append(BookDB.author_id == search_params.author_id)

        if search_params.available_only:
            filters.append(BookDB.available_copies > 0)

        query = select(BookDB, UserDB.name).join(UserDB, BookDB.author_id == UserDB.id)
        count_query = select(func.count()).select_from(BookDB)
        if filters:
            query = query.where(and_(*filters))
            count_query = count_query.where(and_(*filters))

        order = {
            BookSortOptions.NEWEST: (BookDB.created_at.desc(), BookDB.title.asc()),
            BookSortOptions.TITLE: (BookDB.title.asc(), BookDB.id.asc()),
            BookSortOptions.AVAILABILITY: (BookDB.available_copies.desc(), BookDB.title.asc()),
        }[sort_by]
        # Long-lived sessions must not serve availability from their identity map
        query = query.order_by(*order).execution_options(populate_existing=True)

        total = (
            safe_query(
                self.session, lambda s: s.execute(count_query).scalar(), "Failed to count books"
            )
            or 0
        )

        query = query.offset(pagination.offset).limit(pagination.page_size)
        rows = safe_query(
            self.session,
            lambda s: s.execute(query).all(),
            "Failed to search books",
        )

        items = [self._to_summary(book, author_name) for book, author_name in rows]
        logger.debug("Catalog search matched %d book(s)", total)
        return PaginatedResponse[BookSummary].build(items, total, pagination)

    def get_book(self, book_id: str) -> BookModel:
        """
        Get a single title.

        Raises:
            NotFoundError: If the book does not exist
        """
        book = self.get_by_id(book_id)
        if book is None:
            raise NotFoundError(f"Book {book_id} not found")
        return book

    def summaries(self, book_ids: set[str]) -> list[BookSummary]:
        """Summaries for a set of ids, ordered by title. Unknown ids are skipped."""
        if not book_ids:
            return []
        query = (
            select(BookDB, UserDB.name)
            .join(UserDB, BookDB.author_id == UserDB.id)
            .where(BookDB.id.in_(book_ids))
            .order_by(BookDB.title.asc())
            .execution_options(populate_existing=True)
        )
        rows = safe_query(
            self.session, lambda s: s.execute(query).all(), "Failed to load book summaries"
        )
        return [self._to_summary(book, author_name) for book, author_name in rows]

    def books_by_author(
        self, author_id: str, pagination: PaginationParams | None = None
    ) -> PaginatedResponse[BookModel]:
        """All titles published by one author, newest first."""
        query = (
            select(BookDB)
            .where(BookDB.author_id == author_id)
            .order_by(BookDB.created_at.desc(), BookDB.title.asc())
        )
        return self._paginate_query(query, pagination)

    def genres(self) -> list[str]:
        query = select(BookDB.genre).distinct().order_by(BookDB.genre)
        results = safe_query(
            self.session, lambda s: s.execute(query).scalars().all(), "Failed to get genres"
        )
        return list(results)

    @staticmethod
    def _to_summary(book: BookDB, author_name: str | None) -> BookSummary:
        return BookSummary(
            id=book.id,
            title=book.title,
            genre=book.genre,
            author_id=book.author_id,
            author_name=author_name,
            total_stock=book.total_stock,
            available_count=book.available_copies,
            created_at=book.created_at,
        )
