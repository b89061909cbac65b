"""
Book Ledger - the authoritative store of per-title stock and holders.

The ledger owns three facts about every book:

1. ``total_stock``: how many lendable copies exist
2. ``book_holders``: which readers currently hold a copy
3. ``available_copies``: ``total_stock - |holders|``, kept in the row so the
   catalog can filter and sort on it

Mutating methods stage their changes in the caller's session and flush them,
but never commit. The circulation coordinator commits the ledger and reader
holdings together, which is what makes a borrow or return atomic. Every
mutation touches the ``books`` row, bumping its version, so a concurrent
writer working from an older snapshot fails with a conflict instead of
silently overwriting the count.
"""

import logging
from datetime import datetime
from uuid import uuid4

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import (
    AlreadyHeldError,
    InvalidInputError,
    NotFoundError,
    NotHeldError,
    OutOfStockError,
    StillBorrowedError,
    StockBelowHeldCountError,
)
from ..models.book import Availability
from ..models.book import Book as BookModel
from .schema import MAX_STOCK, BookHolder
from .schema import Book as BookDB
from .session import classify_storage_error, safe_query

logger = logging.getLogger(__name__)

# Length bounds after stripping, matching the Book response model
TITLE_LENGTH = (1, 200)
GENRE_LENGTH = (2, 50)


class BookLedger:
    """Per-book stock and holder set, scoped to one session."""

    def __init__(self, session: Session, max_stock: int = MAX_STOCK):
        self.session = session
        self.max_stock = min(max_stock, MAX_STOCK)

    # -- reads ---------------------------------------------------------------

    def get_book(self, book_id: str) -> BookDB:
        """
        Load the book row.

        Raises:
            NotFoundError: If the book does not exist
        """
        book = safe_query(
            self.session,
            lambda s: s.get(BookDB, book_id),
            "Failed to get book",
        )
        if book is None:
            raise NotFoundError(f"Book {book_id} not found")
        return book

    def get_availability(self, book_id: str) -> Availability:
        """
        Report total and available copies.

        Raises:
            NotFoundError: If the book does not exist
        """
        return self._availability(self.get_book(book_id))

    def holders(self, book_id: str) -> set[str]:
        """Reader ids currently holding ``book_id``."""
        self.get_book(book_id)
        rows = safe_query(
            self.session,
            lambda s: s.execute(
                select(BookHolder.reader_id).where(BookHolder.book_id == book_id)
            ).scalars().all(),
            "Failed to list book holders",
        )
        return set(rows)

    def holder_count(self, book_id: str) -> int:
        return (
            safe_query(
                self.session,
                lambda s: s.execute(
                    select(func.count())
                    .select_from(BookHolder)
                    .where(BookHolder.book_id == book_id)
                ).scalar(),
                "Failed to count book holders",
            )
            or 0
        )

    def is_holder(self, book_id: str, reader_id: str) -> bool:
        row = safe_query(
            self.session,
            lambda s: s.get(BookHolder, (book_id, reader_id)),
            "Failed to check book holder",
        )
        return row is not None

    # -- circulation ---------------------------------------------------------

    def add_holder(self, book_id: str, reader_id: str) -> Availability:
        """
        Record ``reader_id`` as holding one copy of ``book_id``.

        Raises:
            NotFoundError: If the book does not exist
            AlreadyHeldError: If the reader already holds a copy
            OutOfStockError: If no copies are available
        """
        book = self.get_book(book_id)

        if self.is_holder(book_id, reader_id):
            raise AlreadyHeldError(f"Reader {reader_id} already holds book {book_id}")

        if book.available_copies <= 0:
            raise OutOfStockError(f"No copies of '{book.title}' are available")

        self.session.add(BookHolder(book_id=book_id, reader_id=reader_id, borrowed_at=datetime.now()))
        book.available_copies -= 1
        book.updated_at = datetime.now()
        self._flush("add book holder")

        return self._availability(book)

    def remove_holder(self, book_id: str, reader_id: str) -> Availability:
        """
        Release the copy of ``book_id`` held by ``reader_id``.

        Raises:
            NotFoundError: If the book does not exist
            NotHeldError: If the reader does not hold a copy
        """
        book = self.get_book(book_id)

        holder = safe_query(
            self.session,
            lambda s: s.get(BookHolder, (book_id, reader_id)),
            "Failed to get book holder",
        )
        if holder is None:
            raise NotHeldError(f"Reader {reader_id} does not hold book {book_id}")

        self.session.delete(holder)
        book.available_copies += 1
        book.updated_at = datetime.now()
        self._flush("remove book holder")

        return self._availability(book)

    # -- inventory -----------------------------------------------------------

    def set_total_stock(self, book_id: str, new_stock: int) -> Availability:
        """
        Change a title's total stock.

        Raising the stock while copies are out just recomputes the available
        count; lowering it is allowed down to the number of current holders.

        Raises:
            InvalidInputError: If ``new_stock`` is outside ``0..max_stock``
            NotFoundError: If the book does not exist
            StockBelowHeldCountError: If ``new_stock`` is below the holder count
        """
        self._validate_stock(new_stock)
        book = self.get_book(book_id)

        held = self.holder_count(book_id)
        if new_stock < held:
            raise StockBelowHeldCountError(
                f"Cannot reduce stock below current borrowed copies ({held})"
            )

        book.total_stock = new_stock
        book.available_copies = new_stock - held
        book.updated_at = datetime.now()
        self._flush("set total stock")

        logger.debug("Book %s stock set to %d (%d held)", book_id, new_stock, held)
        return self._availability(book)

    def register_book(self, author_id: str, title: str, genre: str, stock: int) -> BookModel:
        """
        Stage a new title with no holders.

        Raises:
            InvalidInputError: If the title, genre or stock is out of range
        """
        title = self._clean_text(title, "Title", TITLE_LENGTH)
        genre = self._clean_text(genre, "Genre", GENRE_LENGTH)
        self._validate_stock(stock)
        book = BookDB(
            id=f"book_{uuid4().hex[:12]}",
            title=title,
            genre=genre,
            author_id=author_id,
            total_stock=stock,
            available_copies=stock,
        )
        self.session.add(book)
        self._flush("register book")
        return BookModel.model_validate(book, from_attributes=True)

    def update_details(
        self, book_id: str, title: str | None = None, genre: str | None = None
    ) -> BookModel:
        """
        Change a title's descriptive fields. ``None`` leaves a field as is.

        Raises:
            NotFoundError: If the book does not exist
            InvalidInputError: If the title or genre is out of range
        """
        book = self.get_book(book_id)
        if title is not None:
            book.title = self._clean_text(title, "Title", TITLE_LENGTH)
        if genre is not None:
            book.genre = self._clean_text(genre, "Genre", GENRE_LENGTH)
        book.updated_at = datetime.now()
        self._flush("update book details")
        return BookModel.model_validate(book, from_attributes=True)

    def remove_book(self, book_id: str) -> None:
        """
        Stage deletion of a title.

        Raises:
            NotFoundError: If the book does not exist
            StillBorrowedError: If any copy is still held
        """
        book = self.get_book(book_id)
        if self.holder_count(book_id) > 0:
            raise StillBorrowedError(
                "Cannot delete book that is currently borrowed. "
                "Please wait for all copies to be returned."
            )
        self.session.delete(book)
        self._flush("delete book")

    # -- helpers -------------------------------------------------------------

    def _validate_stock(self, stock: int) -> None:
        if isinstance(stock, bool) or not isinstance(stock, int):
            raise InvalidInputError("Stock must be an integer")
        if stock < 0:
            raise InvalidInputError("Stock cannot be negative")
        if stock > self.max_stock:
            raise InvalidInputError(f"Stock cannot exceed {self.max_stock}")

    @staticmethod
    def _clean_text(value: str, field: str, bounds: tuple[int, int]) -> str:
        if not isinstance(value, str):
            raise InvalidInputError(f"{field} must be text")
        value = value.strip()
        low, high = bounds
        if not low <= len(value) <= high:
            raise InvalidInputError(f"{field} must be between {low} and {high} characters")
        return value

    def _flush(self, operation: str) -> None:
        try:
            self.session.flush()
        except SQLAlchemyError as e:
            raise classify_storage_error(e, operation) from e

    @staticmethod
    def _availability(book: BookDB) -> Availability:
        return Availability(
            book_id=book.id,
            total_stock=book.total_stock,
            available_count=book.available_copies,
        )
