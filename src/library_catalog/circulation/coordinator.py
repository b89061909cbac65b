"""
Borrow/Return Coordinator.

The coordinator is the only writer of circulation state. Each borrow or
return is one atomic step across the Book Ledger and Reader Holdings:

1. Take the record locks for the book and the reader, always in the same
   global order (books before readers, then by id), so overlapping requests
   serialize and disjoint ones run in parallel.
2. Open a fresh session and check every precondition against committed
   state. A violation raises a typed error before anything is written.
3. Stage the ledger and holdings changes and commit them in one database
   transaction. Both parent rows carry a version counter, so a writer outside
   this process that raced us turns into a conflict rather than a lost update.
4. Release the locks and invalidate the advisory catalog cache.

Conflicts (lost version races, a busy SQLite file, lock timeouts) are retried
a bounded number of times and then surface as ``TransientError``. Anything
the storage layer raises that is not a conflict is logged and reported as an
opaque ``InternalError``.
"""

import logging
import threading
import time
from collections.abc import Callable, Iterable
from typing import TypeVar

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..catalog.cache import CatalogCache
from ..catalog.query_service import CatalogQueryService
from ..config import ServerConfig, get_config
from ..database.book_ledger import BookLedger
from ..database.reader_holdings import ReaderHoldings
from ..database.schema import BookHolder, ReaderHolding
from ..database.schema import Book as BookDB
from ..database.schema import User as UserDB
from ..database.session import (
    DatabaseManager,
    classify_storage_error,
    get_db_manager,
    safe_commit,
)
from ..database.user_repository import UserRepository
from ..errors import (
    AlreadyBorrowedError,
    AlreadyHeldError,
    CatalogError,
    ConflictError,
    ForbiddenError,
    InternalError,
    LimitReachedError,
    NotBorrowedError,
    NotHeldError,
    OutOfStockError,
    StillBorrowedError,
    TransientError,
)
from ..models.book import Availability
from ..models.book import Book as BookModel
from ..models.circulation import BorrowedBooks, BorrowOutcome, ReturnOutcome
from .locks import LockKey, LockRegistry, book_key, reader_key

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CirculationCoordinator:
    """
    Orchestrates borrow, return and inventory changes as atomic steps.

    One coordinator (and therefore one lock registry) should be shared by
    every request handler in a process; ``get_coordinator()`` provides that
    singleton.
    """

    def __init__(
        self,
        db_manager: DatabaseManager | None = None,
        config: ServerConfig | None = None,
        locks: LockRegistry | None = None,
        cache: CatalogCache | None = None,
    ):
        self.db = db_manager or get_db_manager()
        self.config = config or get_config()
        self.locks = locks or LockRegistry()
        self.cache = cache
        self._commit_listeners: list[Callable[[], None]] = []
        if cache is not None:
            self.add_commit_listener(cache.invalidate)

    def add_commit_listener(self, listener: Callable[[], None]) -> None:
        """Register a callback run after every committed change."""
        self._commit_listeners.append(listener)

    # =========================================================================
    # CIRCULATION
    # =========================================================================

    def borrow(self, reader_id: str, book_id: str) -> BorrowOutcome:
        """
        Lend one copy of ``book_id`` to ``reader_id``.

        Raises:
            NotFoundError: Reader or book does not exist
            ForbiddenError: The user is not a reader
            AlreadyBorrowedError: The reader already holds this title
            LimitReachedError: The reader holds the maximum number of titles
            OutOfStockError: No copies are available
            TransientError: Conflicts persisted through every retry
        """

        def step(session: Session) -> BorrowOutcome:
            ledger, holdings = self._stores(session)
            self._require_reader(holdings, reader_id, "borrow")
            book = ledger.get_book(book_id)

            if holdings.holds(reader_id, book_id):
                raise AlreadyBorrowedError("You have already borrowed this book")

            if holdings.count(reader_id) >= holdings.borrow_limit:
                raise LimitReachedError(
                    f"Borrow limit reached (maximum {holdings.borrow_limit} books)"
                )

            if book.available_copies <= 0:
                raise OutOfStockError("Book is out of stock")

            availability = ledger.add_holder(book_id, reader_id)
            holdings.add_held(reader_id, book_id)

            return BorrowOutcome(
                book_id=book.id,
                reader_id=reader_id,
                title=book.title,
                genre=book.genre,
                remaining_stock=availability.available_count,
            )

        outcome = self._run("borrow", (book_key(book_id), reader_key(reader_id)), step)
        logger.info(
            "Reader %s borrowed book %s (%d left)", reader_id, book_id, outcome.remaining_stock
        )
        return outcome

    def return_book(self, reader_id: str, book_id: str) -> ReturnOutcome:
        """
        Take back the copy of ``book_id`` held by ``reader_id``.

        Raises:
            NotFoundError: Reader or book does not exist
            ForbiddenError: The user is not a reader
            NotBorrowedError: The reader does not hold this title
            TransientError: Conflicts persisted through every retry
        """

        def step(session: Session) -> ReturnOutcome:
            ledger, holdings = self._stores(session)
            self._require_reader(holdings, reader_id, "return")
            book = ledger.get_book(book_id)

            if not holdings.holds(reader_id, book_id):
                raise NotBorrowedError("You have not borrowed this book")

            availability = ledger.remove_holder(book_id, reader_id)
            holdings.remove_held(reader_id, book_id)

            return ReturnOutcome(
                book_id=book.id,
                reader_id=reader_id,
                title=book.title,
                genre=book.genre,
                available_stock=availability.available_count,
            )

        outcome = self._run("return", (book_key(book_id), reader_key(reader_id)), step)
        logger.info(
            "Reader %s returned book %s (%d available)",
            reader_id,
            book_id,
            outcome.available_stock,
        )
        return outcome

    def borrowed_books(self, reader_id: str) -> BorrowedBooks:
        """
        List the titles a reader currently holds.

        Raises:
            NotFoundError: If the reader does not exist
            ForbiddenError: If the user is not a reader
        """

        def read(session: Session) -> BorrowedBooks:
            _, holdings = self._stores(session)
            self._require_reader(holdings, reader_id, "list borrowed books for")
            held = holdings.list_held(reader_id)
            books = CatalogQueryService(session).summaries(held)
            return BorrowedBooks(
                reader_id=reader_id,
                books=books,
                total_borrowed=len(held),
                remaining_slots=max(0, holdings.borrow_limit - len(held)),
            )

        return self._read("list borrowed books", read)

    def get_availability(self, book_id: str) -> Availability:
        """Committed stock snapshot for one title."""
        return self._read(
            "get availability", lambda session: self._stores(session)[0].get_availability(book_id)
        )

    # =========================================================================
    # INVENTORY (owner-initiated)
    # =========================================================================

    def set_total_stock(
        self, book_id: str, new_stock: int, owner_id: str | None = None
    ) -> Availability:
        """
        Change a title's total stock, serialized against borrows of that title.

        Args:
            book_id: Title to edit
            new_stock: New total number of copies
            owner_id: When given, must be the title's author

        Raises:
            NotFoundError: The book does not exist
            ForbiddenError: ``owner_id`` is not the title's author
            InvalidInputError: ``new_stock`` is out of range
            StockBelowHeldCountError: ``new_stock`` is below the number of holders
        """

        def step(session: Session) -> Availability:
            ledger, _ = self._stores(session)
            book = ledger.get_book(book_id)
            self._check_owner(book, owner_id, "update")
            return ledger.set_total_stock(book_id, new_stock)

        availability = self._run("set total stock", (book_key(book_id),), step)
        logger.info("Book %s total stock set to %d", book_id, availability.total_stock)
        return availability

    def update_book(
        self,
        book_id: str,
        owner_id: str | None = None,
        title: str | None = None,
        genre: str | None = None,
        stock: int | None = None,
    ) -> BookModel:
        """
        Edit a title's details and, optionally, its total stock in one step.

        Fields left as ``None`` are unchanged. The stock rule is the same as
        ``set_total_stock``.

        Raises:
            NotFoundError: The book does not exist
            ForbiddenError: ``owner_id`` is not the title's author
            InvalidInputError: A field is out of range
            StockBelowHeldCountError: ``stock`` is below the number of holders
        """

        def step(session: Session) -> BookModel:
            ledger, _ = self._stores(session)
            book = ledger.get_book(book_id)
            self._check_owner(book, owner_id, "update")
            if stock is not None:
                ledger.set_total_stock(book_id, stock)
            return ledger.update_details(book_id, title=title, genre=genre)

        updated = self._run("update book", (book_key(book_id),), step)
        logger.info("Book %s updated", book_id)
        return updated

    def publish_book(self, author_id: str, title: str, genre: str, stock: int) -> BookModel:
        """
        Add a new title owned by ``author_id``.

        Raises:
            NotFoundError: The author does not exist
            ForbiddenError: The user is not an author
            InvalidInputError: The title, genre or stock is out of range
        """

        def step(session: Session) -> BookModel:
            ledger, _ = self._stores(session)
            author = UserRepository(session).require(author_id)
            if author.is_reader:
                raise ForbiddenError("Only authors can create books")
            return ledger.register_book(author_id, title, genre, stock)

        book = self._run("publish book", (), step)
        logger.info("Author %s published book %s", author_id, book.id)
        return book

    def delete_book(self, book_id: str, owner_id: str | None = None) -> None:
        """
        Remove a title that no reader currently holds.

        Raises:
            NotFoundError: The book does not exist
            ForbiddenError: ``owner_id`` is not the title's author
            StillBorrowedError: Copies are still out
        """

        def step(session: Session) -> None:
            ledger, _ = self._stores(session)
            book = ledger.get_book(book_id)
            self._check_owner(book, owner_id, "delete")
            ledger.remove_book(book_id)

        self._run("delete book", (book_key(book_id),), step)
        logger.info("Book %s deleted", book_id)

    def delete_reader(self, reader_id: str) -> None:
        """
        Remove a reader who holds no books.

        Raises:
            NotFoundError: The reader does not exist
            StillBorrowedError: The reader still holds books
        """

        def step(session: Session) -> None:
            _, holdings = self._stores(session)
            reader = holdings.get_reader(reader_id)
            if not reader.is_reader:
                raise ForbiddenError(f"User {reader_id} is not a reader")
            if holdings.list_held(reader_id):
                raise StillBorrowedError("Cannot delete a reader who still holds books")
            UserRepository(session).delete(reader_id)

        self._run("delete reader", (reader_key(reader_id),), step)
        logger.info("Reader %s deleted", reader_id)

    # =========================================================================
    # CONSISTENCY CHECK
    # =========================================================================

    def check_invariants(self) -> list[str]:
        """
        Compare the ledger and holdings against each other.

        Returns a list of human-readable violations; empty means consistent.
        """

        def read(session: Session) -> list[str]:
            problems: list[str] = []
            ledger_pairs = set(session.execute(select(BookHolder.book_id, BookHolder.reader_id)).all())
            holding_pairs = set(
                session.execute(select(ReaderHolding.book_id, ReaderHolding.reader_id)).all()
            )
            for book_id, reader_id in sorted(ledger_pairs ^ holding_pairs):
                problems.append(f"pair ({book_id}, {reader_id}) recorded on one side only")

            for book in session.execute(select(BookDB)).scalars():
                held = sum(1 for pair in ledger_pairs if pair[0] == book.id)
                if not 0 <= book.available_copies <= book.total_stock:
                    problems.append(f"book {book.id} available count out of bounds")
                if book.total_stock - book.available_copies != held:
                    problems.append(f"book {book.id} available count does not match holders")

            limit = min(self.config.borrow_limit, 5)
            for user in session.execute(select(UserDB)).scalars():
                held = sum(1 for pair in holding_pairs if pair[1] == user.id)
                if user.held_count != held:
                    problems.append(f"reader {user.id} held count does not match holdings")
                if held > limit:
                    problems.append(f"reader {user.id} exceeds the borrow limit")
            return problems

        return self._read("check invariants", read)

    # =========================================================================
    # TRANSACTION MACHINERY
    # =========================================================================

    def _stores(self, session: Session) -> tuple[BookLedger, ReaderHoldings]:
        return (
            BookLedger(session, max_stock=self.config.max_stock),
            ReaderHoldings(session, borrow_limit=self.config.borrow_limit),
        )

    @staticmethod
    def _require_reader(holdings: ReaderHoldings, reader_id: str, action: str) -> UserDB:
        reader = holdings.get_reader(reader_id)
        if not reader.is_reader:
            raise ForbiddenError(f"Only readers can {action} books")
        return reader

    @staticmethod
    def _check_owner(book: BookDB, owner_id: str | None, action: str) -> None:
        if owner_id is not None and book.author_id != owner_id:
            raise ForbiddenError(f"You are not authorized to {action} this book")

    def _run(self, operation: str, keys: Iterable[LockKey], step: Callable[[Session], T]) -> T:
        """Run ``step`` under the record locks, retrying conflicts."""
        keys = tuple(keys)
        attempts = self.config.conflict_retries + 1

        for attempt in range(1, attempts + 1):
            try:
                with self.locks.acquire(keys, timeout=self.config.lock_timeout):
                    result = self._transaction(operation, step)
            except ConflictError as e:
                logger.warning(
                    "Conflict during %s (attempt %d/%d): %s", operation, attempt, attempts, e
                )
                if attempt < attempts:
                    time.sleep(self.config.conflict_backoff * attempt)
                continue

            self._notify_commit(operation)
            return result

        raise TransientError(f"Could not complete {operation} due to concurrent activity, retry later")

    def _transaction(self, operation: str, step: Callable[[Session], T]) -> T:
        """One attempt: run ``step`` in a fresh session and commit or roll back."""
        with self.db.serialized():
            return self._attempt(operation, step)

    def _attempt(self, operation: str, step: Callable[[Session], T]) -> T:
        session = self.db.create_session()
        try:
            result = step(session)
            safe_commit(session, operation)
            return result
        except (AlreadyHeldError, NotHeldError) as e:
            # The coordinator checked both sides first, so this means they disagree
            session.rollback()
            logger.error("Ledger and holdings disagree during %s: %s", operation, e)
            raise InternalError(f"Internal error during {operation}") from e
        except CatalogError:
            session.rollback()
            raise
        except SQLAlchemyError as e:
            session.rollback()
            error = classify_storage_error(e, operation)
            if isinstance(error, InternalError):
                logger.exception("Storage error during %s", operation)
            raise error from e
        except Exception as e:
            session.rollback()
            logger.exception("Unexpected error during %s", operation)
            raise InternalError(f"Internal error during {operation}") from e
        finally:
            session.close()

    def _read(self, operation: str, read: Callable[[Session], T]) -> T:
        with self.db.serialized():
            return self._read_once(operation, read)

    def _read_once(self, operation: str, read: Callable[[Session], T]) -> T:
        session = self.db.create_session()
        try:
            return read(session)
        except CatalogError:
            raise
        except SQLAlchemyError as e:
            error = classify_storage_error(e, operation)
            if isinstance(error, ConflictError):
                error = TransientError(f"Could not complete {operation}, retry later")
            else:
                logger.exception("Storage error during %s", operation)
            raise error from e
        except Exception as e:
            logger.exception("Unexpected error during %s", operation)
            raise InternalError(f"Internal error during {operation}") from e
        finally:
            session.close()

    def _notify_commit(self, operation: str) -> None:
        # The change is committed; a failing listener must not turn it into an error
        for listener in self._commit_listeners:
            try:
                listener()
            except Exception:
                logger.exception("Commit listener failed after %s", operation)


# Process-wide coordinator shared by every request handler
_coordinator: CirculationCoordinator | None = None
_coordinator_lock = threading.Lock()


def get_coordinator() -> CirculationCoordinator:
    """Get or create the process-wide coordinator."""
    global _coordinator  # noqa: PLW0603 - Singleton pattern for the coordinator

    with _coordinator_lock:
        if _coordinator is None:
            config = get_config()
            _coordinator = CirculationCoordinator(
                config=config, cache=CatalogCache(ttl=config.catalog_cache_ttl)
            )
        return _coordinator


def set_coordinator(coordinator: CirculationCoordinator | None) -> None:
    """Replace the process-wide coordinator (tests install their own)."""
    global _coordinator  # noqa: PLW0603

    with _coordinator_lock:
        _coordinator = coordinator
