"""
Reader Holdings - each reader's set of held titles.

Enforces the borrow limit: a reader holds at most ``borrow_limit`` distinct
titles at a time, and never the same title twice. Like the Book Ledger, this
store flushes into the caller's transaction and leaves the commit to the
circulation coordinator. Each change bumps the reader row's version, so two
racing transactions on the same reader cannot both commit.
"""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import AlreadyHeldError, LimitReachedError, NotFoundError, NotHeldError
from .schema import BORROW_LIMIT, ReaderHolding
from .schema import User as UserDB
from .session import classify_storage_error, safe_query


class ReaderHoldings:
    """Per-reader held-book sets, scoped to one session."""

    def __init__(self, session: Session, borrow_limit: int = BORROW_LIMIT):
        self.session = session
        self.borrow_limit = min(borrow_limit, BORROW_LIMIT)

    def get_reader(self, reader_id: str) -> UserDB:
        """
        Load the reader row.

        Raises:
            NotFoundError: If no such user exists
        """
        reader = safe_query(
            self.session,
            lambda s: s.get(UserDB, reader_id),
            "Failed to get reader",
        )
        if reader is None:
            raise NotFoundError(f"Reader {reader_id} not found")
        return reader

    def list_held(self, reader_id: str) -> set[str]:
        """
        Book ids currently held by the reader.

        Raises:
            NotFoundError: If the reader is unknown
        """
        self.get_reader(reader_id)
        rows = safe_query(
            self.session,
            lambda s: s.execute(
                select(ReaderHolding.book_id).where(ReaderHolding.reader_id == reader_id)
            ).scalars().all(),
            "Failed to list reader holdings",
        )
        return set(rows)

    def count(self, reader_id: str) -> int:
        return self.get_reader(reader_id).held_count

    def holds(self, reader_id: str, book_id: str) -> bool:
        row = safe_query(
            self.session,
            lambda s: s.get(ReaderHolding, (reader_id, book_id)),
            "Failed to check reader holding",
        )
        return row is not None

    def add_held(self, reader_id: str, book_id: str) -> int:
        """
        Add ``book_id`` to the reader's held set and return the new size.

        Raises:
            NotFoundError: If the reader is unknown
            AlreadyHeldError: If the title is already held
            LimitReachedError: If the reader is at the borrow limit
        """
        reader = self.get_reader(reader_id)

        if self.holds(reader_id, book_id):
            raise AlreadyHeldError(f"Reader {reader_id} already holds book {book_id}")

        if reader.held_count >= self.borrow_limit:
            raise LimitReachedError(
                f"Borrow limit reached (maximum {self.borrow_limit} books)"
            )

        self.session.add(
            ReaderHolding(reader_id=reader_id, book_id=book_id, borrowed_at=datetime.now())
        )
        reader.held_count += 1
        reader.updated_at = datetime.now()
        self._flush("add reader holding")
        return reader.held_count

    def remove_held(self, reader_id: str, book_id: str) -> int:
        """
        Remove ``book_id`` from the reader's held set and return the new size.

        Raises:
            NotFoundError: If the reader is unknown
            NotHeldError: If the title is not held
        """
        reader = self.get_reader(reader_id)

        holding = safe_query(
            self.session,
            lambda s: s.get(ReaderHolding, (reader_id, book_id)),
            "Failed to get reader holding",
        )
        if holding is None:
            raise NotHeldError(f"Reader {reader_id} does not hold book {book_id}")

        self.session.delete(holding)
        reader.held_count -= 1
        reader.updated_at = datetime.now()
        self._flush("remove reader holding")
        return reader.held_count

    def _flush(self, operation: str) -> None:
        try:
            self.session.flush()
        except SQLAlchemyError as e:
            raise classify_storage_error(e, operation) from e
