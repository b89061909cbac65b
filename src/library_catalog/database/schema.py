"""
SQLAlchemy database schema for the Library Catalog service.

Tables:

- ``users``: readers and authors. A reader's ``held_count`` mirrors the size
  of its ``reader_holdings`` rows and is bounded by a CHECK constraint.
- ``books``: catalog entries. ``available_copies`` mirrors
  ``total_stock - |book_holders|`` and is kept within ``0..total_stock`` by
  CHECK constraints.
- ``book_holders``: the Book Ledger's side of a loan (which readers hold a book).
- ``reader_holdings``: the Reader Holdings' side of a loan (which books a reader holds).

``users`` and ``books`` carry a ``version`` column wired into SQLAlchemy's
``version_id_col``. Every circulation change touches the parent rows, so two
writers that raced on the same record cannot both commit: the loser gets a
``StaleDataError`` and the coordinator retries it.
"""

import enum

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import declarative_base, relationship, validates
from sqlalchemy.sql import func

Base = declarative_base()

BORROW_LIMIT = 5
MAX_STOCK = 10_000


class UserRoleEnum(str, enum.Enum):
    """Database enum for user roles."""

    READER = "reader"
    AUTHOR = "author"


class User(Base):
    """
    Users table - readers who borrow and authors who publish.

    Only readers take part in circulation; ``held_count`` stays 0 for authors.
    """

    __tablename__ = "users"

    id = Column(String(50), primary_key=True)
    name = Column(String(50), nullable=False, index=True)
    email = Column(String(100), nullable=False, unique=True)
    role = Column(Enum(UserRoleEnum), nullable=False)
    held_count = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False)

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    holdings = relationship(
        "ReaderHolding", back_populates="reader", cascade="all, delete-orphan"
    )
    written_books = relationship("Book", back_populates="author")

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("idx_user_role", "role"),
        CheckConstraint("id LIKE 'user_%'", name="check_user_id_format"),
        CheckConstraint(
            f"held_count >= 0 AND held_count <= {BORROW_LIMIT}", name="check_held_count_bounds"
        ),
    )

    @validates("email")
    def normalize_email(self, key, value):  # noqa: ARG002
        return value.strip().lower()

    @property
    def is_reader(self) -> bool:
        return self.role == UserRoleEnum.READER


class Book(Base):
    """
    Books table - the Book Ledger's authoritative record.

    ``total_stock`` is edited only by the owning author's inventory path;
    ``available_copies`` and the holder rows are edited only through the
    circulation coordinator.
    """

    __tablename__ = "books"

    id = Column(String(50), primary_key=True)
    title = Column(String(200), nullable=False, index=True)
    genre = Column(String(50), nullable=False, index=True)
    author_id = Column(String(50), ForeignKey("users.id"), nullable=False)
    total_stock = Column(Integer, nullable=False, default=0)
    available_copies = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False)

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    author = relationship("User", back_populates="written_books")
    holders = relationship("BookHolder", back_populates="book", cascade="all, delete-orphan")

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("idx_book_author", "author_id"),
        Index("idx_book_availability", "available_copies"),
        CheckConstraint("id LIKE 'book_%'", name="check_book_id_format"),
        CheckConstraint(
            f"total_stock >= 0 AND total_stock <= {MAX_STOCK}", name="check_total_stock_bounds"
        ),
        CheckConstraint("available_copies >= 0", name="check_available_copies_non_negative"),
        CheckConstraint(
            "available_copies <= total_stock", name="check_available_not_exceed_total"
        ),
    )


class BookHolder(Base):
    """Ledger side of a loan: ``reader_id`` currently holds a copy of ``book_id``."""

    __tablename__ = "book_holders"

    book_id = Column(String(50), ForeignKey("books.id"), primary_key=True)
    reader_id = Column(String(50), ForeignKey("users.id"), primary_key=True)
    borrowed_at = Column(DateTime, nullable=False, default=func.now())

    book = relationship("Book", back_populates="holders")

    __table_args__ = (Index("idx_holder_reader", "reader_id"),)


class ReaderHolding(Base):
    """Holdings side of a loan: ``book_id`` is in ``reader_id``'s held set."""

    __tablename__ = "reader_holdings"

    reader_id = Column(String(50), ForeignKey("users.id"), primary_key=True)
    book_id = Column(String(50), ForeignKey("books.id"), primary_key=True)
    borrowed_at = Column(DateTime, nullable=False, default=func.now())

    reader = relationship("User", back_populates="holdings")

    __table_args__ = (Index("idx_holding_book", "book_id"),)
