"""
Circulation outcome models.

These are the success payloads of the borrow/return coordinator. Field names
match the payloads the controller layer forwards: ``remaining_stock`` after a
borrow, ``available_stock`` after a return.
"""

from pydantic import BaseModel, Field

from .book import BookSummary


class BorrowOutcome(BaseModel):
    """Result of a successful borrow."""

    book_id: str
    reader_id: str
    title: str
    genre: str
    remaining_stock: int = Field(..., ge=0)


class ReturnOutcome(BaseModel):
    """Result of a successful return."""

    book_id: str
    reader_id: str
    title: str
    genre: str
    available_stock: int = Field(..., ge=0)


class BorrowedBooks(BaseModel):
    """A reader's current loans plus how many more titles they may borrow."""

    reader_id: str
    books: list[BookSummary]
    total_borrowed: int = Field(..., ge=0)
    remaining_slots: int = Field(..., ge=0)
