"""
Pydantic models for the Library Catalog service.

These models validate data leaving the storage layer and serialize cleanly
to JSON for tool responses.
"""

from .book import Availability, Book, BookSummary
from .circulation import BorrowedBooks, BorrowOutcome, ReturnOutcome
from .user import User, UserRole

__all__ = [
    "Availability",
    "Book",
    "BookSummary",
    "BorrowOutcome",
    "BorrowedBooks",
    "ReturnOutcome",
    "User",
    "UserRole",
]
