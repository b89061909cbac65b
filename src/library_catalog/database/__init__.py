"""
Database package for the Library Catalog service.

This package provides:
- SQLAlchemy schema definitions (schema.py)
- Session management and connection handling (session.py)
- The Book Ledger and Reader Holdings stores used by the circulation core
- Repositories for users and shared pagination helpers
"""

from .book_ledger import BookLedger
from .reader_holdings import ReaderHoldings
from .repository import BaseRepository, PaginatedResponse, PaginationParams
from .schema import (
    BORROW_LIMIT,
    MAX_STOCK,
    Base,
    Book,
    BookHolder,
    ReaderHolding,
    User,
    UserRoleEnum,
)
from .session import (
    DatabaseManager,
    get_db_manager,
    safe_commit,
    safe_query,
    set_db_manager,
)
from .user_repository import UserCreateSchema, UserRepository

__all__ = [
    "BORROW_LIMIT",
    "MAX_STOCK",
    "Base",
    "BaseRepository",
    "Book",
    "BookHolder",
    "BookLedger",
    "DatabaseManager",
    "PaginatedResponse",
    "PaginationParams",
    "ReaderHolding",
    "ReaderHoldings",
    "User",
    "UserCreateSchema",
    "UserRepository",
    "UserRoleEnum",
    "get_db_manager",
    "safe_commit",
    "safe_query",
    "set_db_manager",
]
