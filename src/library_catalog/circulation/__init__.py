"""Borrow/return coordination: the only writer of circulation state."""

from .coordinator import CirculationCoordinator, get_coordinator, set_coordinator
from .locks import LockRegistry, book_key, reader_key

__all__ = [
    "CirculationCoordinator",
    "LockRegistry",
    "book_key",
    "get_coordinator",
    "reader_key",
    "set_coordinator",
]
