"""Per-record locks for circulation transactions."""

import logging
import threading
from collections import defaultdict
from collections.abc import Generator, Iterable
from contextlib import contextmanager

from ..errors import ConflictError

logger = logging.getLogger(__name__)

# ("book", book_id) or ("reader", reader_id). Tuples sort books before readers.
LockKey = tuple[str, str]


def book_key(book_id: str) -> LockKey:
    return ("book", book_id)


def reader_key(reader_id: str) -> LockKey:
    return ("reader", reader_id)


class LockRegistry:
    """
    One lock per book and per reader record.

    ``acquire`` always takes locks in sorted key order, so two transactions
    that touch overlapping records can never deadlock waiting on each other.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: defaultdict[LockKey, threading.Lock] = defaultdict(threading.Lock)

    def lock_for(self, key: LockKey) -> threading.Lock:
        with self._guard:
            return self._locks[key]

    @contextmanager
    def acquire(self, keys: Iterable[LockKey], timeout: float) -> Generator[None, None, None]:
        """
        Hold every lock in ``keys`` for the duration of the block.

        Raises:
            ConflictError: If a lock cannot be taken within ``timeout`` seconds
        """
        acquired: list[threading.Lock] = []
        try:
            for key in sorted(set(keys)):
                lock = self.lock_for(key)
                if not lock.acquire(timeout=timeout):
                    logger.warning("Timed out waiting for %s lock on %s", key[0], key[1])
                    raise ConflictError(f"Timed out waiting for {key[0]} {key[1]}")
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
