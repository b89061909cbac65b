"""
Error taxonomy for the Library Catalog core.

Every failure the core reports carries a stable ``kind`` string plus a
human-readable message. Tool handlers and any other caller map the kind to a
transport-level status; the message is safe to show to end users.

Storage errors are never passed through verbatim: the coordinator converts
them into ``InternalError`` with an opaque message and logs the original.
"""


class CatalogError(Exception):
    """Base class for every error raised by the catalog core."""

    kind: str = "InternalError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind, "message": self.message}


class NotFoundError(CatalogError):
    """Referenced book or reader does not exist."""

    kind = "NotFound"


class OutOfStockError(CatalogError):
    """No available copies at borrow time."""

    kind = "OutOfStock"


class AlreadyBorrowedError(CatalogError):
    """The reader already holds this title."""

    kind = "AlreadyBorrowed"


class NotBorrowedError(CatalogError):
    """Return attempted for a title the reader does not hold."""

    kind = "NotBorrowed"


class LimitReachedError(CatalogError):
    """The reader already holds the maximum number of titles."""

    kind = "LimitReached"


class StockBelowHeldCountError(CatalogError):
    """A stock edit would drop total stock below the current holder count."""

    kind = "StockBelowHeldCount"


class AlreadyHeldError(CatalogError):
    """Ledger/holdings level: the pair is already recorded."""

    kind = "AlreadyHeld"


class NotHeldError(CatalogError):
    """Ledger/holdings level: the pair is not recorded."""

    kind = "NotHeld"


class ForbiddenError(CatalogError):
    """The caller lacks the role or ownership the operation needs."""

    kind = "Forbidden"


class StillBorrowedError(CatalogError):
    """A book or reader cannot be deleted while copies are out."""

    kind = "StillBorrowed"


class InvalidInputError(CatalogError):
    """A value is outside the range the catalog accepts."""

    kind = "InvalidInput"


class DuplicateError(CatalogError):
    """Attempt to create an entity that already exists."""

    kind = "Duplicate"


class ConflictError(CatalogError):
    """A concurrent mutation prevented atomic application.

    Internal only: the coordinator retries these and surfaces
    ``TransientError`` once retries are exhausted.
    """

    kind = "Conflict"


class TransientError(CatalogError):
    """The operation could not be applied right now; the caller may retry."""

    kind = "Transient"


class InternalError(CatalogError):
    """Opaque wrapper for unexpected storage failures."""

    kind = "InternalError"
