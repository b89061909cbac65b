"""
Database session management for the Library Catalog service.

Connection management and session handling for SQLAlchemy:

1. Thread Safety: circulation requests run concurrently in worker threads,
   so each gets its own session and (for file databases) its own connection
2. Transaction Management: one borrow/return is one transaction
3. Error Mapping: storage exceptions are translated into the catalog error
   taxonomy before they reach callers

Sessions should be short-lived and used through ``session_scope()``.
"""

import logging
import threading
from collections.abc import Callable, Generator
from contextlib import contextmanager, nullcontext
from pathlib import Path
from typing import TypeVar

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.pool import StaticPool

from ..config import get_config
from ..errors import CatalogError, ConflictError, InternalError
from .schema import Base

T = TypeVar("T")

logger = logging.getLogger(__name__)

# Seconds a SQLite connection waits on a locked database before giving up
SQLITE_BUSY_TIMEOUT = 5.0


def classify_storage_error(exc: Exception, operation: str) -> CatalogError:
    """
    Map a storage exception onto the catalog error taxonomy.

    Lost optimistic-version races and SQLite lock contention are conflicts
    the coordinator can retry. Everything else is opaque to callers.
    """
    if isinstance(exc, CatalogError):
        return exc
    if isinstance(exc, StaleDataError):
        return ConflictError(f"Concurrent update detected during {operation}")
    if isinstance(exc, OperationalError) and "locked" in str(exc.orig).lower():
        return ConflictError(f"Database busy during {operation}")
    if isinstance(exc, IntegrityError):
        # Unique pair or CHECK bound tripped by a writer that committed first
        return ConflictError(f"Constraint race during {operation}")
    return InternalError(f"Storage failure during {operation}")


class DatabaseManager:
    """
    Manages database connections and sessions.

    This class provides:
    - Lazily created engine and session factory
    - SQLite tuning (foreign keys, busy timeout) for concurrent access
    - Transactional session scopes
    - Schema creation for development and tests
    """

    def __init__(self, database_url: str | None = None):
        """
        Initialize the database manager.

        Args:
            database_url: SQLAlchemy database URL. If None, uses the configured SQLite file.
        """
        if database_url is None:
            config = get_config()
            db_path = config.database_path

            if not db_path.is_absolute():
                db_path = Path.cwd() / db_path

            db_path.parent.mkdir(exist_ok=True, parents=True)

            database_url = f"sqlite:///{db_path}"
            logger.info("Using SQLite database at: %s", db_path)

        self.database_url = database_url
        self._engine: Engine | None = None
        self._session_factory: sessionmaker | None = None
        # In-memory databases share one connection, so sessions must take turns
        self._memory_lock = threading.RLock()

    @property
    def is_memory_database(self) -> bool:
        return self.database_url in ("sqlite://", "sqlite:///:memory:")

    def serialized(self):
        """
        Context manager held around a whole session's lifetime.

        File databases give each thread its own connection and need nothing
        here. An in-memory database has a single shared connection, so two
        sessions running at once would see (and commit) each other's
        uncommitted work; for those, sessions run one at a time.
        """
        if self.is_memory_database:
            return self._memory_lock
        return nullcontext()

    @property
    def engine(self) -> Engine:
        """
        Get or create the database engine.

        In-memory SQLite shares one connection (StaticPool), otherwise each
        thread checks out its own pooled connection so concurrent sessions do
        not interleave their transactions.
        """
        if self._engine is None:
            if self.database_url.startswith("sqlite"):
                if self.is_memory_database:
                    self._engine = create_engine(
                        self.database_url,
                        poolclass=StaticPool,
                        connect_args={"check_same_thread": False},
                        echo=False,
                    )
                else:
                    self._engine = create_engine(
                        self.database_url,
                        connect_args={
                            "check_same_thread": False,
                            "timeout": SQLITE_BUSY_TIMEOUT,
                        },
                        pool_size=10,
                        max_overflow=20,
                        echo=False,
                    )

                @event.listens_for(self._engine, "connect")
                def set_sqlite_pragma(dbapi_connection, connection_record):  # noqa: ARG001
                    cursor = dbapi_connection.cursor()
                    cursor.execute("PRAGMA foreign_keys=ON")
                    cursor.close()
            else:
                self._engine = create_engine(
                    self.database_url,
                    pool_size=10,
                    max_overflow=20,
                    pool_pre_ping=True,
                    echo=False,
                )

            logger.info("Database engine created: %s", self._engine.url)

        return self._engine

    @property
    def session_factory(self) -> sessionmaker:
        """Get or create the session factory."""
        if self._session_factory is None:
            self._session_factory = sessionmaker(
                bind=self.engine,
                autocommit=False,
                autoflush=False,
                expire_on_commit=False,
            )
        return self._session_factory

    def create_session(self) -> Session:
        """Create a new database session. Callers are responsible for closing it."""
        return self.session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Provide a transactional scope for database operations.

        ```python
        with db_manager.session_scope() as session:
            book = session.get(Book, book_id)
        # Session is automatically committed or rolled back
        ```
        """
        with self.serialized():
            yield from self._scoped_session()

    def _scoped_session(self) -> Generator[Session, None, None]:
        session = self.create_session()
        try:
            yield session
            session.commit()
            logger.debug("Database transaction committed successfully")
        except CatalogError:
            session.rollback()
            raise
        except Exception:
            logger.exception("Database error, rolling back")
            session.rollback()
            raise
        finally:
            session.close()

    def init_database(self, drop_existing: bool = False) -> None:
        """
        Initialize the database schema.

        Args:
            drop_existing: If True, drop all tables before creating
        """
        engine = self.engine

        if drop_existing:
            logger.warning("Dropping all existing tables...")
            Base.metadata.drop_all(bind=engine)

        logger.info("Creating database tables...")
        Base.metadata.create_all(bind=engine)
        logger.info("Database initialization complete")

    def verify_connection(self) -> bool:
        """Return True if a trivial query succeeds."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("Database connection verified")
            return True
        except SQLAlchemyError:
            logger.exception("Database connection failed")
            return False

    def close(self) -> None:
        """Dispose the engine and forget the session factory."""
        if self._engine:
            self._engine.dispose()
            logger.info("Database engine disposed")
        self._engine = None
        self._session_factory = None


_db_manager: DatabaseManager | None = None


def get_db_manager(database_url: str | None = None) -> DatabaseManager:
    """
    Get the global database manager instance.

    Args:
        database_url: Database URL (only used on first call)
    """
    global _db_manager  # noqa: PLW0603 - Singleton pattern for database manager

    if _db_manager is None:
        _db_manager = DatabaseManager(database_url)

    return _db_manager


def set_db_manager(manager: DatabaseManager | None) -> None:
    """Replace the global database manager (tests install a temporary one)."""
    global _db_manager  # noqa: PLW0603

    _db_manager = manager


def safe_commit(session: Session, operation: str) -> None:
    """
    Commit a session, translating storage failures.

    Raises:
        ConflictError: If a concurrent writer won the race
        InternalError: On any other storage failure
    """
    try:
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        error = classify_storage_error(e, operation)
        if isinstance(error, InternalError):
            logger.exception("Commit failed during %s", operation)
        raise error from e


def safe_query(session: Session, query_func: Callable[[Session], T], error_msg: str) -> T:
    """
    Execute a query, translating storage failures.

    Args:
        session: The database session
        query_func: Function that performs the query
        error_msg: Description used in the translated error

    Raises:
        ConflictError: If the database is locked by another writer
        InternalError: On any other storage failure
    """
    try:
        return query_func(session)
    except SQLAlchemyError as e:
        error = classify_storage_error(e, error_msg)
        if isinstance(error, InternalError):
            logger.exception("Query failed: %s", error_msg)
        raise error from e
