"""Test configuration and fixtures for the Library Catalog.

Every test gets:
1. Its own SQLite file under ``tmp_path`` (file databases, because the
   concurrency tests need one connection per worker thread)
2. A config and coordinator installed as the process-wide instances, so tool
   handlers pick them up through ``get_coordinator()``
3. Cleanup of every global on the way out
"""

import itertools
import os
from collections.abc import Callable, Generator
from pathlib import Path

import pytest
from sqlalchemy.orm import Session

from library_catalog.catalog.cache import CatalogCache
from library_catalog.circulation.coordinator import CirculationCoordinator, set_coordinator
from library_catalog.config import ServerConfig, reset_config, set_config
from library_catalog.database.session import DatabaseManager, set_db_manager
from library_catalog.database.user_repository import UserCreateSchema, UserRepository
from library_catalog.models.book import Book
from library_catalog.models.user import User, UserRole

# === Pytest Configuration ===


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "concurrency: exercises parallel borrow/return paths with real threads"
    )


# === Database Fixtures ===


@pytest.fixture
def test_db_path(tmp_path: Path) -> Path:
    """A fresh database file per test."""
    return tmp_path / "test_catalog.db"


@pytest.fixture
def test_config(test_db_path: Path) -> Generator[ServerConfig, None, None]:
    """Test-specific configuration, installed globally."""
    reset_config()

    config = ServerConfig(
        server_name="test-library-catalog",
        server_version="0.0.1-test",
        database_path=test_db_path,
        debug=True,
        log_level="DEBUG",
        conflict_retries=2,
        conflict_backoff=0.0,
        lock_timeout=5.0,
        catalog_cache_ttl=60,
    )
    set_config(config)

    yield config

    reset_config()


@pytest.fixture
def db_manager(test_config: ServerConfig) -> Generator[DatabaseManager, None, None]:
    manager = DatabaseManager(test_config.get_database_url())
    manager.init_database()
    set_db_manager(manager)

    yield manager

    set_db_manager(None)
    manager.close()


@pytest.fixture
def db_session(db_manager: DatabaseManager) -> Generator[Session, None, None]:
    """A plain session for arranging data and inspecting committed state."""
    session = db_manager.create_session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def catalog_cache(test_config: ServerConfig) -> CatalogCache:
    return CatalogCache(ttl=test_config.catalog_cache_ttl)


@pytest.fixture
def coordinator(
    db_manager: DatabaseManager, test_config: ServerConfig, catalog_cache: CatalogCache
) -> Generator[CirculationCoordinator, None, None]:
    """The coordinator under test, also installed as the process-wide one."""
    coord = CirculationCoordinator(db_manager=db_manager, config=test_config, cache=catalog_cache)
    set_coordinator(coord)

    yield coord

    set_coordinator(None)


# === Test Data Fixtures ===

_NAMES = ["Ada", "Grace", "Alan", "Barbara", "Edsger", "Donald", "Frances", "John", "Radia"]


@pytest.fixture
def make_user(db_manager: DatabaseManager) -> Callable[..., User]:
    """Register users with unique names and emails."""
    counter = itertools.count()

    def _make(role: UserRole = UserRole.READER, name: str | None = None) -> User:
        n = next(counter)
        if name is None:
            name = f"{_NAMES[n % len(_NAMES)]} {'Reader' if role == UserRole.READER else 'Author'}"
        with db_manager.session_scope() as session:
            return UserRepository(session).create(
                UserCreateSchema(name=name, email=f"user{n}@example.com", role=role)
            )

    return _make


@pytest.fixture
def author(make_user) -> User:
    return make_user(UserRole.AUTHOR, name="Test Author")


@pytest.fixture
def reader(make_user) -> User:
    return make_user(UserRole.READER, name="Test Reader")


@pytest.fixture
def make_book(coordinator: CirculationCoordinator, author: User) -> Callable[..., Book]:
    """Publish books owned by the ``author`` fixture."""

    def _make(title: str = "Test Book", genre: str = "Fiction", stock: int = 3) -> Book:
        return coordinator.publish_book(author.id, title, genre, stock)

    return _make


@pytest.fixture
def book(make_book) -> Book:
    return make_book()


# === Cleanup Fixtures ===


@pytest.fixture(autouse=True)
def cleanup_after_test():
    """Reset globals and test environment variables after every test."""
    yield

    reset_config()
    set_coordinator(None)

    for key in list(os.environ.keys()):
        if key.startswith("LIBRARY_CATALOG_"):
            del os.environ[key]
