"""Tests for the catalog read path and its advisory cache."""

import pytest

from library_catalog.catalog.cache import CatalogCache
from library_catalog.catalog.query_service import (
    BookSearchParams,
    BookSortOptions,
    CatalogQueryService,
)
from library_catalog.config import set_config
from library_catalog.database.repository import PaginationParams
from library_catalog.errors import InvalidInputError, NotFoundError
from library_catalog.models.user import UserRole


@pytest.fixture
def catalog(make_book):
    return {
        "dune": make_book(title="Dune", genre="Science Fiction", stock=2),
        "emma": make_book(title="Emma", genre="Romance", stock=1),
        "hobbit": make_book(title="The Hobbit", genre="Fantasy", stock=4),
        "foundation": make_book(title="Foundation", genre="Science Fiction", stock=0),
    }


@pytest.fixture
def service(db_session):
    return CatalogQueryService(db_session)


class TestSearch:
    def test_all_books(self, service, catalog):
        result = service.search(sort_by=BookSortOptions.TITLE)

        assert result.total == 4
        assert [b.title for b in result.items] == ["Dune", "Emma", "Foundation", "The Hobbit"]
        assert result.items[0].author_name == "Test Author"

    def test_title_substring_is_case_insensitive(self, service, catalog):
        result = service.search(BookSearchParams(title="HOB"))

        assert [b.id for b in result.items] == [catalog["hobbit"].id]

    def test_genre_filter(self, service, catalog):
        result = service.search(BookSearchParams(genre="science"), sort_by=BookSortOptions.TITLE)

        assert [b.title for b in result.items] == ["Dune", "Foundation"]

    def test_available_only(self, service, catalog):
        result = service.search(BookSearchParams(available_only=True))

        assert catalog["foundation"].id not in {b.id for b in result.items}
        assert all(b.is_available for b in result.items)

    def test_author_filter(self, service, catalog, make_user, coordinator):
        other = make_user(UserRole.AUTHOR)
        coordinator.publish_book(other.id, "Solaris", "Science Fiction", 1)

        result = service.search(BookSearchParams(author_id=other.id))

        assert [b.title for b in result.items] == ["Solaris"]

    def test_blank_filters_are_ignored(self, service, catalog):
        assert service.search(BookSearchParams(title="   ")).total == 4

    def test_availability_reflects_borrows(self, service, catalog, coordinator, reader):
        coordinator.borrow(reader.id, catalog["emma"].id)

        result = service.search(BookSearchParams(title="Emma"))

        assert result.items[0].available_count == 0
        assert result.items[0].is_available is False

    def test_sort_by_availability(self, service, catalog):
        result = service.search(sort_by=BookSortOptions.AVAILABILITY)

        assert result.items[0].title == "The Hobbit"
        assert result.items[-1].title == "Foundation"

    def test_pagination(self, service, catalog):
        page = service.search(
            pagination=PaginationParams(page=2, page_size=3), sort_by=BookSortOptions.TITLE
        )

        assert page.total == 4
        assert page.total_pages == 2
        assert [b.title for b in page.items] == ["The Hobbit"]
        assert page.has_previous
        assert not page.has_next

    def test_page_size_capped(self, service, catalog):
        with pytest.raises(InvalidInputError):
            service.search(pagination=PaginationParams(page=1, page_size=51))

    def test_page_sizes_follow_config(self, service, catalog, test_config):
        set_config(test_config.model_copy(update={"default_page_size": 3, "max_page_size": 5}))

        assert service.search().page_size == 3
        with pytest.raises(InvalidInputError, match="between 1 and 5"):
            service.search(pagination=PaginationParams(page=1, page_size=6))


class TestLookups:
    def test_get_book(self, service, catalog):
        assert service.get_book(catalog["dune"].id).title == "Dune"

    def test_get_missing_book(self, service):
        with pytest.raises(NotFoundError):
            service.get_book("book_000000")

    def test_summaries_skip_unknown(self, service, catalog):
        summaries = service.summaries({catalog["emma"].id, "book_000000"})

        assert [s.title for s in summaries] == ["Emma"]
        assert service.summaries(set()) == []

    def test_books_by_author(self, service, catalog, author):
        assert service.books_by_author(author.id).total == 4

    def test_genres(self, service, catalog):
        assert service.genres() == ["Fantasy", "Romance", "Science Fiction"]


class TestCachedSearch:
    def test_repeat_search_hits_cache(self, db_session, catalog, monkeypatch):
        cache = CatalogCache(ttl=60)
        service = CatalogQueryService(db_session, cache=cache)

        first = service.search(BookSearchParams(genre="Fantasy"))
        assert len(cache) == 1

        def fail(*args):
            raise AssertionError("cached page should have been served")

        monkeypatch.setattr(service, "_search", fail)
        second = service.search(BookSearchParams(genre="Fantasy"))

        assert [b.id for b in second.items] == [b.id for b in first.items]

    def test_cached_page_is_a_copy(self, db_session, catalog):
        service = CatalogQueryService(db_session, cache=CatalogCache(ttl=60))

        first = service.search()
        first.items.clear()

        assert len(service.search().items) == 4

    def test_commit_invalidates_cached_availability(
        self, db_session, catalog, coordinator, catalog_cache, reader
    ):
        service = CatalogQueryService(db_session, cache=catalog_cache)
        before = service.search(BookSearchParams(title="Dune"))
        assert before.items[0].available_count == 2

        coordinator.borrow(reader.id, catalog["dune"].id)

        after = service.search(BookSearchParams(title="Dune"))
        assert after.items[0].available_count == 1

    def test_disabled_cache_never_stores(self, db_session, catalog):
        cache = CatalogCache(ttl=0)
        service = CatalogQueryService(db_session, cache=cache)

        service.search()

        assert len(cache) == 0


class TestCatalogCache:
    def test_expired_entries_are_misses(self, monkeypatch):
        clock = {"now": 100.0}
        monkeypatch.setattr("library_catalog.catalog.cache.time.monotonic", lambda: clock["now"])
        cache = CatalogCache(ttl=10)

        cache.get_or_compute("k", lambda: "v")
        assert cache.get("k") == "v"

        clock["now"] += 11
        assert cache.get("k") is None

    def test_invalidate_during_compute_discards_result(self):
        cache = CatalogCache(ttl=60)

        def compute():
            cache.invalidate()
            return "computed before the commit landed"

        assert cache.get_or_compute("k", compute) == "computed before the commit landed"
        assert len(cache) == 0
        assert cache.get("k") is None
