"""
Tests for the circulation tools (borrow_book, return_book, list_borrowed_books).

These tests cover:
1. Input validation
2. Success payloads
3. Error kinds mapped from the coordinator
4. State changes visible through the coordinator afterwards
"""

import asyncio

import pytest

from library_catalog.models.user import UserRole
from library_catalog.tools.circulation import (
    borrow_book_handler,
    list_borrowed_books_handler,
    return_book_handler,
)


def error_kind(result: dict) -> str | None:
    return result["error"]["kind"] if result.get("isError") else None


class TestBorrowBookTool:
    async def test_borrow_success(self, coordinator, reader, book):
        result = await borrow_book_handler({"reader_id": reader.id, "book_id": book.id})

        assert "isError" not in result
        assert result["content"][0]["type"] == "text"
        assert result["content"][0]["text"] == "Book borrowed successfully"
        assert result["data"]["book_id"] == book.id
        assert result["data"]["remaining_stock"] == 2
        assert result["data"]["book"]["title"] == "Test Book"

        assert coordinator.get_availability(book.id).available_count == 2

    async def test_borrow_twice(self, coordinator, reader, book):
        await borrow_book_handler({"reader_id": reader.id, "book_id": book.id})
        result = await borrow_book_handler({"reader_id": reader.id, "book_id": book.id})

        assert error_kind(result) == "AlreadyBorrowed"
        assert result["content"][0]["text"] == "You have already borrowed this book"

    async def test_borrow_out_of_stock(self, coordinator, make_user, make_book):
        book = make_book(stock=1)
        first, second = make_user(UserRole.READER), make_user(UserRole.READER)
        await borrow_book_handler({"reader_id": first.id, "book_id": book.id})

        result = await borrow_book_handler({"reader_id": second.id, "book_id": book.id})

        assert error_kind(result) == "OutOfStock"

    async def test_borrow_unknown_book(self, coordinator, reader):
        result = await borrow_book_handler({"reader_id": reader.id, "book_id": "book_abcdef"})

        assert error_kind(result) == "NotFound"

    async def test_author_cannot_borrow(self, coordinator, author, book):
        result = await borrow_book_handler({"reader_id": author.id, "book_id": book.id})

        assert error_kind(result) == "Forbidden"

    @pytest.mark.parametrize(
        "arguments",
        [
            {},
            {"reader_id": "user_abcdef"},
            {"reader_id": "not-a-user", "book_id": "book_abcdef"},
            {"reader_id": "user_abcdef", "book_id": "BOOK-1"},
        ],
    )
    async def test_invalid_arguments(self, coordinator, arguments):
        result = await borrow_book_handler(arguments)

        assert error_kind(result) == "InvalidInput"
        assert "Invalid borrow parameters" in result["content"][0]["text"]

    async def test_concurrent_tool_calls_for_last_copy(self, coordinator, make_user, make_book):
        book = make_book(stock=1)
        readers = [make_user(UserRole.READER) for _ in range(3)]

        results = await asyncio.gather(
            *(borrow_book_handler({"reader_id": r.id, "book_id": book.id}) for r in readers)
        )

        kinds = sorted(str(error_kind(r)) for r in results)
        assert kinds == ["None", "OutOfStock", "OutOfStock"]
        assert coordinator.check_invariants() == []

    async def test_storage_failure_is_opaque(self, coordinator, reader, book, monkeypatch):
        def explode(*args, **kwargs):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(coordinator, "borrow", explode)

        result = await borrow_book_handler({"reader_id": reader.id, "book_id": book.id})

        assert error_kind(result) == "InternalError"
        assert "disk on fire" not in result["content"][0]["text"]


class TestReturnBookTool:
    async def test_return_success(self, coordinator, reader, book):
        await borrow_book_handler({"reader_id": reader.id, "book_id": book.id})

        result = await return_book_handler({"reader_id": reader.id, "book_id": book.id})

        assert "isError" not in result
        assert result["content"][0]["text"] == "Book returned successfully"
        assert result["data"]["available_stock"] == 3
        assert result["data"]["book"]["id"] == book.id

    async def test_return_not_borrowed(self, coordinator, reader, book):
        result = await return_book_handler({"reader_id": reader.id, "book_id": book.id})

        assert error_kind(result) == "NotBorrowed"
        assert result["content"][0]["text"] == "You have not borrowed this book"
        assert coordinator.get_availability(book.id).available_count == 3

    async def test_invalid_arguments(self, coordinator):
        result = await return_book_handler({"reader_id": "user_abcdef"})

        assert error_kind(result) == "InvalidInput"


class TestListBorrowedBooksTool:
    async def test_lists_current_loans(self, coordinator, reader, make_book):
        first = make_book(title="Beloved")
        make_book(title="Ulysses")
        await borrow_book_handler({"reader_id": reader.id, "book_id": first.id})

        result = await list_borrowed_books_handler({"reader_id": reader.id})

        assert result["data"]["total_borrowed"] == 1
        assert result["data"]["remaining_slots"] == 4
        assert [b["title"] for b in result["data"]["books"]] == ["Beloved"]
        assert "4 slot(s) remaining" in result["content"][0]["text"]

    async def test_no_loans(self, coordinator, reader):
        result = await list_borrowed_books_handler({"reader_id": reader.id})

        assert result["data"]["books"] == []
        assert result["content"][0]["text"] == "Reader holds no books"

    async def test_unknown_reader(self, coordinator):
        result = await list_borrowed_books_handler({"reader_id": "user_abcdef"})

        assert error_kind(result) == "NotFound"
