"""
Tool definitions exposed by the Library Catalog server.

Each tool is a dict with ``name``, ``description``, ``inputSchema`` and an
async ``handler`` taking the raw argument dict.
"""

from .books import delete_book, list_author_books, publish_book, update_book
from .circulation import borrow_book, list_borrowed_books, return_book
from .inventory import update_book_stock
from .readers import delete_reader
from .search import search_catalog

all_tools = [
    borrow_book,
    return_book,
    list_borrowed_books,
    search_catalog,
    update_book_stock,
    publish_book,
    update_book,
    delete_book,
    list_author_books,
    delete_reader,
]

__all__ = [
    "all_tools",
    "borrow_book",
    "delete_book",
    "delete_reader",
    "list_author_books",
    "list_borrowed_books",
    "publish_book",
    "return_book",
    "search_catalog",
    "update_book",
    "update_book_stock",
]
