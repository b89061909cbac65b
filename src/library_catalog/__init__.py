"""
Library Catalog Server Package.

Readers borrow and return copies of books, authors manage their titles'
stock. The circulation core keeps a per-book ledger and per-reader holdings
consistent under concurrent requests.

Key Components:
- config: Configuration management with Pydantic v2
- database: SQLAlchemy schema, sessions, the Book Ledger and Reader Holdings
- circulation: The borrow/return coordinator and its record locks
- catalog: Read-only search and the advisory result cache
- tools: MCP tools exposed by the server
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
