"""Library Catalog MCP Server - FastMCP Implementation

Exposes the catalog's borrow/return core as tools over stdio. Every handler
delegates to the process-wide circulation coordinator, so concurrent tool
calls share one set of record locks and one advisory catalog cache.

Tools exposed:
- borrow_book, return_book, list_borrowed_books
- search_catalog
- update_book_stock
"""

import logging
import signal
import sys
from typing import Any

from fastmcp import FastMCP

from .config import get_config
from .database.session import get_db_manager
from .tools import all_tools

# stderr for logs, stdout for the MCP protocol
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stderr)],
)

logger = logging.getLogger(__name__)

config = get_config()

mcp = FastMCP(
    name=config.server_name,
    version=config.server_version,
    instructions=(
        "Library Catalog - readers borrow and return books, authors manage the "
        "stock of their titles. A reader may hold at most one copy of a title and "
        f"at most {config.borrow_limit} titles at once. Use search_catalog to "
        "find books and check availability before borrowing."
    ),
)

for tool in all_tools:
    logger.debug("Registering tool: %s", tool["name"])
    try:
        mcp.tool(
            name=tool["name"],
            description=tool["description"],
        )(tool["handler"])
    except Exception:
        logger.exception("Failed to register tool %s", tool["name"])
        raise

logger.info("Registered %d tools", len(all_tools))


def init_storage() -> None:
    """Create the catalog tables if needed and check the database is reachable."""
    db = get_db_manager(config.get_database_url())
    db.init_database()
    if not db.verify_connection():
        raise RuntimeError(f"Cannot open catalog database at {config.database_path}")
    logger.info("Catalog database ready at %s", config.database_path)


def run_stdio_server() -> None:
    """Run the MCP server using stdio transport."""
    logger.info("Starting %s v%s on stdio transport", config.server_name, config.server_version)

    if config.debug:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.debug("Debug mode enabled")
    else:
        logging.getLogger().setLevel(config.log_level)
        logging.getLogger("fastmcp").setLevel(logging.WARNING)

    def signal_handler(signum: int, _frame: Any) -> None:
        logger.info("Received signal %s, initiating shutdown...", signum)
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        init_storage()
        mcp.run(transport="stdio")
    except Exception:
        logger.exception("Fatal error in MCP server")
        sys.exit(1)
    finally:
        get_db_manager().close()


def main() -> None:
    """Entry point for the ``library-catalog`` console script."""
    try:
        logger.info("Library Catalog MCP Server %s", config.server_version)
        logger.info("Database: %s", config.database_path)
        logger.info("Borrow limit: %d", config.borrow_limit)
        run_stdio_server()
    except KeyboardInterrupt:
        logger.info("Server stopped by user")


if __name__ == "__main__":
    main()
