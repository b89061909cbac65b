"""Configuration management for the Library Catalog service.

Settings are loaded from the environment (``LIBRARY_CATALOG_`` prefix) or a
``.env`` file and validated with Pydantic v2:

1. Service metadata - name and version reported by the tool server
2. Persistence - where the SQLite catalog lives
3. Circulation policy - borrow limit, stock ceiling, conflict retries
4. Read path - catalog cache lifetime and page sizes
"""

from pathlib import Path

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerConfig(BaseSettings):
    """Library Catalog configuration.

    Every field can be overridden with an environment variable, e.g.
    ``LIBRARY_CATALOG_BORROW_LIMIT=3`` or ``LIBRARY_CATALOG_DATABASE_PATH``.
    """

    model_config = SettingsConfigDict(
        env_prefix="LIBRARY_CATALOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === Service Metadata ===

    server_name: str = Field(
        default="library-catalog",
        description="Server name announced to tool clients",
        pattern=r"^[a-z0-9-]+$",
    )

    server_version: str = Field(
        default="0.1.0",
        description="Server version",
        pattern=r"^\d+\.\d+\.\d+(-[a-zA-Z0-9.]+)?$",
    )

    # === Database Configuration ===

    database_path: Path = Field(
        default=Path("data/library_catalog.db"),
        description="SQLite database file path",
    )

    # === Circulation Policy ===

    borrow_limit: int = Field(
        default=5,
        description="Maximum number of distinct titles a reader may hold at once",
        ge=1,
        le=5,
    )

    max_stock: int = Field(
        default=10_000,
        description="Upper bound for a title's total stock",
        ge=1,
        le=10_000,
    )

    conflict_retries: int = Field(
        default=3,
        description="How many times a conflicting circulation transaction is retried",
        ge=0,
        le=10,
    )

    conflict_backoff: float = Field(
        default=0.02,
        description="Base delay in seconds between conflict retries",
        ge=0.0,
        le=1.0,
    )

    lock_timeout: float = Field(
        default=5.0,
        description="Seconds to wait for a book/reader record lock",
        gt=0.0,
    )

    # === Read Path ===

    catalog_cache_ttl: int = Field(
        default=60,
        description="Catalog search cache time-to-live in seconds (0 disables the cache)",
        ge=0,
    )

    default_page_size: int = Field(default=10, ge=1, le=50)

    max_page_size: int = Field(default=50, ge=1, le=100)

    # === Development Configuration ===

    debug: bool = Field(
        default=False,
        description="Enable debug logging",
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
        pattern=r"^(DEBUG|INFO|WARNING|ERROR)$",
    )

    # === Validation Methods ===

    @field_validator("database_path")
    @classmethod
    def validate_database_path(cls, v: Path) -> Path:
        """Resolve the database path and make sure its directory exists."""
        abs_path = v.absolute()
        abs_path.parent.mkdir(parents=True, exist_ok=True)

        if not abs_path.parent.is_dir():
            raise ValueError(f"Database directory {abs_path.parent} is not accessible")

        return abs_path

    @field_validator("server_name")
    @classmethod
    def validate_server_name(cls, v: str) -> str:
        if len(v) < 3:
            raise ValueError("Server name must be at least 3 characters")
        if len(v) > 50:
            raise ValueError("Server name must not exceed 50 characters")
        return v

    @model_validator(mode="after")
    def validate_page_sizes(self) -> "ServerConfig":
        """The default page size has to fit inside the maximum."""
        if self.default_page_size > self.max_page_size:
            raise ValueError("default_page_size cannot exceed max_page_size")
        return self

    # === Computed Properties ===

    @property
    def is_development(self) -> bool:
        return self.debug or self.log_level == "DEBUG"

    def get_database_url(self) -> str:
        """Get SQLAlchemy database URL."""
        return f"sqlite:///{self.database_path}"


# === Global Configuration Instance ===


class _ConfigStore:
    """Internal storage for configuration singleton."""

    _instance: ServerConfig | None = None


def get_config() -> ServerConfig:
    """Get or create the global configuration instance."""
    if _ConfigStore._instance is None:  # type: ignore[reportPrivateUsage]
        _ConfigStore._instance = ServerConfig()  # type: ignore[reportPrivateUsage]
    return _ConfigStore._instance  # type: ignore[reportPrivateUsage]


def set_config(config: ServerConfig) -> None:
    """Install an explicit configuration (used by tests and embedding code)."""
    _ConfigStore._instance = config  # type: ignore[reportPrivateUsage]


def reset_config() -> None:
    """Reset configuration so the next ``get_config()`` reloads the environment."""
    _ConfigStore._instance = None  # type: ignore[reportPrivateUsage]
