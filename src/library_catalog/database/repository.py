"""
Repository base classes for the Library Catalog service.

Repositories hide SQLAlchemy from the rest of the code base and hand back
Pydantic models. The circulation stores (Book Ledger, Reader Holdings) build
on the same session helpers but never commit on their own: they stage changes
inside a transaction that the coordinator owns.
"""

from abc import ABC, abstractmethod
from typing import Generic, TypeVar

from pydantic import BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..config import get_config
from ..errors import InvalidInputError
from .schema import Base
from .session import safe_query

ModelType = TypeVar("ModelType", bound=Base)
ResponseSchemaType = TypeVar("ResponseSchemaType", bound=BaseModel)


class PaginationParams(BaseModel):
    """Standard pagination parameters for list operations."""

    page: int = 1
    page_size: int = Field(default_factory=lambda: get_config().default_page_size)

    @property
    def offset(self) -> int:
        """Calculate offset for SQL queries."""
        return (self.page - 1) * self.page_size

    def validate_params(self, max_page_size: int | None = None) -> None:
        """Validate pagination parameters against the configured page size ceiling."""
        if max_page_size is None:
            max_page_size = get_config().max_page_size
        if self.page < 1:
            raise InvalidInputError("Page must be >= 1")
        if self.page_size < 1 or self.page_size > max_page_size:
            raise InvalidInputError(f"Page size must be between 1 and {max_page_size}")


class PaginatedResponse(BaseModel, Generic[ResponseSchemaType]):
    """Standard paginated response for list operations."""

    items: list[ResponseSchemaType]
    total: int
    page: int
    page_size: int
    total_pages: int
    has_next: bool
    has_previous: bool

    @classmethod
    def build(
        cls, items: list[ResponseSchemaType], total: int, pagination: PaginationParams
    ) -> "PaginatedResponse[ResponseSchemaType]":
        return cls(
            items=items,
            total=total,
            page=pagination.page,
            page_size=pagination.page_size,
            total_pages=(total + pagination.page_size - 1) // pagination.page_size,
            has_next=pagination.page * pagination.page_size < total,
            has_previous=pagination.page > 1,
        )


class BaseRepository(ABC, Generic[ModelType, ResponseSchemaType]):
    """
    Abstract base repository providing common read operations.

    All queries go through ``safe_query`` so storage errors surface as
    catalog errors rather than raw SQLAlchemy exceptions.
    """

    def __init__(self, session: Session):
        """Initialize repository with database session."""
        self.session = session

    @property
    @abstractmethod
    def model_class(self) -> type[ModelType]:
        """Return the SQLAlchemy model class."""

    @property
    @abstractmethod
    def response_schema(self) -> type[ResponseSchemaType]:
        """Return the Pydantic response schema."""

    def _to_response_model(self, db_obj: ModelType) -> ResponseSchemaType:
        """Convert database model to Pydantic response model."""
        return self.response_schema.model_validate(db_obj, from_attributes=True)

    def _get_row(self, id: str) -> ModelType | None:
        query = select(self.model_class).where(self.model_class.id == str(id))
        return safe_query(
            self.session,
            lambda s: s.execute(query).scalar_one_or_none(),
            f"Failed to get {self.model_class.__name__} by ID",
        )

    def get_by_id(self, id: str) -> ResponseSchemaType | None:
        """
        Get entity by ID.

        Returns:
            Pydantic model or None if not found
        """
        db_obj = self._get_row(id)
        if db_obj is None:
            return None
        return self._to_response_model(db_obj)

    def exists(self, id: str) -> bool:
        """Check if entity exists by ID."""
        query = (
            select(func.count()).select_from(self.model_class).where(self.model_class.id == str(id))
        )
        count = safe_query(
            self.session, lambda s: s.execute(query).scalar(), "Failed to check existence"
        )
        return count > 0

    def _paginate_query(self, query, pagination: PaginationParams | None):
        """Helper method to paginate a query."""
        if not pagination:
            pagination = PaginationParams()

        pagination.validate_params()

        count_query = select(func.count()).select_from(query.subquery())
        total = (
            safe_query(
                self.session,
                lambda s: s.execute(count_query).scalar(),
                "Failed to count in pagination",
            )
            or 0
        )

        query = query.offset(pagination.offset).limit(pagination.page_size)
        results = safe_query(
            self.session,
            lambda s: s.execute(query).unique().scalars().all(),
            "Failed to get paginated results",
        )

        items = [self._to_response_model(item) for item in results]
        return PaginatedResponse[self.response_schema].build(items, total, pagination)
