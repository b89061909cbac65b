"""
Book models for the Library Catalog service.

``Book`` is the full catalog record returned by the publishing path and by
``CatalogQueryService.get_book``. ``BookSummary`` is the lighter shape used
in search pages. ``Availability`` is what the Book Ledger reports after every
read or mutation.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator


class Availability(BaseModel):
    """Stock snapshot for a single title."""

    book_id: str
    total_stock: int = Field(..., ge=0)
    available_count: int = Field(..., ge=0)

    @model_validator(mode="after")
    def validate_counts(self) -> "Availability":
        if self.available_count > self.total_stock:
            raise ValueError("Available count cannot exceed total stock")
        return self

    @property
    def held_count(self) -> int:
        return self.total_stock - self.available_count


class Book(BaseModel):
    """
    Represents a title in the catalog.

    Loaded straight from the ``books`` table with ``from_attributes``.
    """

    id: str = Field(
        ...,
        description="Unique identifier of the book",
        pattern=r"^book_[a-f0-9]{6,}$",
        examples=["book_3f9a1c2b7d4e"],
    )

    title: str = Field(
        ...,
        description="The title of the book",
        min_length=1,
        max_length=200,
        examples=["The Great Gatsby", "To Kill a Mockingbird"],
    )

    genre: str = Field(
        ...,
        description="Literary genre or category of the book",
        min_length=2,
        max_length=50,
        examples=["Fiction", "Science Fiction"],
    )

    author_id: str = Field(..., description="Identifier of the publishing author")

    total_stock: int = Field(
        ...,
        description="Total number of lendable copies",
        ge=0,
        le=10_000,
    )

    available_copies: int = Field(
        ...,
        description="Copies currently on the shelf",
        ge=0,
    )

    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("title", "genre")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return v.strip()

    @model_validator(mode="after")
    def validate_copies(self) -> "Book":
        """Available copies can never exceed total stock."""
        if self.available_copies > self.total_stock:
            raise ValueError("Available copies cannot exceed total stock")
        return self

    @property
    def is_available(self) -> bool:
        return self.available_copies > 0


class BookSummary(BaseModel):
    """Search-result shape for a title."""

    id: str
    title: str
    genre: str
    author_id: str
    author_name: str | None = None
    total_stock: int
    available_count: int = Field(..., ge=0)
    created_at: datetime | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_available(self) -> bool:
        return self.available_count > 0
