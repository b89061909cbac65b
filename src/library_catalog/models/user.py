"""
User model for the Library Catalog service.

Readers borrow books; authors publish them and manage their stock. The role
is fixed at registration.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


class UserRole(str, Enum):
    """Roles a catalog user can have."""

    READER = "reader"
    AUTHOR = "author"


class User(BaseModel):
    """A registered reader or author."""

    id: str = Field(
        ...,
        description="Unique identifier of the user",
        pattern=r"^user_[a-f0-9]{6,}$",
        examples=["user_9b2c4e6f8a10"],
    )

    name: str = Field(
        ...,
        description="Display name",
        min_length=2,
        max_length=50,
        examples=["Jane Doe"],
    )

    email: EmailStr = Field(..., examples=["jane.doe@example.com"])

    role: UserRole

    held_count: int = Field(
        default=0,
        description="Number of titles the user currently holds",
        ge=0,
        le=5,
    )

    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Names are letters and spaces only."""
        v = v.strip()
        if not all(ch.isalpha() or ch.isspace() for ch in v):
            raise ValueError("Name can only contain letters and spaces")
        return v

    @property
    def is_reader(self) -> bool:
        return self.role == UserRole.READER.value
