"""
User repository for the Library Catalog service.

Registers readers and authors and looks them up. Registration is outside the
circulation core, so it commits on its own like any ordinary repository
write. Deleting a reader is guarded by the coordinator, which checks the
held set under the reader's lock before calling ``delete``.
"""

import logging
from uuid import uuid4

from pydantic import BaseModel, EmailStr, Field, field_validator
from sqlalchemy import func, select

from ..errors import DuplicateError, NotFoundError
from ..models.user import User as UserModel
from ..models.user import UserRole
from .repository import BaseRepository, PaginatedResponse, PaginationParams
from .schema import User as UserDB
from .schema import UserRoleEnum
from .session import safe_commit, safe_query

logger = logging.getLogger(__name__)


class UserCreateSchema(BaseModel):
    """Schema for registering a user."""

    name: str = Field(..., min_length=2, max_length=50)
    email: EmailStr
    role: UserRole

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not all(ch.isalpha() or ch.isspace() for ch in v):
            raise ValueError("Name can only contain letters and spaces")
        return v


class UserRepository(BaseRepository[UserDB, UserModel]):
    """Repository for reader and author records."""

    @property
    def model_class(self):
        return UserDB

    @property
    def response_schema(self):
        return UserModel

    def create(self, data: UserCreateSchema) -> UserModel:
        """
        Register a new user.

        Raises:
            DuplicateError: If the email is already registered
        """
        email = data.email.lower()
        existing = safe_query(
            self.session,
            lambda s: s.execute(
                select(func.count()).select_from(UserDB).where(UserDB.email == email)
            ).scalar(),
            "Failed to check for duplicate email",
        )
        if existing:
            raise DuplicateError(f"A user with email {email} already exists")

        db_user = UserDB(
            id=self._generate_user_id(),
            name=data.name,
            email=email,
            role=UserRoleEnum(data.role.value),
            held_count=0,
        )
        self.session.add(db_user)
        safe_commit(self.session, "register user")
        self.session.refresh(db_user)

        logger.info("Registered %s %s", db_user.role.value, db_user.id)
        return self._to_response_model(db_user)

    def get_by_email(self, email: str) -> UserModel | None:
        row = safe_query(
            self.session,
            lambda s: s.execute(
                select(UserDB).where(UserDB.email == email.strip().lower())
            ).scalar_one_or_none(),
            "Failed to get user by email",
        )
        return self._to_response_model(row) if row is not None else None

    def list_by_role(
        self, role: UserRole, pagination: PaginationParams | None = None
    ) -> PaginatedResponse[UserModel]:
        query = select(UserDB).where(UserDB.role == UserRoleEnum(role.value)).order_by(UserDB.name)
        return self._paginate_query(query, pagination)

    def require(self, user_id: str) -> UserDB:
        """Load the user row or raise ``NotFoundError``."""
        row = self._get_row(user_id)
        if row is None:
            raise NotFoundError(f"User {user_id} not found")
        return row

    def delete(self, user_id: str) -> None:
        """
        Stage deletion of a user row. The caller commits.

        Raises:
            NotFoundError: If the user does not exist
        """
        row = self.require(user_id)
        self.session.delete(row)

    def _generate_user_id(self) -> str:
        return f"user_{uuid4().hex[:12]}"
