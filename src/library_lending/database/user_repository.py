"""
User repository for the library lending engine.

Users are created by account management elsewhere; the lending core only
needs to look them up and, for seeding and tests, create them.
"""

import uuid

from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..models.enums import UserRole
from ..models.user import User as UserModel
from .repository import BaseRepository, DuplicateError, RepositoryException
from .schema import User as UserDB
from .session import safe_commit, safe_query


class UserCreateSchema(BaseModel):
    """Schema for creating a user."""

    name: str = Field(..., min_length=1, max_length=200)
    email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    role: UserRole = UserRole.MEMBER


class UserRepository(BaseRepository[UserDB, UserModel]):
    @property
    def model_class(self) -> type[UserDB]:
        return UserDB

    @property
    def response_schema(self) -> type[UserModel]:
        return UserModel

    def create(self, user_data: UserCreateSchema) -> UserModel:
        """
        Create a user.

        Raises:
            DuplicateError: If the email is already registered
        """
        try:
            user = UserDB(
                id=str(uuid.uuid4()),
                name=user_data.name,
                email=user_data.email.lower(),
                role=user_data.role,
            )
            self.session.add(user)
            self.session.flush()
        except IntegrityError as e:
            self.session.rollback()
            raise DuplicateError(f"User with email {user_data.email} already exists") from e
        except SQLAlchemyError as e:
            self.session.rollback()
            raise RepositoryException(f"Database error: {e!s}") from e

        safe_commit(self.session, "create user")
        return self._to_response_model(user)

    def get_by_email(self, email: str) -> UserModel | None:
        user = safe_query(
            self.session,
            lambda s: s.execute(
                select(UserDB).where(UserDB.email == email.lower())
            ).scalar_one_or_none(),
            "Failed to get user by email",
        )
        return self._to_response_model(user) if user else None
