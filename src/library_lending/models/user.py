"""User model: borrowers and staff share one table."""

from pydantic import BaseModel, ConfigDict, Field

from .enums import UserRole


class User(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str = Field(..., min_length=1, max_length=200)
    email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    role: UserRole = UserRole.MEMBER
