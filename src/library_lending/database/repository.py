"""
Repository pattern implementation for the library lending engine.

Repositories are the only code that touches the ORM. They take a session,
run one operation as one transaction, and hand back pydantic models so the
tool layer never sees SQLAlchemy objects.

Error handling follows one rule throughout: on any ``RepositoryException``
or driver error the session is rolled back before the exception leaves the
repository, so a caller never inherits a half-applied transaction.
"""

from abc import ABC, abstractmethod
from collections.abc import Generator
from contextlib import contextmanager
from typing import Generic, TypeVar

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..database.schema import Base
from ..database.session import safe_query
from .exceptions import (
    AlreadyIssuedError,
    AlreadyReturnedError,
    BadRequestError,
    BookNotCirculatingError,
    ConflictError,
    DuplicateError,
    InternalConsistencyError,
    InvalidFineConfigurationError,
    InvalidIssueUpdateError,
    InvalidPaymentError,
    NoCopiesAvailableError,
    NotFoundError,
    RepositoryException,
)

# Type variables for generic repository
ModelType = TypeVar("ModelType", bound=Base)
ResponseSchemaType = TypeVar("ResponseSchemaType", bound=BaseModel)


class BaseRepository(ABC, Generic[ModelType, ResponseSchemaType]):
    """
    Abstract base repository providing lookups shared by every entity.
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

    @contextmanager
    def _transaction(self, operation: str) -> Generator[None, None, None]:
        """
        Commit the work done inside the block as one transaction.

        Any ``RepositoryException`` rolls the session back and propagates
        unchanged; driver errors are rolled back and wrapped.
        """
        try:
            yield
            self.session.commit()
        except RepositoryException:
            self.session.rollback()
            raise
        except SQLAlchemyError as e:
            self.session.rollback()
            raise RepositoryException(f"Database operation '{operation}' failed: {e!s}") from e

    def _to_response_model(self, db_obj: ModelType) -> ResponseSchemaType:
        """Convert database model to Pydantic response model."""
        return self.response_schema.model_validate(db_obj, from_attributes=True)

    def _load(self, id: str) -> ModelType | None:
        # Guarded UPDATEs bypass the identity map, so always read the row back
        query = (
            select(self.model_class)
            .where(self.model_class.id == str(id))
            .execution_options(populate_existing=True)
        )
        return safe_query(
            self.session,
            lambda s: s.execute(query).scalar_one_or_none(),
            f"Failed to get {self.model_class.__name__} by ID",
        )

    def _load_or_raise(self, id: str) -> ModelType:
        db_obj = self._load(id)
        if db_obj is None:
            raise NotFoundError(f"{self.model_class.__name__} {id} not found")
        return db_obj

    def get(self, id: str) -> ResponseSchemaType:
        """
        Get entity by ID, raising when it does not exist.

        Raises:
            NotFoundError: If no row has this ID
        """
        return self._to_response_model(self._load_or_raise(id))


__all__ = [
    "AlreadyIssuedError",
    "AlreadyReturnedError",
    "BadRequestError",
    "BaseRepository",
    "BookNotCirculatingError",
    "ConflictError",
    "DuplicateError",
    "InternalConsistencyError",
    "InvalidFineConfigurationError",
    "InvalidIssueUpdateError",
    "InvalidPaymentError",
    "NoCopiesAvailableError",
    "NotFoundError",
    "RepositoryException",
]
