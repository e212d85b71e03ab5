"""
Book repository: the catalog entries and their copy counters.

``available_copies`` is changed only by ``reserve_copy`` and
``release_copy``. Both are single guarded UPDATE statements whose WHERE
clause carries the bound check, so two transactions can never both take the
last copy, and a counter can never pass ``total_copies``. Neither method
commits: they join the caller's transaction, and the caller commits the
copy change together with the issue row it belongs to.
"""

import logging
import uuid

from pydantic import BaseModel, Field, model_validator
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..models.book import Book as BookModel
from ..models.enums import OPEN_ISSUE_STATUSES, CatalogStatus
from .repository import (
    BaseRepository,
    BookNotCirculatingError,
    DuplicateError,
    InternalConsistencyError,
    NoCopiesAvailableError,
    NotFoundError,
    RepositoryException,
)
from .schema import Book as BookDB
from .schema import Issue as IssueDB
from .session import safe_commit, safe_query

logger = logging.getLogger(__name__)


class BookCreateSchema(BaseModel):
    """Schema for adding a book to the catalog."""

    isbn: str = Field(..., pattern=r"^\d{13}$")
    title: str = Field(..., min_length=1, max_length=500)
    author: str | None = Field(None, max_length=200)
    total_copies: int = Field(default=1, ge=1)
    available_copies: int | None = Field(
        default=None, ge=0, description="Defaults to total_copies"
    )

    @model_validator(mode="after")
    def validate_copies(self) -> "BookCreateSchema":
        if self.available_copies is not None and self.available_copies > self.total_copies:
            raise ValueError("Available copies cannot exceed total copies")
        return self


class BookRepository(BaseRepository[BookDB, BookModel]):
    """
    Repository for books and the copy counters the lending lifecycle moves.
    """

    @property
    def model_class(self) -> type[BookDB]:
        return BookDB

    @property
    def response_schema(self) -> type[BookModel]:
        return BookModel

    def create(self, book_data: BookCreateSchema) -> BookModel:
        """
        Add a book to the catalog.

        Raises:
            DuplicateError: If the ISBN is already catalogued
        """
        available = (
            book_data.total_copies
            if book_data.available_copies is None
            else book_data.available_copies
        )
        try:
            book = BookDB(
                id=str(uuid.uuid4()),
                isbn=book_data.isbn,
                title=book_data.title,
                author=book_data.author,
                total_copies=book_data.total_copies,
                available_copies=available,
                catalog_status=CatalogStatus.AVAILABLE,
            )
            self.session.add(book)
            self.session.flush()
        except IntegrityError as e:
            self.session.rollback()
            raise DuplicateError(f"Book with ISBN {book_data.isbn} already exists") from e
        except SQLAlchemyError as e:
            self.session.rollback()
            raise RepositoryException(f"Database error: {e!s}") from e

        safe_commit(self.session, "create book")
        return self._to_response_model(book)

    def get_by_isbn(self, isbn: str) -> BookModel | None:
        book = safe_query(
            self.session,
            lambda s: s.execute(
                select(BookDB)
                .where(BookDB.isbn == isbn)
                .execution_options(populate_existing=True)
            ).scalar_one_or_none(),
            "Failed to get book by ISBN",
        )
        return self._to_response_model(book) if book else None

    def set_catalog_status(self, book_id: str, status: CatalogStatus) -> BookModel:
        """Put a book into maintenance, mark it lost, or return it to circulation."""
        with self._transaction("set catalog status"):
            book = self._load_or_raise(book_id)
            book.catalog_status = status
            self.session.flush()
        logger.info("Book %s catalog status set to %s", book_id, status.value)
        return self._to_response_model(book)

    def count_open_issues(self, book_id: str) -> int:
        """Loans of this book that have not been returned."""
        return safe_query(
            self.session,
            lambda s: s.execute(
                select(func.count())
                .select_from(IssueDB)
                .where(IssueDB.book_id == book_id, IssueDB.status.in_(OPEN_ISSUE_STATUSES))
            ).scalar_one(),
            "Failed to count open issues",
        )

    def reserve_copy(self, book_id: str) -> None:
        """
        Take one copy off the shelf.

        Does not commit.

        Raises:
            NotFoundError: If the book does not exist
            BookNotCirculatingError: If the book is in maintenance or lost
            NoCopiesAvailableError: If no copy is on the shelf right now
        """
        stmt = (
            update(BookDB)
            .where(
                BookDB.id == book_id,
                BookDB.available_copies > 0,
                BookDB.catalog_status == CatalogStatus.AVAILABLE,
            )
            .values(available_copies=BookDB.available_copies - 1)
            .execution_options(synchronize_session=False)
        )
        result = safe_query(self.session, lambda s: s.execute(stmt), "Failed to reserve a copy")
        if result.rowcount == 1:
            return

        book = self._load(book_id)
        if book is None:
            raise NotFoundError(f"Book {book_id} not found")
        if book.catalog_status != CatalogStatus.AVAILABLE:
            raise BookNotCirculatingError(
                f"Book '{book.title}' is not circulating "
                f"(catalog status: {book.catalog_status.value})"
            )
        raise NoCopiesAvailableError(f"No copies of '{book.title}' are available")

    def release_copy(self, book_id: str, issue_id: str | None = None) -> None:
        """
        Put one copy back on the shelf.

        Does not commit. A counter already at ``total_copies`` means the
        ledger and the loans disagree; that is logged and raised, never
        clamped.

        Raises:
            NotFoundError: If the book does not exist
            InternalConsistencyError: If every copy is already on the shelf
        """
        stmt = (
            update(BookDB)
            .where(BookDB.id == book_id, BookDB.available_copies < BookDB.total_copies)
            .values(available_copies=BookDB.available_copies + 1)
            .execution_options(synchronize_session=False)
        )
        result = safe_query(self.session, lambda s: s.execute(stmt), "Failed to release a copy")
        if result.rowcount == 1:
            return

        book = self._load(book_id)
        if book is None:
            raise NotFoundError(f"Book {book_id} not found")

        logger.critical(
            "Copy counter would exceed total on release: operation=release_copy "
            "book_id=%s issue_id=%s available_copies=%s total_copies=%s",
            book_id,
            issue_id,
            book.available_copies,
            book.total_copies,
        )
        raise InternalConsistencyError(
            f"Book {book_id} already has all {book.total_copies} copies on the shelf"
        )
