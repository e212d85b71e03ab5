"""
Error kinds raised by the lending core.

Three families are expected and surface to callers unchanged:
``NotFoundError``, ``ConflictError`` and ``BadRequestError``.
``InternalConsistencyError`` signals a broken copy counter and aborts the
operation that hit it. Anything else the database driver throws is wrapped
in a bare ``RepositoryException``.

The classes are re-exported from ``database.repository``; they live in
their own module so ``database.session`` can raise them without an import
cycle.
"""


class RepositoryException(Exception):
    """Base exception for repository operations."""


class NotFoundError(RepositoryException):
    """Raised when a book, user or issue is not found."""


class ConflictError(RepositoryException):
    """Raised when a write collides with existing or concurrent state."""


class DuplicateError(ConflictError):
    """Raised when attempting to create a duplicate entity."""


class AlreadyIssuedError(ConflictError):
    """The borrower already holds an open loan of this book."""


class BadRequestError(RepositoryException):
    """A business rule rejected the request."""


class NoCopiesAvailableError(BadRequestError):
    """Every copy of the book is already out on loan."""


class BookNotCirculatingError(BadRequestError):
    """The book is in maintenance or has been marked lost."""


class AlreadyReturnedError(BadRequestError):
    """The issue has already been returned."""


class InvalidPaymentError(BadRequestError):
    """Payment amount is not positive or exceeds the outstanding fine."""


class InvalidFineConfigurationError(BadRequestError):
    """Fine configuration values are out of range."""


class InvalidIssueUpdateError(BadRequestError):
    """The requested change to an issue is not allowed."""


class InternalConsistencyError(RepositoryException):
    """Copy counters would leave the range [0, total_copies].

    Never user actionable. Indicates a bug or a missed transaction boundary.
    """
