"""
Database package for the library lending engine.

This package provides:
- SQLAlchemy schema definitions (schema.py)
- Session management and connection handling (session.py)
- Repositories for books, users, issues, fine configuration and the audit trail
- The error hierarchy every repository raises (repository.py)
"""

from .audit_repository import AuditRepository
from .book_repository import BookCreateSchema, BookRepository
from .fine_repository import FineConfigurationRepository
from .issue_repository import (
    IssueCreateSchema,
    IssueRepository,
    IssueUpdateSchema,
    PaymentSchema,
    ReturnSchema,
    WaiverSchema,
)
from .repository import (
    AlreadyIssuedError,
    AlreadyReturnedError,
    BadRequestError,
    BaseRepository,
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
from .schema import AuditLog, Base, Book, FineConfiguration, Issue, User
from .session import (
    DatabaseManager,
    get_db_manager,
    get_session,
    reset_db_manager,
    safe_commit,
    safe_query,
    session_scope,
)
from .user_repository import UserCreateSchema, UserRepository

__all__ = [
    "AlreadyIssuedError",
    "AlreadyReturnedError",
    "AuditLog",
    "AuditRepository",
    "BadRequestError",
    "Base",
    "BaseRepository",
    "Book",
    "BookCreateSchema",
    "BookNotCirculatingError",
    "BookRepository",
    "ConflictError",
    "DatabaseManager",
    "DuplicateError",
    "FineConfiguration",
    "FineConfigurationRepository",
    "InternalConsistencyError",
    "InvalidFineConfigurationError",
    "InvalidIssueUpdateError",
    "InvalidPaymentError",
    "Issue",
    "IssueCreateSchema",
    "IssueRepository",
    "IssueUpdateSchema",
    "NoCopiesAvailableError",
    "NotFoundError",
    "PaymentSchema",
    "RepositoryException",
    "ReturnSchema",
    "User",
    "UserCreateSchema",
    "UserRepository",
    "WaiverSchema",
    "get_db_manager",
    "get_session",
    "reset_db_manager",
    "safe_commit",
    "safe_query",
    "session_scope",
]
