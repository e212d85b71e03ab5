"""Test configuration and fixtures for the library lending engine.

1. Isolated databases - every test gets its own SQLite file
2. A frozen clock - fines and due dates are computed against a time the test controls
3. Seeded users and books created through the repositories
4. Tool handlers pointed at the test database

SQLite transactions start with BEGIN IMMEDIATE, so a session that has read
anything holds the write lock until it commits or rolls back. Tests that
hand work to other sessions (sweeps, threads, tool handlers) end the
``db_session`` transaction first.
"""

from collections.abc import Generator
from datetime import datetime
from pathlib import Path

import logfire
import pytest
from sqlalchemy.orm import Session

from library_lending.background import BackgroundRecalculator, ManualScheduler
from library_lending.clock import FrozenClock, set_clock
from library_lending.config import reset_config
from library_lending.database import (
    BookCreateSchema,
    BookRepository,
    DatabaseManager,
    FineConfigurationRepository,
    IssueCreateSchema,
    IssueRepository,
    UserCreateSchema,
    UserRepository,
)
from library_lending.models import Book, Issue, User, UserRole

# Spans and metrics stay in-process during tests
logfire.configure(send_to_logfire=False, console=False)

START = datetime(2024, 1, 15, 10, 0, 0)


# === Configuration Fixtures ===


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Keep the global settings away from the developer's .env and data/ directory."""
    for key in ("DATABASE_URL", "SCHEDULER_ENABLED", "LOG_LEVEL", "DEBUG"):
        monkeypatch.delenv(f"LIBRARY_LENDING_{key}", raising=False)
    monkeypatch.setenv("LIBRARY_LENDING_DATABASE_URL", f"sqlite:///{tmp_path / 'default.db'}")
    reset_config()

    yield

    reset_config()
    set_clock(None)


# === Test Database Fixtures ===


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(START)


@pytest.fixture
def test_db_path(tmp_path: Path) -> Path:
    return tmp_path / "test_library.db"


@pytest.fixture
def db_manager(test_db_path: Path) -> Generator[DatabaseManager, None, None]:
    """A manager for a fresh database file with the schema created."""
    manager = DatabaseManager(f"sqlite:///{test_db_path}", busy_timeout=5)
    manager.init_database()

    yield manager

    manager.close()


@pytest.fixture
def db_session(db_manager: DatabaseManager) -> Generator[Session, None, None]:
    session = db_manager.create_session()

    yield session

    session.rollback()
    session.close()


# === Repository Fixtures ===


@pytest.fixture
def issue_repo(db_session: Session, clock: FrozenClock) -> IssueRepository:
    return IssueRepository(db_session, clock)


@pytest.fixture
def fine_repo(db_session: Session, clock: FrozenClock) -> FineConfigurationRepository:
    return FineConfigurationRepository(db_session, clock)


@pytest.fixture
def book_repo(db_session: Session) -> BookRepository:
    return BookRepository(db_session)


# === Invariant Fixtures ===


@pytest.fixture
def assert_copies_balanced(db_session: Session):
    """Check that the copies off the shelf of a book equal its open loans."""

    def check(book_id: str) -> None:
        repo = BookRepository(db_session)
        book = repo.get(book_id)
        assert 0 <= book.available_copies <= book.total_copies
        assert book.total_copies - book.available_copies == repo.count_open_issues(book_id)

    return check


# === Test Data Fixtures ===


@pytest.fixture
def borrower(db_session: Session) -> User:
    return UserRepository(db_session).create(
        UserCreateSchema(name="Ada Borrower", email="ada@example.com")
    )


@pytest.fixture
def other_borrower(db_session: Session) -> User:
    return UserRepository(db_session).create(
        UserCreateSchema(name="Grace Reader", email="grace@example.com")
    )


@pytest.fixture
def librarian(db_session: Session) -> User:
    return UserRepository(db_session).create(
        UserCreateSchema(
            name="Lin Librarian", email="lin@library.example.com", role=UserRole.LIBRARIAN
        )
    )


@pytest.fixture
def book(db_session: Session) -> Book:
    """A book with two copies."""
    book = BookRepository(db_session).create(
        BookCreateSchema(
            isbn="9780134685991",
            title="Effective Java",
            author="Joshua Bloch",
            total_copies=2,
        )
    )
    db_session.commit()
    return book


@pytest.fixture
def single_copy_book(db_session: Session) -> Book:
    book = BookRepository(db_session).create(
        BookCreateSchema(
            isbn="9780596007126",
            title="Head First Design Patterns",
            author="Eric Freeman",
            total_copies=1,
        )
    )
    db_session.commit()
    return book


@pytest.fixture
def issued(issue_repo: IssueRepository, book: Book, borrower: User, librarian: User) -> Issue:
    """An open loan of ``book`` to ``borrower``, issued at START and due 14 days later."""
    return issue_repo.issue_book(
        IssueCreateSchema(book_id=book.id, issued_to_id=borrower.id, processed_by_id=librarian.id)
    )


# === Background Fixtures ===


@pytest.fixture
def recalculator(db_manager: DatabaseManager, clock: FrozenClock) -> BackgroundRecalculator:
    return BackgroundRecalculator(db_manager.session_factory, clock)


@pytest.fixture
def manual_scheduler() -> ManualScheduler:
    return ManualScheduler()


# === Tool Fixtures ===


@pytest.fixture
def mock_get_session(
    db_manager: DatabaseManager, clock: FrozenClock, monkeypatch: pytest.MonkeyPatch
) -> Generator[DatabaseManager, None, None]:
    """Point the tool handlers at the test database and the frozen clock."""
    monkeypatch.setattr("library_lending.tools.issues.get_session", db_manager.create_session)
    monkeypatch.setattr("library_lending.tools.fines.get_session", db_manager.create_session)
    set_clock(clock)

    yield db_manager

    set_clock(None)
