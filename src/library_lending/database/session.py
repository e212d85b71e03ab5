"""
Database session management for the library lending engine.

Every lending operation is a short transaction on its own session:

1. Tool handlers open one session per request.
2. The background fine sweep opens one session per issue.
3. Sessions never outlive the operation that created them.

SQLite notes:
- File databases get a real connection pool so concurrent threads each hold
  their own connection, and a busy timeout so writers queue for the write
  lock instead of failing straight away.
- Transactions start with ``BEGIN IMMEDIATE``. pysqlite otherwise defers
  the write lock until the first write, and two readers racing to upgrade
  deadlock with ``database is locked``.
- ``:memory:`` databases share one static connection.
"""

import logging
from collections.abc import Callable, Generator
from contextlib import contextmanager
from typing import TypeVar

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import get_config
from .exceptions import RepositoryException
from .schema import Base

# Configure logging for database operations
logger = logging.getLogger(__name__)


class DatabaseManager:
    """
    Owns the engine and session factory for one database.

    Tests build their own instance per database file; the server uses the
    process-wide instance returned by ``get_db_manager()``.
    """

    def __init__(self, database_url: str | None = None, busy_timeout: float | None = None):
        """
        Initialize the database manager.

        Args:
            database_url: SQLAlchemy database URL. Defaults to the configured URL.
            busy_timeout: Seconds a SQLite writer waits for the write lock.
        """
        config = get_config()
        self.database_url = database_url or config.database_url
        self.busy_timeout = busy_timeout if busy_timeout is not None else config.sqlite_busy_timeout
        self._engine: Engine | None = None
        self._session_factory: sessionmaker | None = None

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def engine(self) -> Engine:
        """Get or create the database engine."""
        if self._engine is None:
            if self.is_sqlite:
                self._engine = self._create_sqlite_engine()
            else:
                # PostgreSQL or other databases
                self._engine = create_engine(
                    self.database_url,
                    pool_size=10,
                    max_overflow=20,
                    pool_pre_ping=True,  # Verify connections before use
                    echo=False,
                )

            logger.info("Database engine created: %s", self._engine.url)

        return self._engine

    def _create_sqlite_engine(self) -> Engine:
        if ":memory:" in self.database_url:
            engine = create_engine(
                self.database_url,
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
                echo=False,
            )
        else:
            engine = create_engine(
                self.database_url,
                connect_args={"check_same_thread": False, "timeout": self.busy_timeout},
                echo=False,
            )

        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):  # noqa: ARG001
            # Hand transaction control to the "begin" hook below
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(engine, "begin")
        def begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

        return engine

    @property
    def session_factory(self) -> sessionmaker:
        """Get or create the session factory."""
        if self._session_factory is None:
            self._session_factory = sessionmaker(
                bind=self.engine,
                autocommit=False,
                autoflush=False,
                expire_on_commit=False,  # Keep objects usable after commit
            )
        return self._session_factory

    def create_session(self) -> Session:
        """Create a new database session. Close it, or use it as a context manager."""
        return self.session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Provide a transactional scope for database operations.

        ```python
        with db_manager.session_scope() as session:
            BookRepository(session).get_by_isbn(isbn)
        # Session is automatically committed or rolled back
        ```
        """
        session = self.create_session()
        try:
            yield session
            session.commit()
            logger.debug("Database transaction committed successfully")
        except Exception:
            logger.exception("Database error, rolling back")
            session.rollback()
            raise
        finally:
            session.close()

    def init_database(self, drop_existing: bool = False) -> None:
        """
        Initialize the database schema.

        Args:
            drop_existing: If True, drop all tables before creating
        """
        engine = self.engine

        if drop_existing:
            logger.warning("Dropping all existing tables...")
            Base.metadata.drop_all(bind=engine)

        logger.info("Creating database tables...")
        Base.metadata.create_all(bind=engine)
        logger.info("Database initialization complete")

    def verify_connection(self) -> bool:
        """Return True if a trivial query succeeds."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("Database connection verified")
            return True
        except SQLAlchemyError:
            logger.exception("Database connection failed")
            return False

    def close(self) -> None:
        """Dispose of the engine. Called when the server shuts down."""
        if self._engine:
            self._engine.dispose()
            logger.info("Database engine disposed")
        self._engine = None
        self._session_factory = None


# Global database manager instance
_db_manager: DatabaseManager | None = None


def get_db_manager(database_url: str | None = None) -> DatabaseManager:
    """
    Get the global database manager instance.

    Args:
        database_url: Database URL (only used on first call)
    """
    global _db_manager  # noqa: PLW0603 - Singleton pattern for database manager

    if _db_manager is None:
        _db_manager = DatabaseManager(database_url)

    return _db_manager


def reset_db_manager() -> None:
    """Dispose of the global manager so the next call builds a fresh one."""
    global _db_manager  # noqa: PLW0603

    if _db_manager is not None:
        _db_manager.close()
    _db_manager = None


def get_session() -> Session:
    """
    Get a new database session.

    Prefer using session_scope() for proper transaction management.
    """
    return get_db_manager().create_session()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Convenience context manager for database sessions."""
    with get_db_manager().session_scope() as session:
        yield session


def safe_commit(session: Session, operation: str) -> None:
    """
    Commit, rolling back and wrapping driver errors on failure.

    Raises:
        RepositoryException: If the commit fails
    """
    try:
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        raise RepositoryException(f"Database operation '{operation}' failed: {e!s}") from e


T = TypeVar("T")


def safe_query(session: Session, query_func: Callable[[Session], T], error_msg: str) -> T:
    """
    Run ``query_func`` against the session, wrapping driver errors.

    Domain exceptions raised inside ``query_func`` pass through untouched.

    Raises:
        RepositoryException: If the query fails at the database level
    """
    try:
        return query_func(session)
    except SQLAlchemyError as e:
        logger.exception("Query failed")
        raise RepositoryException(f"{error_msg}: Database query failed") from e
