"""
SQLAlchemy database schema for the library lending engine.

Five tables:

1. ``users``: borrowers and the staff who process loans
2. ``books``: catalog entries with their copy counters
3. ``issues``: one row per loan, never deleted
4. ``fine_configurations``: append-only history, at most one active row
5. ``audit_logs``: one row per lending operation

Invariants that can be stated in SQL are stated here as CHECK constraints
and partial unique indexes, so the database rejects what the repositories
should never attempt.
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

from ..models.enums import AuditAction, BookStatus, CatalogStatus, IssueStatus, UserRole

Base = declarative_base()

MONEY = Numeric(10, 2)


class User(Base):
    """Users table - borrowers, librarians and administrators."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True)
    name = Column(String(200), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    role = Column(Enum(UserRole), nullable=False, default=UserRole.MEMBER)

    created_at = Column(DateTime, nullable=False, default=func.now())

    issues = relationship(
        "Issue", back_populates="issued_to", foreign_keys="Issue.issued_to_id"
    )

    __table_args__ = (Index("idx_user_email", "email"),)


class Book(Base):
    """
    Books table - the catalog and its copy counters.

    ``available_copies`` moves only through guarded UPDATE statements in
    ``BookRepository.reserve_copy`` / ``release_copy``. The loan-facing
    status is computed from the counters and ``catalog_status``; it is not
    stored.
    """

    __tablename__ = "books"

    id = Column(String(36), primary_key=True)
    isbn = Column(String(13), nullable=False, unique=True)
    title = Column(String(500), nullable=False)
    author = Column(String(200), nullable=True)
    total_copies = Column(Integer, nullable=False, default=1)
    available_copies = Column(Integer, nullable=False, default=1)
    catalog_status = Column(
        Enum(CatalogStatus), nullable=False, default=CatalogStatus.AVAILABLE
    )

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=True, default=func.now(), onupdate=func.now())

    issues = relationship("Issue", back_populates="book")

    __table_args__ = (
        Index("idx_book_title", "title"),
        CheckConstraint("available_copies >= 0", name="check_available_copies_non_negative"),
        CheckConstraint(
            "available_copies <= total_copies", name="check_available_not_exceed_total"
        ),
        CheckConstraint("total_copies >= 1", name="check_total_copies_positive"),
    )

    @property
    def status(self) -> BookStatus:
        """Catalog state wins; otherwise ISSUED once the last copy is out."""
        if self.catalog_status in (CatalogStatus.MAINTENANCE, CatalogStatus.LOST):
            return BookStatus(self.catalog_status.value)
        if self.available_copies == 0:
            return BookStatus.ISSUED
        return BookStatus.AVAILABLE


class Issue(Base):
    """
    Issues table - one row per loan.

    ``version`` is bumped by every write; writers compare-and-set on it.
    ``fine_paid_amount`` and ``fine_waived_amount`` accumulate the credits
    already applied, so recalculation never undoes a payment or a waiver.
    """

    __tablename__ = "issues"

    id = Column(String(36), primary_key=True)
    book_id = Column(String(36), ForeignKey("books.id"), nullable=False)
    issued_to_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    processed_by_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    issue_date = Column(DateTime, nullable=False)
    expected_return_date = Column(DateTime, nullable=False)
    actual_return_date = Column(DateTime, nullable=True)
    status = Column(Enum(IssueStatus), nullable=False, default=IssueStatus.ACTIVE)
    fine_amount = Column(MONEY, nullable=False, default=0)
    fine_paid_amount = Column(MONEY, nullable=False, default=0)
    fine_waived_amount = Column(MONEY, nullable=False, default=0)
    notes = Column(Text, nullable=True)
    version = Column(Integer, nullable=False, default=1)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    book = relationship("Book", back_populates="issues")
    issued_to = relationship("User", back_populates="issues", foreign_keys=[issued_to_id])
    processed_by = relationship("User", foreign_keys=[processed_by_id])

    __table_args__ = (
        Index("idx_issue_book", "book_id"),
        Index("idx_issue_borrower", "issued_to_id"),
        Index("idx_issue_status", "status"),
        Index("idx_issue_expected_return", "expected_return_date"),
        # At most one open loan per (book, borrower)
        Index(
            "uq_issue_open_loan",
            "book_id",
            "issued_to_id",
            unique=True,
            sqlite_where=text("status IN ('ACTIVE', 'OVERDUE')"),
            postgresql_where=text("status IN ('ACTIVE', 'OVERDUE')"),
        ),
        CheckConstraint("fine_amount >= 0", name="check_fine_non_negative"),
        CheckConstraint("fine_paid_amount >= 0", name="check_fine_paid_non_negative"),
        CheckConstraint("fine_waived_amount >= 0", name="check_fine_waived_non_negative"),
        CheckConstraint("expected_return_date >= issue_date", name="check_due_after_issue"),
        CheckConstraint("version >= 1", name="check_version_positive"),
    )


class FineConfiguration(Base):
    """
    Fine configuration history.

    Rows are never edited except to clear ``is_active`` when a successor is
    inserted in the same transaction.
    """

    __tablename__ = "fine_configurations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    fine_per_day = Column(MONEY, nullable=False)
    max_fine_amount = Column(MONEY, nullable=False)
    grace_period_days = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_by_id = Column(String(36), nullable=True)
    created_at = Column(DateTime, nullable=False, default=func.now())

    __table_args__ = (
        # At most one active row
        Index(
            "uq_fine_configuration_active",
            "is_active",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active = true"),
        ),
        CheckConstraint("fine_per_day > 0", name="check_fine_per_day_positive"),
        CheckConstraint("max_fine_amount > 0", name="check_max_fine_positive"),
        CheckConstraint("grace_period_days >= 0", name="check_grace_period_non_negative"),
    )


class AuditLog(Base):
    """Audit trail. ``details`` holds a JSON object serialized as text."""

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    action = Column(Enum(AuditAction), nullable=False)
    entity = Column(String(50), nullable=False)
    entity_id = Column(String(36), nullable=False)
    user_id = Column(String(36), nullable=True)
    details = Column(Text, nullable=True)  # JSON object
    created_at = Column(DateTime, nullable=False, default=func.now())

    __table_args__ = (
        Index("idx_audit_entity", "entity", "entity_id"),
        Index("idx_audit_action", "action"),
    )
