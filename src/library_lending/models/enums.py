"""Status and kind enums shared by the models and the database schema."""

import enum


class UserRole(str, enum.Enum):
    MEMBER = "MEMBER"
    LIBRARIAN = "LIBRARIAN"
    ADMIN = "ADMIN"


class CatalogStatus(str, enum.Enum):
    """Administrative state of a book, set by catalog management."""

    AVAILABLE = "AVAILABLE"
    MAINTENANCE = "MAINTENANCE"
    LOST = "LOST"


class BookStatus(str, enum.Enum):
    """Book status as reported to callers."""

    AVAILABLE = "AVAILABLE"
    ISSUED = "ISSUED"
    MAINTENANCE = "MAINTENANCE"
    LOST = "LOST"


class IssueStatus(str, enum.Enum):
    """Status of a loan."""

    ACTIVE = "ACTIVE"
    OVERDUE = "OVERDUE"
    RETURNED = "RETURNED"


OPEN_ISSUE_STATUSES = (IssueStatus.ACTIVE, IssueStatus.OVERDUE)


class AuditAction(str, enum.Enum):
    """Lending operations recorded in the audit trail."""

    ISSUE_BOOK = "ISSUE_BOOK"
    RETURN_BOOK = "RETURN_BOOK"
    CALCULATE_FINE = "CALCULATE_FINE"
    PAY_FINE = "PAY_FINE"
    WAIVE_FINE = "WAIVE_FINE"
    UPDATE_FINE_CONFIG = "UPDATE_FINE_CONFIG"


class PaymentMethod(str, enum.Enum):
    """How a fine payment was made."""

    CASH = "CASH"
    CARD = "CARD"
    ONLINE = "ONLINE"
    BANK_TRANSFER = "BANK_TRANSFER"
