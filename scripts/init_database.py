#!/usr/bin/env python3
"""
Initialize the library lending database.

This script:
1. Creates all database tables
2. Optionally loads sample users, books and loans
3. Verifies the database is ready for the MCP server

Usage:
    python scripts/init_database.py [--drop-existing] [--sample-data] [--database-url URL]
"""

import argparse
import logging
import random
import sys

from faker import Faker
from sqlalchemy import inspect

from library_lending.clock import system_clock
from library_lending.database import (
    BookCreateSchema,
    BookRepository,
    FineConfigurationRepository,
    IssueCreateSchema,
    IssueRepository,
    RepositoryException,
    UserCreateSchema,
    UserRepository,
    get_db_manager,
)
from library_lending.database.session import DatabaseManager
from library_lending.models import User, UserRole

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

EXPECTED_TABLES = {"users", "books", "issues", "fine_configurations", "audit_logs"}

fake = Faker()
Faker.seed(42)  # Consistent data across runs
random.seed(42)


def main():
    """Main entry point for database initialization."""
    parser = argparse.ArgumentParser(description="Initialize the library lending database")
    parser.add_argument(
        "--drop-existing",
        action="store_true",
        help="Drop existing tables before creating new ones",
    )
    parser.add_argument(
        "--sample-data",
        action="store_true",
        help="Load sample data after creating tables",
    )
    parser.add_argument(
        "--database-url",
        help="Override default database URL",
    )

    args = parser.parse_args()

    logger.info("Initializing database manager...")
    db_manager = get_db_manager(args.database_url)

    if not db_manager.verify_connection():
        logger.error("Failed to connect to database")
        sys.exit(1)

    try:
        logger.info("Creating database schema...")
        db_manager.init_database(drop_existing=args.drop_existing)

        tables = set(inspect(db_manager.engine).get_table_names())
        missing_tables = EXPECTED_TABLES - tables
        if missing_tables:
            logger.error("Missing expected tables: %s", ", ".join(sorted(missing_tables)))
            sys.exit(1)
        logger.info("Created tables: %s", ", ".join(sorted(tables)))

        # Make sure the active fine configuration exists before anything lends
        with db_manager.session_scope() as session:
            config = FineConfigurationRepository(session, system_clock).get_active()
            logger.info(
                "Active fine configuration: %s/day after %d grace day(s), capped at %s",
                config.fine_per_day,
                config.grace_period_days,
                config.max_fine_amount,
            )

        if args.sample_data:
            logger.info("Loading sample data...")
            load_sample_data(db_manager)

        logger.info("Database initialization complete")

    except RepositoryException:
        logger.exception("Database initialization failed")
        sys.exit(1)
    finally:
        db_manager.close()


def find_or_create_user(users: UserRepository, email: str, role: UserRole) -> User:
    """Reuse the account a previous seeding run created for this email."""
    existing = users.get_by_email(email)
    if existing is not None:
        return existing
    return users.create(UserCreateSchema(name=fake.name(), email=email, role=role))


def load_sample_data(
    db_manager: DatabaseManager, members: int = 20, books: int = 40, loans: int = 15
) -> None:
    """
    Load sample data for trying the MCP server out.

    Creates one librarian, a set of members and books, and a few open loans
    processed by the librarian.
    """
    with db_manager.session_scope() as session:
        users = UserRepository(session)
        librarian = find_or_create_user(users, fake.unique.email(), UserRole.LIBRARIAN)
        member_ids = [
            find_or_create_user(users, fake.unique.email(), UserRole.MEMBER).id
            for _ in range(members)
        ]
        logger.info("Seeded %d members and librarian %s", members, librarian.name)

        catalog = BookRepository(session)
        book_ids = []
        for _ in range(books):
            isbn = fake.unique.isbn13(separator="")
            existing = catalog.get_by_isbn(isbn)
            if existing is not None:
                book_ids.append(existing.id)
                continue
            total = random.randint(1, 4)
            book = catalog.create(
                BookCreateSchema(
                    isbn=isbn,
                    title=fake.catch_phrase().title(),
                    author=fake.name(),
                    total_copies=total,
                )
            )
            book_ids.append(book.id)
        logger.info("Seeded %d books", books)

        issues = IssueRepository(session, system_clock)
        created = 0
        for _ in range(loans):
            try:
                issues.issue_book(
                    IssueCreateSchema(
                        book_id=random.choice(book_ids),
                        issued_to_id=random.choice(member_ids),
                        processed_by_id=librarian.id,
                    )
                )
            except RepositoryException as e:
                # Random picks can repeat a borrower/book pair or empty a shelf
                logger.info("Skipped sample loan: %s", e)
                continue
            created += 1
        logger.info("Created %d open loans", created)


if __name__ == "__main__":
    main()
