"""Pytest configuration and shared fixtures.

This module provides fixtures for testing the librarian application,
including in-memory databases, managers and sample users and books.
"""

import os
import tempfile
from pathlib import Path
from typing import Generator

import pytest

from librarian.catalog import CatalogManager
from librarian.config import Config, reset_config
from librarian.db.sqlite import Database, reset_db
from librarian.loans import LoanManager, RatingAggregator


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
def db() -> Database:
    """Create an in-memory database for testing."""
    database = Database(":memory:")
    database.create_tables()
    return database


@pytest.fixture
def temp_db_path() -> Generator[Path, None, None]:
    """Create a temporary database file path."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)
    yield db_path
    # Cleanup
    if db_path.exists():
        db_path.unlink()


@pytest.fixture
def env_db(temp_db_path: Path) -> Generator[Path, None, None]:
    """Point the global config and database at a temporary file."""
    reset_db()
    reset_config()
    os.environ["LIBRARIAN_DB_PATH"] = str(temp_db_path)

    yield temp_db_path

    reset_db()
    reset_config()
    if "LIBRARIAN_DB_PATH" in os.environ:
        del os.environ["LIBRARIAN_DB_PATH"]


@pytest.fixture
def config() -> Config:
    """Configuration for an in-memory store."""
    return Config(
        db_path=Path(":memory:"),
        log_level="INFO",
        page_limit=10,
        max_page_limit=100,
        host="127.0.0.1",
        port=5000,
    )


# ============================================================================
# Manager Fixtures
# ============================================================================


@pytest.fixture
def catalog(db: Database) -> CatalogManager:
    """Create a CatalogManager with test database."""
    return CatalogManager(db)


@pytest.fixture
def loans(db: Database) -> LoanManager:
    """Create a LoanManager with test database."""
    return LoanManager(db)


@pytest.fixture
def aggregator(db: Database) -> RatingAggregator:
    """Create a RatingAggregator with test database."""
    return RatingAggregator(db)


# ============================================================================
# Sample Data Fixtures
# ============================================================================


@pytest.fixture
def users(catalog: CatalogManager) -> list[int]:
    """Create four users and return their IDs."""
    names = ["Alice", "Bob", "Carol", "Dave"]
    return [catalog.create_user(name).id for name in names]


@pytest.fixture
def books(catalog: CatalogManager) -> list[int]:
    """Create three books and return their IDs."""
    names = ["Dune", "Emma", "Ulysses"]
    return [catalog.create_book(name).id for name in names]


@pytest.fixture
def user_id(users: list[int]) -> int:
    """ID of the first sample user."""
    return users[0]


@pytest.fixture
def book_id(books: list[int]) -> int:
    """ID of the first sample book."""
    return books[0]
