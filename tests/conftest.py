"""Pytest configuration and shared fixtures.

This module provides fixtures for testing the bibliodesk application,
including in-memory stores, a SQLite database and a controllable clock.
"""

from datetime import date, timedelta
from pathlib import Path
from typing import Callable, Generator, Optional

import pytest

from bibliodesk.config import reset_config
from bibliodesk.db import Database, SqlBookStore, SqlLoanStore, SqlMemberStore
from bibliodesk.lending import (
    Book,
    BookStore,
    InMemoryBookStore,
    InMemoryLoanStore,
    InMemoryMemberStore,
    LendingManager,
)


class FrozenClock:
    """Clock pinned to a date until moved forward."""

    def __init__(self, today: date):
        self.current = today

    def __call__(self) -> date:
        return self.current

    def advance(self, days: int) -> date:
        self.current += timedelta(days=days)
        return self.current


class HookedBookStore(BookStore):
    """Delegates to another book store, calling ``on_lookup`` after each read.

    Lets a test stop one engine between reading a book and flipping it.
    """

    def __init__(self, inner: BookStore, on_lookup: Callable[[], None]):
        self.inner = inner
        self.on_lookup = on_lookup

    def find_by_id(self, isbn: str) -> Optional[Book]:
        book = self.inner.find_by_id(isbn)
        self.on_lookup()
        return book

    def update(self, book: Book) -> None:
        self.inner.update(book)

    def set_availability(self, isbn: str, available: bool) -> bool:
        return self.inner.set_availability(isbn, available)

    def add(self, book: Book) -> Book:
        return self.inner.add(book)

    def remove(self, isbn: str) -> bool:
        return self.inner.remove(isbn)

    def list_all(self, available_only: bool = False) -> list[Book]:
        return self.inner.list_all(available_only)


# ============================================================================
# Clock Fixtures
# ============================================================================


@pytest.fixture
def start_date() -> date:
    """Date on which every test starts."""
    return date(2025, 3, 1)


@pytest.fixture
def clock(start_date: date) -> FrozenClock:
    """Create a controllable clock."""
    return FrozenClock(start_date)


# ============================================================================
# In-memory Store Fixtures
# ============================================================================


@pytest.fixture
def book_store() -> InMemoryBookStore:
    """Create a book store holding a few available books."""
    return InMemoryBookStore(
        [
            Book(isbn="ISBN-1", title="Les Misérables", author="Victor Hugo", publication_year=1862),
            Book(isbn="ISBN-2", title="Germinal", author="Émile Zola", publication_year=1885),
            Book(isbn="ISBN-3", title="Candide", author="Voltaire", publication_year=1759),
            Book(isbn="ISBN-4", title="Madame Bovary", author="Gustave Flaubert", publication_year=1857),
            Book(isbn="ISBN-5", title="Le Horla", author="Guy de Maupassant", publication_year=1887),
        ]
    )


@pytest.fixture
def member_store() -> InMemoryMemberStore:
    """Create a member store with one active member (id 1)."""
    store = InMemoryMemberStore()
    store.add("Amina", "Alaoui", email="amina@example.com")
    return store


@pytest.fixture
def loan_store() -> InMemoryLoanStore:
    """Create an empty loan store."""
    return InMemoryLoanStore()


@pytest.fixture
def manager(book_store, member_store, loan_store, clock) -> LendingManager:
    """Create a LendingManager over the in-memory stores."""
    return LendingManager(book_store, member_store, loan_store, today=clock)


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
def hooked_book_store() -> type[HookedBookStore]:
    """The HookedBookStore class, for tests that interleave two engines."""
    return HookedBookStore


@pytest.fixture
def db() -> Generator[Database, None, None]:
    """Create an in-memory database for testing."""
    database = Database(":memory:")
    database.create_tables()
    yield database
    database.close()


@pytest.fixture
def sql_books(db: Database) -> SqlBookStore:
    return SqlBookStore(db)


@pytest.fixture
def sql_members(db: Database) -> SqlMemberStore:
    return SqlMemberStore(db)


@pytest.fixture
def sql_loans(db: Database) -> SqlLoanStore:
    return SqlLoanStore(db)


@pytest.fixture
def temp_db_path(tmp_path: Path) -> Path:
    """Path of a database file inside a temporary directory."""
    return tmp_path / "library.db"


@pytest.fixture(autouse=True)
def clean_config(monkeypatch):
    """Keep configuration isolated between tests."""
    monkeypatch.delenv("BIBLIODESK_DB_PATH", raising=False)
    monkeypatch.delenv("BIBLIODESK_LOG_LEVEL", raising=False)
    reset_config()
    yield
    reset_config()
