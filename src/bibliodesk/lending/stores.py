"""Store interfaces for books, members and loans.

The lending engine only talks to these interfaces. The in-memory
implementations here back the tests and any process that does not need
persistence; ``bibliodesk.db.stores`` provides the SQLite ones.
"""

import threading
from abc import ABC, abstractmethod
from itertools import count
from typing import Optional

from .errors import StorageError
from .schemas import Book, Loan, Member


class BookStore(ABC):
    """Repository of books keyed by ISBN."""

    @abstractmethod
    def find_by_id(self, isbn: str) -> Optional[Book]:
        """Return the book with this ISBN, or None."""

    @abstractmethod
    def update(self, book: Book) -> None:
        """Persist the catalogue details (title, author, year) of a book.

        Availability is left untouched; it only changes through
        ``set_availability``.
        """

    @abstractmethod
    def set_availability(self, isbn: str, available: bool) -> bool:
        """Flip a book's availability if it currently holds the other value.

        The check and the write happen as one step, so of two callers racing
        to flip the same book only one sees True.

        Returns:
            True if this call changed the book, False if the book is missing
            or already in the requested state
        """

    @abstractmethod
    def add(self, book: Book) -> Book:
        """Register a new book."""

    @abstractmethod
    def remove(self, isbn: str) -> bool:
        """Delete an available book. Returns False if missing or on loan."""

    @abstractmethod
    def list_all(self, available_only: bool = False) -> list[Book]:
        """List books ordered by title."""


class MemberStore(ABC):
    """Repository of members keyed by integer id."""

    @abstractmethod
    def find_by_id(self, member_id: int) -> Optional[Member]:
        """Return the member with this id, or None."""

    @abstractmethod
    def add(
        self, first_name: str, last_name: str, email: Optional[str] = None
    ) -> Member:
        """Register a new member; the store assigns the id."""

    @abstractmethod
    def update(self, member: Member) -> None:
        """Persist the name and e-mail of an existing member."""

    @abstractmethod
    def set_active(self, member_id: int, active: bool) -> Optional[Member]:
        """Activate or deactivate a member. Returns None if not found."""

    @abstractmethod
    def list_all(self, active_only: bool = False) -> list[Member]:
        """List members ordered by last name."""


class LoanStore(ABC):
    """Repository of loans."""

    @abstractmethod
    def save(self, loan: Loan) -> None:
        """Persist a new loan."""

    @abstractmethod
    def update(self, loan: Loan) -> None:
        """Persist changes to an existing loan."""

    @abstractmethod
    def find_all(self) -> list[Loan]:
        """Return every loan, active and closed."""

    @abstractmethod
    def count_active_for_member(self, member_id: int) -> int:
        """Count active loans held by a member."""

    @abstractmethod
    def find_active_by_book(self, isbn: str) -> Optional[Loan]:
        """Return the active loan of a book, or None."""

    @abstractmethod
    def find_by_member(self, member_id: int) -> list[Loan]:
        """Return every loan of a member, newest first."""


# ============================================================================
# In-memory implementations
# ============================================================================


class InMemoryBookStore(BookStore):
    """Dict-backed book store."""

    def __init__(self, books: Optional[list[Book]] = None):
        self._books: dict[str, Book] = {}
        self._lock = threading.Lock()
        for book in books or []:
            self.add(book)

    def find_by_id(self, isbn: str) -> Optional[Book]:
        with self._lock:
            book = self._books.get(isbn)
            return book.model_copy() if book else None

    def update(self, book: Book) -> None:
        with self._lock:
            current = self._books.get(book.isbn)
            if current is None:
                raise StorageError(f"Book {book.isbn} does not exist")
            self._books[book.isbn] = book.model_copy(update={"available": current.available})

    def set_availability(self, isbn: str, available: bool) -> bool:
        with self._lock:
            current = self._books.get(isbn)
            if current is None or current.available == available:
                return False
            self._books[isbn] = current.model_copy(update={"available": available})
            return True

    def add(self, book: Book) -> Book:
        with self._lock:
            if book.isbn in self._books:
                raise StorageError(f"Book {book.isbn} already exists")
            self._books[book.isbn] = book.model_copy()
            return book.model_copy()

    def remove(self, isbn: str) -> bool:
        with self._lock:
            current = self._books.get(isbn)
            if current is None or not current.available:
                return False
            del self._books[isbn]
            return True

    def list_all(self, available_only: bool = False) -> list[Book]:
        with self._lock:
            books = [b.model_copy() for b in self._books.values()]
        if available_only:
            books = [b for b in books if b.available]
        return sorted(books, key=lambda b: b.title.lower())


class InMemoryMemberStore(MemberStore):
    """Dict-backed member store with sequential ids starting at 1."""

    def __init__(self):
        self._members: dict[int, Member] = {}
        self._ids = count(1)
        self._lock = threading.Lock()

    def find_by_id(self, member_id: int) -> Optional[Member]:
        with self._lock:
            member = self._members.get(member_id)
            return member.model_copy() if member else None

    def add(
        self, first_name: str, last_name: str, email: Optional[str] = None
    ) -> Member:
        with self._lock:
            member = Member(
                id=next(self._ids),
                first_name=first_name,
                last_name=last_name,
                email=email,
            )
            self._members[member.id] = member
            return member.model_copy()

    def update(self, member: Member) -> None:
        with self._lock:
            current = self._members.get(member.id)
            if current is None:
                raise StorageError(f"Member {member.id} does not exist")
            self._members[member.id] = current.model_copy(
                update={
                    "first_name": member.first_name,
                    "last_name": member.last_name,
                    "email": member.email,
                }
            )

    def set_active(self, member_id: int, active: bool) -> Optional[Member]:
        with self._lock:
            member = self._members.get(member_id)
            if member is None:
                return None
            member = member.model_copy(update={"active": active})
            self._members[member_id] = member
            return member.model_copy()

    def list_all(self, active_only: bool = False) -> list[Member]:
        with self._lock:
            members = [m.model_copy() for m in self._members.values()]
        if active_only:
            members = [m for m in members if m.active]
        return sorted(members, key=lambda m: (m.last_name.lower(), m.first_name.lower()))


class InMemoryLoanStore(LoanStore):
    """Dict-backed loan store.

    Refuses a second active loan for the same book, mirroring the unique
    index of the SQLite store.
    """

    def __init__(self):
        self._loans: dict[str, Loan] = {}
        self._lock = threading.Lock()

    def save(self, loan: Loan) -> None:
        with self._lock:
            if loan.id in self._loans:
                raise StorageError(f"Loan {loan.id} already exists")
            if loan.is_active and self._active_by_book(loan.book_isbn) is not None:
                raise StorageError(f"Book {loan.book_isbn} already has an active loan")
            self._loans[loan.id] = loan.model_copy()

    def update(self, loan: Loan) -> None:
        with self._lock:
            if loan.id not in self._loans:
                raise StorageError(f"Loan {loan.id} does not exist")
            self._loans[loan.id] = loan.model_copy()

    def find_all(self) -> list[Loan]:
        with self._lock:
            return [loan.model_copy() for loan in self._loans.values()]

    def count_active_for_member(self, member_id: int) -> int:
        with self._lock:
            return sum(
                1
                for loan in self._loans.values()
                if loan.member_id == member_id and loan.is_active
            )

    def find_active_by_book(self, isbn: str) -> Optional[Loan]:
        with self._lock:
            loan = self._active_by_book(isbn)
            return loan.model_copy() if loan else None

    def find_by_member(self, member_id: int) -> list[Loan]:
        with self._lock:
            loans = [
                loan.model_copy()
                for loan in self._loans.values()
                if loan.member_id == member_id
            ]
        return sorted(loans, key=lambda loan: loan.borrowed_on, reverse=True)

    def _active_by_book(self, isbn: str) -> Optional[Loan]:
        for loan in self._loans.values():
            if loan.book_isbn == isbn and loan.is_active:
                return loan
        return None
