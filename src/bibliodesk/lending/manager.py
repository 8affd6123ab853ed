"""Lending manager: the loan lifecycle engine.

Borrowing flips a book to unavailable and records an Active loan; returning
closes the loan with its penalty and flips the book back. Both pairs of
writes are applied together or not at all.
"""

import logging
import threading
from collections import defaultdict
from contextlib import contextmanager
from datetime import date
from typing import Callable, Generator, Optional
from uuid import uuid4

from .eligibility import check_eligibility
from .errors import BookUnavailable, LoanNotFound, MemberNotFound, StorageError
from .penalty import compute_penalty, due_date_for
from .schemas import Book, Loan, OverdueReport
from .stores import BookStore, LoanStore, MemberStore

logger = logging.getLogger(__name__)


class _KeyedLocks:
    """One lock per key, created on first use."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: defaultdict[str, threading.Lock] = defaultdict(threading.Lock)

    @contextmanager
    def hold(self, key: str) -> Generator[None, None, None]:
        with self._guard:
            lock = self._locks[key]
        with lock:
            yield


class LendingManager:
    """Manages book loans between the book, member and loan stores."""

    def __init__(
        self,
        books: BookStore,
        members: MemberStore,
        loans: LoanStore,
        today: Callable[[], date] = date.today,
    ):
        """Initialize lending manager.

        Args:
            books: Book store
            members: Member store
            loans: Loan store
            today: Clock returning the current date
        """
        self.books = books
        self.members = members
        self.loans = loans
        self.today = today
        self._book_locks = _KeyedLocks()
        self._needs_reconcile: set[str] = set()
        self._reconcile_guard = threading.Lock()

    # -------------------------------------------------------------------------
    # Loan Lifecycle
    # -------------------------------------------------------------------------

    def borrow(self, book_isbn: str, member_id: int) -> Loan:
        """Lend a book to a member.

        Args:
            book_isbn: ISBN of the book to lend
            member_id: Borrowing member

        Returns:
            The new Active loan

        Raises:
            MemberNotFound, MemberInactive, BookUnavailable, LoanLimitExceeded:
                If the member may not borrow this book
            StorageError: If a store fails; no partial state remains
        """
        with self._book_locks.hold(book_isbn):
            self._reconcile_if_flagged(book_isbn)

            book = self.books.find_by_id(book_isbn)
            member = self.members.find_by_id(member_id)
            active_count = (
                self.loans.count_active_for_member(member_id) if member else 0
            )

            refusal = check_eligibility(
                member, active_count, book, member_id=member_id, book_isbn=book_isbn
            )
            if refusal is not None:
                raise refusal

            today = self.today()
            loan = Loan(
                id=str(uuid4()),
                book_isbn=book.isbn,
                member_id=member.id,
                borrowed_on=today,
                due_on=due_date_for(today),
            )

            # Another engine on the same stores may have taken the book since
            # it was read above.
            if not self.books.set_availability(book.isbn, False):
                raise BookUnavailable(book.isbn)
            try:
                self.loans.save(loan)
            except StorageError:
                self._repair(book.isbn)
                raise

            logger.info(
                "Book %s lent to member %s, due %s",
                book.isbn,
                member.id,
                loan.due_on.isoformat(),
            )
            return loan

    def return_loan(self, book_isbn: str, member_id: int) -> Loan:
        """Close the active loan of a book held by a member.

        Args:
            book_isbn: ISBN of the book being returned
            member_id: Member returning it; may be inactive

        Returns:
            The Closed loan with its computed penalty

        Raises:
            BookUnavailable: If the book does not exist
            MemberNotFound: If the member does not exist
            LoanNotFound: If the member holds no active loan of this book
            StorageError: If a store fails; no partial state remains
        """
        with self._book_locks.hold(book_isbn):
            self._reconcile_if_flagged(book_isbn)

            book = self.books.find_by_id(book_isbn)
            if book is None:
                raise BookUnavailable(book_isbn, reason="not found")
            member = self.members.find_by_id(member_id)
            if member is None:
                raise MemberNotFound(member_id)

            active = self.loans.find_active_by_book(book_isbn)
            if active is None or active.member_id != member.id:
                raise LoanNotFound(book_isbn, member_id)

            today = self.today()
            penalty = compute_penalty(active.due_on, active.borrowed_on, today)
            closed = active.model_copy(update={"returned_on": today, "penalty": penalty})

            self.loans.update(closed)
            try:
                self.books.set_availability(book.isbn, True)
            except StorageError:
                self._restore_loan(active)
                raise

            logger.info(
                "Book %s returned by member %s, penalty %.2f",
                book.isbn,
                member.id,
                penalty,
            )
            return closed

    def list_overdue(self) -> list[Loan]:
        """List active loans whose due date has passed.

        Every call reads a fresh snapshot from the loan store.

        Returns:
            Overdue loans, oldest due date first
        """
        return self._overdue_on(self.today())

    def get_overdue_report(self) -> OverdueReport:
        """Get report of overdue loans.

        Returns:
            OverdueReport with overdue loans
        """
        today = self.today()
        loans = self._overdue_on(today)
        return OverdueReport(
            loans=loans,
            total_overdue=len(loans),
            oldest_overdue_days=max((loan.days_overdue(today) for loan in loans), default=0),
        )

    def get_loan_history_for_member(self, member_id: int) -> list[Loan]:
        """Get every loan of a member, newest first."""
        return self.loans.find_by_member(member_id)

    def _overdue_on(self, today: date) -> list[Loan]:
        overdue = [loan for loan in self.loans.find_all() if loan.is_overdue(today)]
        return sorted(overdue, key=lambda loan: loan.due_on)

    # -------------------------------------------------------------------------
    # Catalogue
    # -------------------------------------------------------------------------

    def remove_book(self, book_isbn: str) -> None:
        """Delete a book from the catalogue.

        Loans are never deleted, so a book on loan cannot be removed. Closed
        loans keep its ISBN in the history.

        Raises:
            BookUnavailable: If the book does not exist or is on loan
        """
        with self._book_locks.hold(book_isbn):
            self._reconcile_if_flagged(book_isbn)

            if self.books.find_by_id(book_isbn) is None:
                raise BookUnavailable(book_isbn, reason="not found")
            if self.loans.find_active_by_book(book_isbn) is not None:
                raise BookUnavailable(book_isbn)
            if not self.books.remove(book_isbn):
                raise BookUnavailable(book_isbn)

            logger.info("Book %s removed from the catalogue", book_isbn)

    # -------------------------------------------------------------------------
    # Consistency
    # -------------------------------------------------------------------------

    def reconcile(self, book_isbn: str) -> Optional[Book]:
        """Realign a book's availability with its loans.

        A book is available exactly when it has no active loan.

        Args:
            book_isbn: Book to check

        Returns:
            The book after reconciliation, or None if it does not exist
        """
        book = self.books.find_by_id(book_isbn)
        if book is None:
            return None

        should_be_available = self.loans.find_active_by_book(book_isbn) is None
        if book.available != should_be_available:
            logger.warning(
                "Book %s availability was %s, resetting to %s",
                book_isbn,
                book.available,
                should_be_available,
            )
            self.books.set_availability(book_isbn, should_be_available)
            book = book.model_copy(update={"available": should_be_available})
        return book

    def _reconcile_if_flagged(self, book_isbn: str) -> None:
        with self._reconcile_guard:
            flagged = book_isbn in self._needs_reconcile
        if not flagged:
            return
        self.reconcile(book_isbn)
        with self._reconcile_guard:
            self._needs_reconcile.discard(book_isbn)

    def _flag_for_reconcile(self, book_isbn: str) -> None:
        with self._reconcile_guard:
            self._needs_reconcile.add(book_isbn)

    def _repair(self, book_isbn: str) -> None:
        # Availability follows the loan store, never a snapshot read earlier.
        try:
            self.reconcile(book_isbn)
        except StorageError:
            self._flag_for_reconcile(book_isbn)

    def _restore_loan(self, loan: Loan) -> None:
        try:
            self.loans.update(loan)
        except StorageError:
            self._flag_for_reconcile(loan.book_isbn)
