"""SQLite-backed book, member and loan stores.

Every SQLAlchemy failure is re-raised as StorageError so the lending engine
only ever sees its own error types.
"""

import logging
from contextlib import contextmanager
from datetime import date
from typing import Generator, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..lending.errors import StorageError
from ..lending.schemas import Book, Loan, Member
from ..lending.stores import BookStore, LoanStore, MemberStore
from .models import BookRecord, LoanRecord, MemberRecord
from .sqlite import Database

logger = logging.getLogger(__name__)


class _SqlStore:
    """Shared session handling for the SQL stores."""

    def __init__(self, db: Database):
        self.db = db

    @contextmanager
    def _session(self) -> Generator[Session, None, None]:
        try:
            with self.db.get_session() as session:
                yield session
        except SQLAlchemyError as e:
            raise StorageError(f"Database error: {e}") from e


def _loan_from_record(record: LoanRecord) -> Loan:
    return Loan(
        id=record.id,
        book_isbn=record.book_isbn,
        member_id=record.member_id,
        borrowed_on=date.fromisoformat(record.borrowed_on),
        due_on=date.fromisoformat(record.due_on),
        returned_on=date.fromisoformat(record.returned_on) if record.returned_on else None,
        penalty=record.penalty,
    )


class SqlBookStore(_SqlStore, BookStore):
    """Book store over the ``books`` table."""

    def find_by_id(self, isbn: str) -> Optional[Book]:
        with self._session() as session:
            record = session.get(BookRecord, isbn)
            return Book.model_validate(record) if record else None

    def update(self, book: Book) -> None:
        with self._session() as session:
            record = session.get(BookRecord, book.isbn)
            if record is None:
                raise StorageError(f"Book {book.isbn} does not exist")
            record.title = book.title
            record.author = book.author
            record.publication_year = book.publication_year
        logger.debug("Updated book %s", book.isbn)

    def set_availability(self, isbn: str, available: bool) -> bool:
        # Conditional UPDATE: only the caller that sees the old value wins.
        with self._session() as session:
            result = session.execute(
                update(BookRecord)
                .where(BookRecord.isbn == isbn, BookRecord.available.is_(not available))
                .values(available=available)
                .execution_options(synchronize_session=False)
            )
            changed = result.rowcount == 1
        logger.debug("Book %s available=%s (changed=%s)", isbn, available, changed)
        return changed

    def add(self, book: Book) -> Book:
        with self._session() as session:
            if session.get(BookRecord, book.isbn) is not None:
                raise StorageError(f"Book {book.isbn} already exists")
            session.add(
                BookRecord(
                    isbn=book.isbn,
                    title=book.title,
                    author=book.author,
                    publication_year=book.publication_year,
                    available=book.available,
                )
            )
        logger.debug("Added book %s", book.isbn)
        return book

    def remove(self, isbn: str) -> bool:
        with self._session() as session:
            result = session.execute(
                delete(BookRecord)
                .where(BookRecord.isbn == isbn, BookRecord.available.is_(True))
                .execution_options(synchronize_session=False)
            )
            removed = result.rowcount == 1
        logger.debug("Removed book %s (removed=%s)", isbn, removed)
        return removed

    def list_all(self, available_only: bool = False) -> list[Book]:
        with self._session() as session:
            stmt = select(BookRecord).order_by(func.lower(BookRecord.title))
            if available_only:
                stmt = stmt.where(BookRecord.available.is_(True))
            records = session.execute(stmt).scalars().all()
            return [Book.model_validate(r) for r in records]


class SqlMemberStore(_SqlStore, MemberStore):
    """Member store over the ``members`` table."""

    def find_by_id(self, member_id: int) -> Optional[Member]:
        with self._session() as session:
            record = session.get(MemberRecord, member_id)
            return Member.model_validate(record) if record else None

    def add(
        self, first_name: str, last_name: str, email: Optional[str] = None
    ) -> Member:
        with self._session() as session:
            record = MemberRecord(
                first_name=first_name, last_name=last_name, email=email, active=True
            )
            session.add(record)
            session.flush()
            member = Member.model_validate(record)
        logger.debug("Added member %s", member.id)
        return member

    def update(self, member: Member) -> None:
        with self._session() as session:
            record = session.get(MemberRecord, member.id)
            if record is None:
                raise StorageError(f"Member {member.id} does not exist")
            record.first_name = member.first_name
            record.last_name = member.last_name
            record.email = member.email
        logger.debug("Updated member %s", member.id)

    def set_active(self, member_id: int, active: bool) -> Optional[Member]:
        with self._session() as session:
            record = session.get(MemberRecord, member_id)
            if record is None:
                return None
            record.active = active
            session.flush()
            return Member.model_validate(record)

    def list_all(self, active_only: bool = False) -> list[Member]:
        with self._session() as session:
            stmt = select(MemberRecord).order_by(
                func.lower(MemberRecord.last_name), func.lower(MemberRecord.first_name)
            )
            if active_only:
                stmt = stmt.where(MemberRecord.active.is_(True))
            records = session.execute(stmt).scalars().all()
            return [Member.model_validate(r) for r in records]


class SqlLoanStore(_SqlStore, LoanStore):
    """Loan store over the ``loans`` table."""

    def save(self, loan: Loan) -> None:
        with self._session() as session:
            session.add(
                LoanRecord(
                    id=loan.id,
                    book_isbn=loan.book_isbn,
                    member_id=loan.member_id,
                    borrowed_on=loan.borrowed_on.isoformat(),
                    due_on=loan.due_on.isoformat(),
                    returned_on=loan.returned_on.isoformat() if loan.returned_on else None,
                    penalty=loan.penalty,
                )
            )
        logger.debug("Saved loan %s", loan.id)

    def update(self, loan: Loan) -> None:
        with self._session() as session:
            record = session.get(LoanRecord, loan.id)
            if record is None:
                raise StorageError(f"Loan {loan.id} does not exist")
            record.due_on = loan.due_on.isoformat()
            record.returned_on = loan.returned_on.isoformat() if loan.returned_on else None
            record.penalty = loan.penalty
        logger.debug("Updated loan %s", loan.id)

    def find_all(self) -> list[Loan]:
        with self._session() as session:
            stmt = select(LoanRecord).order_by(LoanRecord.borrowed_on)
            return [_loan_from_record(r) for r in session.execute(stmt).scalars().all()]

    def count_active_for_member(self, member_id: int) -> int:
        with self._session() as session:
            stmt = select(func.count()).select_from(LoanRecord).where(
                LoanRecord.member_id == member_id,
                LoanRecord.returned_on.is_(None),
            )
            return session.execute(stmt).scalar() or 0

    def find_active_by_book(self, isbn: str) -> Optional[Loan]:
        with self._session() as session:
            stmt = select(LoanRecord).where(
                LoanRecord.book_isbn == isbn,
                LoanRecord.returned_on.is_(None),
            )
            record = session.execute(stmt).scalar_one_or_none()
            return _loan_from_record(record) if record else None

    def find_by_member(self, member_id: int) -> list[Loan]:
        with self._session() as session:
            stmt = (
                select(LoanRecord)
                .where(LoanRecord.member_id == member_id)
                .order_by(LoanRecord.borrowed_on.desc())
            )
            return [_loan_from_record(r) for r in session.execute(stmt).scalars().all()]
