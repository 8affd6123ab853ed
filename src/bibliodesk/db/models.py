"""SQLAlchemy ORM models for local SQLite database.

Tables:
- books: Lendable books keyed by ISBN
- members: Registered members
- loans: Loan records, never deleted
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import Boolean, ForeignKey, Float, Index, Integer, String, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def generate_uuid() -> str:
    """Generate a UUID string for primary keys."""
    return str(uuid4())


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class BookRecord(Base):
    """Book row."""

    __tablename__ = "books"

    isbn: Mapped[str] = mapped_column(String(20), primary_key=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    author: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    publication_year: Mapped[Optional[int]] = mapped_column(Integer)
    available: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    # Timestamps
    created_at: Mapped[str] = mapped_column(String(32), default=utc_now)
    updated_at: Mapped[str] = mapped_column(String(32), default=utc_now, onupdate=utc_now)

    def __repr__(self) -> str:
        return f"<BookRecord(isbn={self.isbn}, title='{self.title}', available={self.available})>"


class MemberRecord(Base):
    """Member row. Ids are assigned by the database."""

    __tablename__ = "members"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    first_name: Mapped[str] = mapped_column(String(200), nullable=False)
    last_name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    email: Mapped[Optional[str]] = mapped_column(String(200))
    active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[str] = mapped_column(String(32), default=utc_now)
    updated_at: Mapped[str] = mapped_column(String(32), default=utc_now, onupdate=utc_now)

    loans: Mapped[list["LoanRecord"]] = relationship("LoanRecord", back_populates="member")

    def __repr__(self) -> str:
        return f"<MemberRecord(id={self.id}, name='{self.first_name} {self.last_name}')>"


class LoanRecord(Base):
    """Loan row.

    At most one row per book may have a NULL return date; the partial unique
    index enforces it at write time.
    """

    __tablename__ = "loans"
    __table_args__ = (
        Index(
            "ux_loans_active_book",
            "book_isbn",
            unique=True,
            sqlite_where=text("returned_on IS NULL"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)

    book_isbn: Mapped[str] = mapped_column(
        String(20), ForeignKey("books.isbn"), nullable=False, index=True
    )
    member_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("members.id"), nullable=False, index=True
    )

    # Dates
    borrowed_on: Mapped[str] = mapped_column(String(10), nullable=False)  # ISO date
    due_on: Mapped[str] = mapped_column(String(10), nullable=False, index=True)  # ISO date
    returned_on: Mapped[Optional[str]] = mapped_column(String(10))  # ISO date

    penalty: Mapped[Optional[float]] = mapped_column(Float)

    created_at: Mapped[str] = mapped_column(String(32), default=utc_now)
    updated_at: Mapped[str] = mapped_column(String(32), default=utc_now, onupdate=utc_now)

    member: Mapped["MemberRecord"] = relationship("MemberRecord", back_populates="loans")

    def __repr__(self) -> str:
        return f"<LoanRecord(id={self.id}, book_isbn={self.book_isbn}, member_id={self.member_id})>"
