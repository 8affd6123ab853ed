"""Pydantic schemas for lending.

Book, Member and Loan are the values exchanged between the lending engine
and its stores. The stores own the records; these are snapshots.
"""

from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class LoanStatus(str, Enum):
    """Status of a loan."""

    ACTIVE = "active"
    CLOSED = "closed"


class Book(BaseModel):
    """A lendable book, identified by its ISBN."""

    isbn: str = Field(..., min_length=1, max_length=20)
    title: str = Field(..., min_length=1, max_length=500)
    author: str = Field(..., min_length=1, max_length=500)
    publication_year: Optional[int] = None
    available: bool = True

    model_config = {"from_attributes": True}

    @field_validator("isbn", mode="before")
    @classmethod
    def strip_isbn(cls, v):
        """Strip surrounding whitespace from the ISBN."""
        return v.strip() if isinstance(v, str) else v


class Member(BaseModel):
    """A registered library member."""

    id: int
    first_name: str = Field(..., min_length=1, max_length=200)
    last_name: str = Field(..., min_length=1, max_length=200)
    email: Optional[str] = Field(None, max_length=200)
    active: bool = True

    model_config = {"from_attributes": True}

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class Loan(BaseModel):
    """A loan of one book to one member.

    A loan is Active until ``returned_on`` is set, after which it is Closed
    and carries the computed penalty.
    """

    id: str
    book_isbn: str
    member_id: int
    borrowed_on: date
    due_on: date
    returned_on: Optional[date] = None
    penalty: Optional[float] = None

    model_config = {"from_attributes": True}

    @field_validator("due_on")
    @classmethod
    def due_after_borrow(cls, v, info):
        """Validate due date is not before borrow date."""
        if "borrowed_on" in info.data and v < info.data["borrowed_on"]:
            raise ValueError("due_on must not be before borrowed_on")
        return v

    @property
    def status(self) -> LoanStatus:
        return LoanStatus.ACTIVE if self.returned_on is None else LoanStatus.CLOSED

    @property
    def is_active(self) -> bool:
        """Check if loan has not been returned yet."""
        return self.returned_on is None

    def is_overdue(self, today: date) -> bool:
        """Check if loan is active and past its due date."""
        return self.is_active and today > self.due_on

    def days_overdue(self, today: date) -> int:
        """Days overdue as of ``today`` (0 if not overdue)."""
        if not self.is_overdue(today):
            return 0
        return (today - self.due_on).days


class OverdueReport(BaseModel):
    """Report of overdue loans."""

    loans: list[Loan]
    total_overdue: int
    oldest_overdue_days: int
