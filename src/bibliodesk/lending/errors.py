"""Typed failures for lending operations.

Every public lending operation either returns a Loan or raises one of the
errors below. Each error carries an ErrorKind so callers can branch on the
condition without matching on message text.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Kind of lending failure."""

    BOOK_UNAVAILABLE = "book_unavailable"
    MEMBER_NOT_FOUND = "member_not_found"
    MEMBER_INACTIVE = "member_inactive"
    LOAN_LIMIT_EXCEEDED = "loan_limit_exceeded"
    LOAN_NOT_FOUND = "loan_not_found"
    INVALID_DATE_RANGE = "invalid_date_range"
    STORAGE_ERROR = "storage_error"


class LendingError(Exception):
    """Base class for all lending failures."""

    kind: ErrorKind

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BookUnavailable(LendingError):
    """Book does not exist or is currently on loan."""

    kind = ErrorKind.BOOK_UNAVAILABLE

    def __init__(self, isbn: str, reason: str = "is currently on loan"):
        super().__init__(f"Book {isbn} {reason}")
        self.isbn = isbn


class MemberNotFound(LendingError):
    """No member with the given id."""

    kind = ErrorKind.MEMBER_NOT_FOUND

    def __init__(self, member_id: Optional[int]):
        super().__init__(f"Member {member_id} not found")
        self.member_id = member_id


class MemberInactive(LendingError):
    """Member exists but has been deactivated."""

    kind = ErrorKind.MEMBER_INACTIVE

    def __init__(self, member_id: int):
        super().__init__(f"Member {member_id} is inactive")
        self.member_id = member_id


class LoanLimitExceeded(LendingError):
    """Member already holds the maximum number of active loans."""

    kind = ErrorKind.LOAN_LIMIT_EXCEEDED

    def __init__(self, member_id: int, limit: int):
        super().__init__(f"Member {member_id} already holds {limit} active loans")
        self.member_id = member_id
        self.limit = limit


class LoanNotFound(LendingError):
    """No active loan matches the book/member pair."""

    kind = ErrorKind.LOAN_NOT_FOUND

    def __init__(self, isbn: str, member_id: int):
        super().__init__(f"No active loan of book {isbn} for member {member_id}")
        self.isbn = isbn
        self.member_id = member_id


class InvalidDateRange(LendingError):
    """Dates given to the penalty calculator are missing or out of order."""

    kind = ErrorKind.INVALID_DATE_RANGE


class StorageError(LendingError):
    """A repository failed to read or write.

    The underlying exception, if any, is chained as ``__cause__``.
    """

    kind = ErrorKind.STORAGE_ERROR
