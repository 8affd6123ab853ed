"""Loan eligibility rules.

The checker never raises: it returns the refusal as a value and leaves it to
the caller to surface it.
"""

from typing import Optional

from .errors import (
    BookUnavailable,
    LendingError,
    LoanLimitExceeded,
    MemberInactive,
    MemberNotFound,
)
from .schemas import Book, Member

# A member holding this many active loans is refused another.
MAX_ACTIVE_LOANS = 3


def check_eligibility(
    member: Optional[Member],
    active_loan_count: int,
    book: Optional[Book],
    member_id: Optional[int] = None,
    book_isbn: Optional[str] = None,
) -> Optional[LendingError]:
    """Decide whether ``member`` may borrow ``book``.

    Args:
        member: Resolved member, or None if the lookup found nothing
        active_loan_count: Number of active loans the member currently holds
        book: Resolved book, or None if the lookup found nothing
        member_id: Requested member id, used in the error when unresolved
        book_isbn: Requested ISBN, used in the error when unresolved

    Returns:
        None if the loan is allowed, otherwise the refusal
    """
    if member is None:
        return MemberNotFound(member_id)
    if not member.active:
        return MemberInactive(member.id)
    if book is None:
        return BookUnavailable(book_isbn or "?", reason="not found")
    if not book.available:
        return BookUnavailable(book.isbn)
    if active_loan_count >= MAX_ACTIVE_LOANS:
        return LoanLimitExceeded(member.id, MAX_ACTIVE_LOANS)
    return None
