"""Book lending module.

Provides functionality for:
- Lending books to members and taking them back
- Eligibility rules gating a new loan
- Late-return penalties
- Overdue reporting
"""

from .eligibility import MAX_ACTIVE_LOANS, check_eligibility
from .errors import (
    BookUnavailable,
    ErrorKind,
    InvalidDateRange,
    LendingError,
    LoanLimitExceeded,
    LoanNotFound,
    MemberInactive,
    MemberNotFound,
    StorageError,
)
from .manager import LendingManager
from .penalty import LOAN_PERIOD_DAYS, RATE_PER_DAY, compute_penalty
from .schemas import Book, Loan, LoanStatus, Member, OverdueReport
from .stores import (
    BookStore,
    InMemoryBookStore,
    InMemoryLoanStore,
    InMemoryMemberStore,
    LoanStore,
    MemberStore,
)

__all__ = [
    "LendingManager",
    "check_eligibility",
    "compute_penalty",
    "MAX_ACTIVE_LOANS",
    "LOAN_PERIOD_DAYS",
    "RATE_PER_DAY",
    "Book",
    "Member",
    "Loan",
    "LoanStatus",
    "OverdueReport",
    "BookStore",
    "MemberStore",
    "LoanStore",
    "InMemoryBookStore",
    "InMemoryMemberStore",
    "InMemoryLoanStore",
    "ErrorKind",
    "LendingError",
    "BookUnavailable",
    "MemberNotFound",
    "MemberInactive",
    "LoanLimitExceeded",
    "LoanNotFound",
    "InvalidDateRange",
    "StorageError",
]
