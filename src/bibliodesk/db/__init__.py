"""Database module for local SQLite storage."""

from .models import BookRecord, LoanRecord, MemberRecord
from .sqlite import Database
from .stores import SqlBookStore, SqlLoanStore, SqlMemberStore

__all__ = [
    "BookRecord",
    "MemberRecord",
    "LoanRecord",
    "Database",
    "SqlBookStore",
    "SqlMemberStore",
    "SqlLoanStore",
]
