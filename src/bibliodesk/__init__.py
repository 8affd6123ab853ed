"""Library lending desk: loans, returns, penalties and overdue tracking."""

__version__ = "0.1.0"
