"""Late-return penalty computation."""

from datetime import date, timedelta
from typing import Optional

from .errors import InvalidDateRange

# Monetary units charged per day past the due date.
RATE_PER_DAY = 2.0

# Fixed loan period; due date is always borrow date plus this.
LOAN_PERIOD_DAYS = 15


def due_date_for(borrowed_on: date) -> date:
    """Return the due date of a loan started on ``borrowed_on``."""
    return borrowed_on + timedelta(days=LOAN_PERIOD_DAYS)


def compute_penalty(
    due_on: Optional[date],
    borrowed_on: Optional[date],
    returned_on: Optional[date],
    rate: float = RATE_PER_DAY,
) -> float:
    """Compute the penalty owed for returning a loan.

    Args:
        due_on: Date the loan was due
        borrowed_on: Date the loan started
        returned_on: Date the book came back
        rate: Amount charged per late day

    Returns:
        0.0 when returned on or before the due date, otherwise the number of
        whole late days multiplied by ``rate``

    Raises:
        InvalidDateRange: If a date is missing or the return precedes the borrow
    """
    if due_on is None or borrowed_on is None or returned_on is None:
        raise InvalidDateRange("due, borrow and return dates are all required")
    if returned_on < borrowed_on:
        raise InvalidDateRange(
            f"returned on {returned_on.isoformat()} before borrowed on {borrowed_on.isoformat()}"
        )

    if returned_on <= due_on:
        return 0.0

    late_days = (returned_on - due_on).days
    return late_days * rate
