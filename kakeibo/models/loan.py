"""
Loan models for money lent to third parties.

Defines the loan status state machine, borrower reliability standing,
and the periods supported by the display-only interest calculator.
"""

from datetime import date
from enum import Enum
from typing import Optional


class LoanStatus(str, Enum):
    """
    Repayment state of a loan.

    ACTIVE -> PARTIALLY_PAID -> FULLY_PAID (terminal). ACTIVE and
    PARTIALLY_PAID loans become OVERDUE once their expected return date
    has passed.
    """

    ACTIVE = "active"
    PARTIALLY_PAID = "partially_paid"
    FULLY_PAID = "fully_paid"
    OVERDUE = "overdue"

    @classmethod
    def after_payment(cls, returned_amount: float, amount: float) -> "LoanStatus":
        """Status a loan moves to right after a repayment is recorded."""
        if returned_amount >= amount:
            return cls.FULLY_PAID
        return cls.PARTIALLY_PAID

    @classmethod
    def derive(
        cls,
        returned_amount: float,
        amount: float,
        expected_return_date: Optional[date],
        as_of: Optional[date] = None,
    ) -> "LoanStatus":
        """
        Derive the status from the loan's figures alone.

        Args:
            returned_amount: Cumulative amount returned so far
            amount: Principal lent
            expected_return_date: Agreed return date, if any
            as_of: Reference day (defaults to today)

        Returns:
            The LoanStatus the figures imply
        """
        if as_of is None:
            as_of = date.today()

        if returned_amount >= amount:
            return cls.FULLY_PAID
        if expected_return_date is not None and expected_return_date < as_of:
            return cls.OVERDUE
        if returned_amount > 0:
            return cls.PARTIALLY_PAID
        return cls.ACTIVE

    @property
    def is_open(self) -> bool:
        """Whether the overdue sweep may still flag this status."""
        return self in (LoanStatus.ACTIVE, LoanStatus.PARTIALLY_PAID)


class BorrowerStanding(str, Enum):
    """Reliability of a borrower derived from their repayment rate."""

    GOOD = "good"
    WARNING = "warning"
    POOR = "poor"


class InterestPeriod(str, Enum):
    """Period the interest rate applies to."""

    DAILY = "daily"
    MONTHLY = "monthly"
    YEARLY = "yearly"
