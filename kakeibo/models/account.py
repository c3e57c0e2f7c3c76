"""
Account models for the household ledger.

Defines the account types an account row may carry.
"""

from enum import Enum


class AccountType(str, Enum):
    """
    Kinds of money container a user can track.

    The type is descriptive only: every type holds a signed balance that
    income raises and expenses lower.
    """

    SAVINGS = "savings"
    CHECKING = "checking"
    CREDIT_CARD = "credit_card"
    LOAN = "loan"
    INVESTMENT = "investment"
    CASH = "cash"
