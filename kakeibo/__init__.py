"""
Kakeibo - Household Ledger Engine

Keeps account balances, transactions, loans, monthly snapshots and
budget rollups consistent on top of a single SQLite database.
"""

from .db import LedgerRepository, LedgerStore, open_ledger
from .errors import LedgerError, LedgerValidationError, NotFoundError, StorageError
from .models import (
    AccountType,
    BudgetPeriod,
    CategoryType,
    LoanStatus,
    PaymentMethod,
    Priority,
    TransactionType,
)

__version__ = "0.1.0"

__all__ = [
    "AccountType",
    "BudgetPeriod",
    "CategoryType",
    "LedgerError",
    "LedgerRepository",
    "LedgerStore",
    "LedgerValidationError",
    "LoanStatus",
    "NotFoundError",
    "PaymentMethod",
    "Priority",
    "StorageError",
    "TransactionType",
    "open_ledger",
]
