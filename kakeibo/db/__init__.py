"""
Database module for the Kakeibo ledger.

Structure:
- base.py: LedgerStore with connection management, schema and atomic units
- models.py: Row dataclasses and read projections
- accounts.py: Accounts, balance adjustments and monthly snapshots
- transactions.py: Income/expense postings and their aggregates
- loans.py: Loans, repayments and loan analytics
- categories.py: Categories with the in-use delete guard
- budget.py: Budgets and budget performance
- settings.py: Key/value application settings
- repository.py: Facade that composes all repositories
"""

from .accounts import AccountRepository
from .base import LedgerStore
from .budget import BudgetRepository
from .categories import CategoryRepository
from .loans import LoanRepository
from .models import (
    Account,
    Budget,
    BudgetAlert,
    BudgetPerformance,
    Category,
    CategorySpend,
    Loan,
    LoanSummary,
    MonthlyBalance,
    NeedWantSummary,
    Setting,
    Transaction,
    TransactionStats,
)
from .repository import LedgerRepository, open_ledger
from .settings import SettingsRepository
from .transactions import TransactionRepository

__all__ = [
    # Base
    "LedgerStore",
    # Models
    "Account",
    "Budget",
    "BudgetAlert",
    "BudgetPerformance",
    "Category",
    "CategorySpend",
    "Loan",
    "LoanSummary",
    "MonthlyBalance",
    "NeedWantSummary",
    "Setting",
    "Transaction",
    "TransactionStats",
    # Repositories
    "AccountRepository",
    "BudgetRepository",
    "CategoryRepository",
    "LedgerRepository",
    "LoanRepository",
    "SettingsRepository",
    "TransactionRepository",
    # Utilities
    "open_ledger",
]
