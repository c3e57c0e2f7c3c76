"""
Ledger facade composing every repository onto one store.

Construct one LedgerRepository per database and pass it to whatever
needs the ledger; there is no process-wide instance.
"""

import logging
from pathlib import Path
from typing import Any, Optional, Union

from .accounts import AccountRepository
from .base import LedgerStore
from .budget import BudgetRepository
from .categories import CategoryRepository
from .loans import LoanRepository
from .settings import SettingsRepository
from .transactions import TransactionRepository

logger = logging.getLogger(__name__)

TABLES = (
    "accounts",
    "transactions",
    "categories",
    "budgets",
    "loans",
    "account_balance",
    "app_settings",
)


class LedgerRepository:
    """
    The ledger: accounts, transactions, loans, categories, budgets and settings.

    Every sub-repository shares the same LedgerStore, so an atomic unit
    opened through ``ledger.store.atomic()`` covers writes made through
    any of them.
    """

    def __init__(
        self,
        store: Optional[LedgerStore] = None,
        db_path: Optional[Union[Path, str]] = None,
    ):
        """
        Initialize the ledger.

        Args:
            store: An existing store to wrap
            db_path: Database path used when no store is given
        """
        self.store = store or LedgerStore(db_path)
        self.accounts = AccountRepository(self.store)
        self.transactions = TransactionRepository(self.store, self.accounts)
        self.loans = LoanRepository(self.store, self.accounts, self.transactions)
        self.categories = CategoryRepository(self.store)
        self.budgets = BudgetRepository(self.store)
        self.settings = SettingsRepository(self.store)

    def close(self):
        self.store.close()

    def __enter__(self) -> "LedgerRepository":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def health_check(self) -> dict[str, Any]:
        """
        Report whether the store answers and every table is present.

        Returns:
            Dictionary with overall "healthy", "database" status and a
            per-table row count (None for a table that cannot be read)
        """
        status: dict[str, Any] = {
            "healthy": False,
            "database": str(self.store.db_path),
            "connected": self.store.ping(),
            "tables": {},
        }
        if not status["connected"]:
            logger.error(f"Health check failed: database {self.store.db_path} unreachable")
            return status

        for table in TABLES:
            try:
                status["tables"][table] = self.store.scalar(
                    f"SELECT COUNT(*) FROM {table}", default=0
                )
            except Exception as e:
                logger.error(f"Health check: table {table} unreadable: {e}")
                status["tables"][table] = None

        status["healthy"] = all(count is not None for count in status["tables"].values())
        return status


def open_ledger(db_path: Optional[Union[Path, str]] = None) -> LedgerRepository:
    """Open (creating if needed) the ledger stored at db_path."""
    return LedgerRepository(db_path=db_path)
