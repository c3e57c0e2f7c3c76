"""
Accounts repository module for balances and monthly snapshots.

Handles all account-related database operations including:
- Account CRUD with soft delete
- Balance adjustments driven by transaction and loan postings
- Monthly closing-balance snapshots
"""

import logging
from datetime import date
from typing import Any, Optional

from kakeibo.config import DEFAULT_ACCOUNTS, DEFAULT_CURRENCY
from kakeibo.errors import LedgerValidationError, NotFoundError, StorageError
from kakeibo.models import AccountType, TransactionType, coerce_enum

from .base import LedgerStore
from .models import (
    Account,
    AccountSummary,
    MonthlyBalance,
    as_amount,
    parse_date,
    parse_datetime,
    utc_now,
)

logger = logging.getLogger(__name__)

# Python attribute -> column for partial updates
UPDATABLE_FIELDS = {
    "name": "name",
    "type": "type",
    "balance": "balance",
    "currency": "currency",
    "bank_name": "bankName",
    "account_number": "accountNumber",
    "is_active": "isActive",
}


class AccountRepository:
    """
    Repository for accounts and their monthly balance snapshots.

    Balances move through apply_delta() only, called by the transaction
    and loan repositories inside their own atomic units. update() can
    still overwrite a balance directly; callers must not use both paths
    for the same logical change.
    """

    def __init__(self, store: LedgerStore):
        self.store = store

    # =========================================================================
    # Reads
    # =========================================================================

    def list_active(self) -> list[Account]:
        """All active accounts ordered by name. Empty on storage failure."""
        try:
            rows = self.store.query(
                "SELECT * FROM accounts WHERE isActive = 1 ORDER BY name"
            )
            return [Account.from_row(row) for row in rows]
        except StorageError as e:
            logger.error(f"Error listing active accounts: {e}", exc_info=True)
            return []

    def get_by_id(self, account_id: int) -> Optional[Account]:
        """Get an active account by ID."""
        try:
            row = self.store.first(
                "SELECT * FROM accounts WHERE id = ? AND isActive = 1", (account_id,)
            )
            return Account.from_row(row) if row else None
        except StorageError as e:
            logger.error(f"Error getting account {account_id}: {e}", exc_info=True)
            return None

    def require(self, account_id: int) -> None:
        """
        Raise NotFoundError unless an account row (active or not) exists.

        Storage faults propagate; write paths call this before referencing
        the account.
        """
        if self.store.first("SELECT 1 FROM accounts WHERE id = ?", (account_id,)) is None:
            raise NotFoundError(f"Account {account_id} not found")

    def list_by_type(self, account_type: AccountType) -> list[Account]:
        """Active accounts of one type, ordered by name."""
        account_type = coerce_enum(AccountType, account_type, "account type")
        try:
            rows = self.store.query(
                "SELECT * FROM accounts WHERE type = ? AND isActive = 1 ORDER BY name",
                (account_type.value,),
            )
            return [Account.from_row(row) for row in rows]
        except StorageError as e:
            logger.error(f"Error listing accounts by type: {e}", exc_info=True)
            return []

    def total_active_balance(self) -> float:
        """Sum of balances over active accounts."""
        try:
            total = self.store.scalar(
                "SELECT SUM(balance) FROM accounts WHERE isActive = 1", default=0.0
            )
            return round(total, 2)
        except StorageError as e:
            logger.error(f"Error computing total balance: {e}", exc_info=True)
            return 0.0

    def current_period_balance(self, as_of: Optional[date] = None) -> float:
        """
        Headline balance for the current month.

        Sums this month's snapshots over active accounts. Falls back to
        total_active_balance() while no snapshot has been written for the
        month yet.

        Args:
            as_of: Day whose month is "current" (defaults to today)
        """
        if as_of is None:
            as_of = date.today()

        try:
            row = self.store.first(
                """
                SELECT COUNT(*) AS snapshots, SUM(ab.closingBalance) AS total
                FROM account_balance ab
                JOIN accounts a ON a.id = ab.accountId
                WHERE ab.year = ? AND ab.month = ? AND a.isActive = 1
                """,
                (as_of.year, as_of.month),
            )
        except StorageError as e:
            logger.error(f"Error computing current period balance: {e}", exc_info=True)
            return 0.0

        if not row or row["snapshots"] == 0:
            logger.debug(
                f"No snapshots for {as_of.year}-{as_of.month:02d}, "
                "using live balances"
            )
            return self.total_active_balance()
        return round(row["total"], 2)

    def monthly_snapshots(self, year: int, month: int) -> list[MonthlyBalance]:
        """
        Closing balance of every active account for one month.

        Accounts without a snapshot for the month report their live
        balance, with is_snapshot set to False.
        """
        try:
            rows = self.store.query(
                """
                SELECT a.id AS accountId, a.name,
                       COALESCE(ab.closingBalance, a.balance) AS closingBalance,
                       ab.lastUpdated,
                       ab.id IS NOT NULL AS isSnapshot
                FROM accounts a
                LEFT JOIN account_balance ab
                    ON ab.accountId = a.id AND ab.year = ? AND ab.month = ?
                WHERE a.isActive = 1
                ORDER BY a.name
                """,
                (year, month),
            )
            return [
                MonthlyBalance(
                    account_id=row["accountId"],
                    name=row["name"],
                    year=year,
                    month=month,
                    closing_balance=row["closingBalance"],
                    last_updated=parse_datetime(row["lastUpdated"]),
                    is_snapshot=bool(row["isSnapshot"]),
                )
                for row in rows
            ]
        except StorageError as e:
            logger.error(f"Error loading monthly snapshots: {e}", exc_info=True)
            return []

    def balance_history(
        self,
        account_id: int,
        start_year: Optional[int] = None,
        end_year: Optional[int] = None,
    ) -> list[MonthlyBalance]:
        """Stored snapshots for one account, newest first."""
        sql = """
            SELECT ab.*, a.name
            FROM account_balance ab
            JOIN accounts a ON a.id = ab.accountId
            WHERE ab.accountId = ?
        """
        params: list[Any] = [account_id]
        if start_year is not None:
            sql += " AND ab.year >= ?"
            params.append(start_year)
        if end_year is not None:
            sql += " AND ab.year <= ?"
            params.append(end_year)
        sql += " ORDER BY ab.year DESC, ab.month DESC"

        try:
            return [
                MonthlyBalance(
                    account_id=row["accountId"],
                    name=row["name"],
                    year=row["year"],
                    month=row["month"],
                    closing_balance=row["closingBalance"],
                    last_updated=parse_datetime(row["lastUpdated"]),
                )
                for row in self.store.query(sql, params)
            ]
        except StorageError as e:
            logger.error(f"Error loading balance history: {e}", exc_info=True)
            return []

    def summary(self) -> list[AccountSummary]:
        """Active accounts with their transaction count and last activity."""
        try:
            rows = self.store.query(
                """
                SELECT a.*,
                       COUNT(t.id) AS transactionCount,
                       MAX(t.date) AS lastTransactionDate
                FROM accounts a
                LEFT JOIN transactions t ON t.accountId = a.id
                WHERE a.isActive = 1
                GROUP BY a.id
                ORDER BY a.name
                """
            )
            return [
                AccountSummary(
                    account=Account.from_row(row),
                    transaction_count=row["transactionCount"],
                    last_transaction_date=parse_date(row["lastTransactionDate"]),
                )
                for row in rows
            ]
        except StorageError as e:
            logger.error(f"Error building account summary: {e}", exc_info=True)
            return []

    # =========================================================================
    # Writes
    # =========================================================================

    def create(
        self,
        name: str,
        account_type: AccountType,
        balance: float = 0.0,
        currency: str = DEFAULT_CURRENCY,
        bank_name: Optional[str] = None,
        account_number: Optional[str] = None,
    ) -> int:
        """
        Create a new active account.

        The opening balance is stored as given and is not recorded as a
        transaction.

        Args:
            name: Display name
            account_type: Kind of account
            balance: Opening balance
            currency: Currency code
            bank_name: Optional bank name
            account_number: Optional account number

        Returns:
            ID of the new account

        Raises:
            LedgerValidationError: If the name is empty or the type unknown
        """
        if not name or not name.strip():
            raise LedgerValidationError("Account name cannot be empty")
        account_type = coerce_enum(AccountType, account_type, "account type")
        balance = as_amount(balance, "opening balance", positive=False)
        now = utc_now().isoformat()

        try:
            cursor = self.store.execute(
                """
                INSERT INTO accounts
                (name, type, balance, currency, bankName, accountNumber,
                 isActive, createdAt, updatedAt)
                VALUES (?, ?, ?, ?, ?, ?, 1, ?, ?)
                """,
                (
                    name.strip(),
                    account_type.value,
                    balance,
                    currency,
                    bank_name,
                    account_number,
                    now,
                    now,
                ),
            )
            account_id = cursor.lastrowid
            logger.info(
                f"Created account {account_id} '{name.strip()}' "
                f"({account_type.value}, opening balance {balance})"
            )
            return account_id
        except Exception as e:
            logger.error(f"Error creating account: {e}", exc_info=True)
            raise

    def update(self, account_id: int, **fields: Any) -> bool:
        """
        Apply a partial update to an account.

        Only the keyword arguments given are written; updatedAt is always
        refreshed.

        Returns:
            True if a row was updated, False if the account does not exist

        Raises:
            LedgerValidationError: On unknown fields or invalid values
        """
        unknown = set(fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise LedgerValidationError(
                f"Unknown account fields: {', '.join(sorted(unknown))}"
            )
        if "name" in fields and (not fields["name"] or not fields["name"].strip()):
            raise LedgerValidationError("Account name cannot be empty")
        if "type" in fields:
            fields["type"] = coerce_enum(AccountType, fields["type"], "account type").value
        if "balance" in fields:
            fields["balance"] = as_amount(fields["balance"], "balance", positive=False)
        if "is_active" in fields:
            fields["is_active"] = 1 if fields["is_active"] else 0
        if not fields:
            logger.warning(f"Update of account {account_id} with no fields")

        assignments = [f"{UPDATABLE_FIELDS[key]} = ?" for key in fields]
        assignments.append("updatedAt = ?")
        params = list(fields.values()) + [utc_now().isoformat(), account_id]

        try:
            cursor = self.store.execute(
                f"UPDATE accounts SET {', '.join(assignments)} WHERE id = ?", params
            )
            if cursor.rowcount:
                logger.info(f"Updated account {account_id}: {sorted(fields)}")
            return cursor.rowcount > 0
        except Exception as e:
            logger.error(f"Error updating account {account_id}: {e}", exc_info=True)
            raise

    def soft_delete(self, account_id: int) -> bool:
        """Mark an account inactive; its transactions and loans are untouched."""
        try:
            cursor = self.store.execute(
                "UPDATE accounts SET isActive = 0, updatedAt = ? WHERE id = ?",
                (utc_now().isoformat(), account_id),
            )
            if cursor.rowcount:
                logger.info(f"Soft-deleted account {account_id}")
            return cursor.rowcount > 0
        except Exception as e:
            logger.error(f"Error deleting account {account_id}: {e}", exc_info=True)
            raise

    def apply_delta(
        self, account_id: int, amount: float, direction: TransactionType
    ) -> float:
        """
        Move an account balance by a posting's signed amount.

        Adds amount for income, subtracts it for expense. Works on inactive
        accounts too, so reversing history on a retired account still
        balances. Callers run this inside the same atomic unit as the
        write that triggered it.

        Args:
            account_id: Account to adjust
            amount: Non-negative amount
            direction: INCOME to credit, EXPENSE to debit

        Returns:
            The new balance

        Raises:
            LedgerValidationError: If amount is negative
            NotFoundError: If the account does not exist
        """
        direction = coerce_enum(TransactionType, direction, "direction")
        amount = as_amount(amount, "delta amount", positive=False)
        if amount < 0:
            raise LedgerValidationError(f"Delta amount must not be negative: {amount}")

        with self.store.atomic():
            current = self.store.first(
                "SELECT balance FROM accounts WHERE id = ?", (account_id,)
            )
            if current is None:
                raise NotFoundError(f"Account {account_id} not found")
            new_balance = round(current["balance"] + direction.sign * amount, 2)
            self.store.execute(
                "UPDATE accounts SET balance = ?, updatedAt = ? WHERE id = ?",
                (new_balance, utc_now().isoformat(), account_id),
            )

        logger.debug(
            f"Account {account_id} {direction.value} {amount}: "
            f"{current['balance']} -> {new_balance}"
        )
        return new_balance

    def write_monthly_snapshot(
        self, account_id: int, year: int, month: int, closing_balance: float
    ) -> None:
        """Store the closing balance for (account, year, month), replacing any previous value."""
        if not 1 <= month <= 12:
            raise LedgerValidationError(f"Invalid month: {month}")
        closing_balance = as_amount(closing_balance, "closing balance", positive=False)

        try:
            self.store.execute(
                """
                INSERT INTO account_balance
                (accountId, year, month, closingBalance, lastUpdated)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(accountId, year, month) DO UPDATE SET
                    closingBalance = excluded.closingBalance,
                    lastUpdated = excluded.lastUpdated
                """,
                (account_id, year, month, closing_balance, utc_now().isoformat()),
            )
            logger.info(
                f"Snapshot for account {account_id} {year}-{month:02d}: {closing_balance}"
            )
        except Exception as e:
            logger.error(f"Error writing monthly snapshot: {e}", exc_info=True)
            raise

    def initialize_defaults(self) -> int:
        """Create the demo accounts when no account exists yet."""
        if self.store.scalar("SELECT COUNT(*) FROM accounts", default=0) > 0:
            return 0

        with self.store.atomic():
            for account in DEFAULT_ACCOUNTS:
                self.create(
                    account["name"],
                    AccountType(account["type"]),
                    bank_name=account.get("bank_name"),
                )
        logger.info(f"Created {len(DEFAULT_ACCOUNTS)} default accounts")
        return len(DEFAULT_ACCOUNTS)
