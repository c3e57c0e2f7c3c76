"""
Transactions repository module for income and expense postings.

Every write keeps the owning account's balance equal to the sum of its
live transactions: post applies the effect, amend reverses the old
effect before applying the new one, and void reverses it before the row
is deleted. Each of these runs as a single atomic unit.
"""

import logging
from datetime import date
from typing import Any, Optional

from kakeibo.config import DEFAULT_RECENT_LIMIT, UNCATEGORIZED_COLOR
from kakeibo.errors import LedgerValidationError, NotFoundError, StorageError
from kakeibo.models import (
    PaymentMethod,
    Priority,
    TransactionType,
    coerce_enum,
    coerce_optional_enum,
)

from .accounts import AccountRepository
from .base import LedgerStore, like_pattern
from .models import (
    CategorySpend,
    DateLike,
    ExportSummary,
    NeedWantCategory,
    NeedWantSummary,
    PaymentMethodSpend,
    PriorityBucket,
    Transaction,
    TransactionStats,
    as_amount,
    as_iso_date,
    parse_date,
    utc_now,
)

logger = logging.getLogger(__name__)

ORDER_NEWEST_FIRST = "ORDER BY t.date DESC, t.createdAt DESC, t.id DESC"

# Python attribute -> column for amend()
AMENDABLE_FIELDS = {
    "amount": "amount",
    "type": "type",
    "category": "category",
    "description": "description",
    "date": "date",
    "payment_method": "paymentMethod",
    "account_id": "accountId",
    "priority": "priority",
}


def _range_clause(
    start: Optional[DateLike], end: Optional[DateLike], column: str = "t.date"
) -> tuple[str, list[str]]:
    """SQL fragment and params restricting column to an optional inclusive range."""
    clauses = []
    params = []
    if start is not None:
        clauses.append(f"{column} >= ?")
        params.append(as_iso_date(start, "start date"))
    if end is not None:
        clauses.append(f"{column} <= ?")
        params.append(as_iso_date(end, "end date"))
    return "".join(f" AND {c}" for c in clauses), params


class TransactionRepository:
    """
    Repository for transactions and their read projections.

    Args:
        store: Shared ledger store
        accounts: Account repository used for balance adjustments
    """

    def __init__(self, store: LedgerStore, accounts: AccountRepository):
        self.store = store
        self.accounts = accounts

    # =========================================================================
    # Validation
    # =========================================================================

    def _validate(
        self,
        amount: Any,
        transaction_type: Any,
        category: Any,
        transaction_date: Any,
        payment_method: Any,
        priority: Any,
    ) -> tuple[float, TransactionType, str, str, PaymentMethod, Optional[Priority]]:
        """Normalize and check one transaction's fields."""
        amount = as_amount(amount)

        transaction_type = coerce_enum(TransactionType, transaction_type, "transaction type")
        payment_method = coerce_enum(PaymentMethod, payment_method, "payment method")
        priority = coerce_optional_enum(Priority, priority, "priority")
        if priority is not None and transaction_type is TransactionType.INCOME:
            raise LedgerValidationError("Priority can only be set on expenses")

        if not category or not str(category).strip():
            raise LedgerValidationError("Category cannot be empty")

        return (
            amount,
            transaction_type,
            str(category).strip(),
            as_iso_date(transaction_date),
            payment_method,
            priority,
        )

    # =========================================================================
    # Writes
    # =========================================================================

    def post(
        self,
        amount: float,
        transaction_type: TransactionType,
        category: str,
        transaction_date: Optional[DateLike] = None,
        payment_method: PaymentMethod = PaymentMethod.CASH,
        description: Optional[str] = None,
        account_id: Optional[int] = None,
        priority: Optional[Priority] = None,
    ) -> int:
        """
        Record a transaction and apply its effect to the owning account.

        The insert and the balance adjustment form one atomic unit; if the
        account does not exist nothing is written.

        Args:
            amount: Positive amount
            transaction_type: INCOME or EXPENSE
            category: Category name
            transaction_date: Day of the transaction (defaults to today)
            payment_method: How it was paid
            description: Free text
            account_id: Optional owning account
            priority: NEED/WANT, expenses only

        Returns:
            ID of the new transaction

        Raises:
            LedgerValidationError: On invalid fields
            NotFoundError: If account_id does not exist
        """
        amount, transaction_type, category, day, payment_method, priority = (
            self._validate(
                amount,
                transaction_type,
                category,
                transaction_date or date.today(),
                payment_method,
                priority,
            )
        )
        now = utc_now().isoformat()

        try:
            with self.store.atomic():
                if account_id is not None:
                    self.accounts.require(account_id)
                cursor = self.store.execute(
                    """
                    INSERT INTO transactions
                    (amount, type, category, description, date, paymentMethod,
                     accountId, priority, createdAt, updatedAt)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        amount,
                        transaction_type.value,
                        category,
                        description,
                        day,
                        payment_method.value,
                        account_id,
                        priority.value if priority else None,
                        now,
                        now,
                    ),
                )
                transaction_id = cursor.lastrowid
                if account_id is not None:
                    self.accounts.apply_delta(account_id, amount, transaction_type)

            logger.info(
                f"Transaction {transaction_id} posted: {transaction_type.value} "
                f"{amount} '{category}' (account: {account_id})"
            )
            return transaction_id
        except (LedgerValidationError, NotFoundError):
            raise
        except Exception as e:
            logger.error(f"Error posting transaction: {e}", exc_info=True)
            raise

    def amend(self, transaction_id: int, **changes: Any) -> Transaction:
        """
        Change fields of an existing transaction.

        The old balance effect is reversed before the row changes and the
        new effect applied afterwards, so moving a transaction to another
        account, flipping its type or changing its amount all conserve
        balances. Changing the type to income clears the priority.

        Returns:
            The amended Transaction

        Raises:
            NotFoundError: If the transaction or a new account does not exist
            LedgerValidationError: On unknown fields or invalid values
        """
        unknown = set(changes) - set(AMENDABLE_FIELDS)
        if unknown:
            raise LedgerValidationError(
                f"Unknown transaction fields: {', '.join(sorted(unknown))}"
            )

        existing = self.get_by_id(transaction_id, raise_on_error=True)
        if existing is None:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        if not changes:
            logger.warning(f"Amend of transaction {transaction_id} with no fields")
            return existing

        merged = existing.to_dict()
        merged.update(changes)
        new_type = coerce_enum(TransactionType, merged["type"], "transaction type")
        if new_type is TransactionType.INCOME and "priority" not in changes:
            merged["priority"] = None

        amount, new_type, category, day, payment_method, priority = self._validate(
            merged["amount"],
            new_type,
            merged["category"],
            merged["date"],
            merged["payment_method"],
            merged["priority"],
        )
        account_id = merged["account_id"]

        try:
            with self.store.atomic():
                if existing.account_id is not None:
                    self.accounts.apply_delta(
                        existing.account_id, existing.amount, existing.type.inverse()
                    )
                if account_id is not None:
                    self.accounts.require(account_id)

                self.store.execute(
                    """
                    UPDATE transactions
                    SET amount = ?, type = ?, category = ?, description = ?,
                        date = ?, paymentMethod = ?, accountId = ?, priority = ?,
                        updatedAt = ?
                    WHERE id = ?
                    """,
                    (
                        amount,
                        new_type.value,
                        category,
                        merged["description"],
                        day,
                        payment_method.value,
                        account_id,
                        priority.value if priority else None,
                        utc_now().isoformat(),
                        transaction_id,
                    ),
                )

                if account_id is not None:
                    self.accounts.apply_delta(account_id, amount, new_type)

            logger.info(
                f"Transaction {transaction_id} amended: {sorted(changes)}"
            )
            return self.get_by_id(transaction_id, raise_on_error=True)
        except (LedgerValidationError, NotFoundError):
            raise
        except Exception as e:
            logger.error(f"Error amending transaction {transaction_id}: {e}", exc_info=True)
            raise

    def void(self, transaction_id: int) -> None:
        """
        Delete a transaction after reversing its balance effect.

        Raises:
            NotFoundError: If the transaction does not exist
        """
        existing = self.get_by_id(transaction_id, raise_on_error=True)
        if existing is None:
            raise NotFoundError(f"Transaction {transaction_id} not found")

        try:
            with self.store.atomic():
                if existing.account_id is not None:
                    self.accounts.apply_delta(
                        existing.account_id, existing.amount, existing.type.inverse()
                    )
                self.store.execute(
                    "DELETE FROM transactions WHERE id = ?", (transaction_id,)
                )
            logger.info(
                f"Transaction {transaction_id} voided "
                f"({existing.type.value} {existing.amount}, account: {existing.account_id})"
            )
        except (LedgerValidationError, NotFoundError):
            raise
        except Exception as e:
            logger.error(f"Error voiding transaction {transaction_id}: {e}", exc_info=True)
            raise

    # =========================================================================
    # Row reads
    # =========================================================================

    def get_by_id(
        self, transaction_id: int, raise_on_error: bool = False
    ) -> Optional[Transaction]:
        """
        Get a transaction by ID.

        Args:
            transaction_id: Transaction ID
            raise_on_error: Re-raise storage errors instead of returning None
                (used by write paths that must not mistake a fault for absence)
        """
        try:
            row = self.store.first(
                "SELECT * FROM transactions WHERE id = ?", (transaction_id,)
            )
            return Transaction.from_row(row) if row else None
        except StorageError as e:
            logger.error(f"Error getting transaction {transaction_id}: {e}", exc_info=True)
            if raise_on_error:
                raise
            return None

    def _select(
        self,
        where: str = "",
        params: Optional[list[Any]] = None,
        include_category: bool = False,
        suffix: str = "",
    ) -> list[Transaction]:
        if include_category:
            sql = f"""
                SELECT t.*, COALESCE(c.name, t.category) AS categoryName,
                       COALESCE(c.color, '{UNCATEGORIZED_COLOR}') AS categoryColor
                FROM transactions t
                LEFT JOIN categories c ON c.name = t.category
                WHERE 1 = 1 {where}
                {ORDER_NEWEST_FIRST} {suffix}
            """
        else:
            sql = f"""
                SELECT t.* FROM transactions t
                WHERE 1 = 1 {where}
                {ORDER_NEWEST_FIRST} {suffix}
            """
        return [Transaction.from_row(row) for row in self.store.query(sql, params or [])]

    def list_all(
        self, limit: Optional[int] = None, offset: int = 0
    ) -> list[Transaction]:
        """All transactions, newest first, optionally paginated."""
        try:
            if limit is None:
                return self._select()
            return self._select(suffix="LIMIT ? OFFSET ?", params=[limit, offset])
        except StorageError as e:
            logger.error(f"Error listing transactions: {e}", exc_info=True)
            return []

    def recent(self, limit: int = DEFAULT_RECENT_LIMIT) -> list[Transaction]:
        """The latest transactions with category display data."""
        try:
            return self._select(
                suffix="LIMIT ?", params=[limit], include_category=True
            )
        except StorageError as e:
            logger.error(f"Error loading recent transactions: {e}", exc_info=True)
            return []

    def list_by_range(
        self, start: DateLike, end: DateLike, include_category: bool = False
    ) -> list[Transaction]:
        """
        Transactions dated within [start, end], newest first.

        With include_category, rows also carry the category's display
        name and color (a fallback color for unknown categories).
        """
        where, params = _range_clause(start, end)
        try:
            return self._select(where, params, include_category=include_category)
        except StorageError as e:
            logger.error(f"Error listing transactions by range: {e}", exc_info=True)
            return []

    def list_by_account(self, account_id: int) -> list[Transaction]:
        """Transactions owned by one account, newest first."""
        try:
            return self._select(" AND t.accountId = ?", [account_id])
        except StorageError as e:
            logger.error(f"Error listing transactions by account: {e}", exc_info=True)
            return []

    def list_by_category(
        self,
        category: str,
        start: Optional[DateLike] = None,
        end: Optional[DateLike] = None,
    ) -> list[Transaction]:
        """Transactions of one category, optionally within a date range."""
        where, params = _range_clause(start, end)
        try:
            return self._select(" AND t.category = ?" + where, [category] + params)
        except StorageError as e:
            logger.error(f"Error listing transactions by category: {e}", exc_info=True)
            return []

    def search(self, term: str) -> list[Transaction]:
        """Case-insensitive substring match on description or category."""
        if not term or not term.strip():
            return []
        pattern = like_pattern(term.strip())
        try:
            return self._select(
                " AND (t.description LIKE ? ESCAPE '\\' OR t.category LIKE ? ESCAPE '\\')",
                [pattern, pattern],
            )
        except StorageError as e:
            logger.error(f"Error searching transactions: {e}", exc_info=True)
            return []

    # =========================================================================
    # Aggregates
    # =========================================================================

    def sum_by_type(
        self, transaction_type: TransactionType, start: DateLike, end: DateLike
    ) -> float:
        """Total amount of one type within [start, end]; 0.0 when nothing matches."""
        transaction_type = coerce_enum(TransactionType, transaction_type, "transaction type")
        where, params = _range_clause(start, end)
        try:
            total = self.store.scalar(
                f"SELECT SUM(t.amount) FROM transactions t WHERE t.type = ? {where}",
                [transaction_type.value] + params,
                default=0.0,
            )
            return round(total, 2)
        except StorageError as e:
            logger.error(f"Error summing transactions: {e}", exc_info=True)
            return 0.0

    def category_summary(self, start: DateLike, end: DateLike) -> list[CategorySpend]:
        """Expense totals per category within [start, end], largest first."""
        where, params = _range_clause(start, end)
        try:
            rows = self.store.query(
                f"""
                SELECT t.category, SUM(t.amount) AS amount,
                       COALESCE(c.color, ?) AS color
                FROM transactions t
                LEFT JOIN categories c ON c.name = t.category
                WHERE t.type = 'expense' {where}
                GROUP BY t.category
                ORDER BY amount DESC
                """,
                [UNCATEGORIZED_COLOR] + params,
            )
            return [
                CategorySpend(
                    category=row["category"],
                    amount=round(row["amount"], 2),
                    color=row["color"],
                )
                for row in rows
            ]
        except StorageError as e:
            logger.error(f"Error building category summary: {e}", exc_info=True)
            return []

    def need_want_summary(
        self, start: Optional[DateLike] = None, end: Optional[DateLike] = None
    ) -> NeedWantSummary:
        """Expense totals split into needs and wants; unclassified rows are excluded."""
        where, params = _range_clause(start, end)
        summary = NeedWantSummary()
        try:
            rows = self.store.query(
                f"""
                SELECT t.priority, SUM(t.amount) AS total, COUNT(*) AS count
                FROM transactions t
                WHERE t.type = 'expense' AND t.priority IS NOT NULL {where}
                GROUP BY t.priority
                """,
                params,
            )
        except StorageError as e:
            logger.error(f"Error building need/want summary: {e}", exc_info=True)
            return summary

        for row in rows:
            bucket = PriorityBucket(total=round(row["total"], 2), count=row["count"])
            if row["priority"] == Priority.NEED.value:
                summary.needs = bucket
            else:
                summary.wants = bucket
        return summary

    def need_want_by_category(
        self, start: Optional[DateLike] = None, end: Optional[DateLike] = None
    ) -> list[NeedWantCategory]:
        """Expense totals per (category, priority), largest first."""
        where, params = _range_clause(start, end)
        try:
            rows = self.store.query(
                f"""
                SELECT t.category, t.priority, SUM(t.amount) AS total, COUNT(*) AS count
                FROM transactions t
                WHERE t.type = 'expense' AND t.priority IS NOT NULL {where}
                GROUP BY t.category, t.priority
                ORDER BY total DESC
                """,
                params,
            )
            return [
                NeedWantCategory(
                    category=row["category"],
                    priority=Priority(row["priority"]),
                    total=round(row["total"], 2),
                    count=row["count"],
                )
                for row in rows
            ]
        except StorageError as e:
            logger.error(f"Error building need/want breakdown: {e}", exc_info=True)
            return []

    def stats(self, start: DateLike, end: DateLike) -> TransactionStats:
        """Count, totals, net, average and expense split by payment method."""
        where, params = _range_clause(start, end)
        try:
            row = self.store.first(
                f"""
                SELECT COUNT(*) AS count,
                       SUM(CASE WHEN t.type = 'income' THEN t.amount ELSE 0 END) AS income,
                       SUM(CASE WHEN t.type = 'expense' THEN t.amount ELSE 0 END) AS expenses,
                       AVG(t.amount) AS average
                FROM transactions t
                WHERE 1 = 1 {where}
                """,
                params,
            )
            methods = self.store.query(
                f"""
                SELECT t.paymentMethod, SUM(t.amount) AS amount, COUNT(*) AS count
                FROM transactions t
                WHERE t.type = 'expense' {where}
                GROUP BY t.paymentMethod
                ORDER BY amount DESC
                """,
                params,
            )
        except StorageError as e:
            logger.error(f"Error computing transaction stats: {e}", exc_info=True)
            return TransactionStats()

        income = round(row["income"] or 0.0, 2)
        expenses = round(row["expenses"] or 0.0, 2)
        return TransactionStats(
            total_transactions=row["count"],
            total_income=income,
            total_expenses=expenses,
            net_amount=round(income - expenses, 2),
            average_transaction=round(row["average"] or 0.0, 2),
            expenses_by_payment_method=[
                PaymentMethodSpend(
                    payment_method=PaymentMethod(m["paymentMethod"]),
                    amount=round(m["amount"], 2),
                    count=m["count"],
                )
                for m in methods
            ],
        )

    def export_summary(self) -> ExportSummary:
        """Whole-ledger figures for export headers."""
        try:
            row = self.store.first(
                """
                SELECT COUNT(*) AS count,
                       SUM(CASE WHEN type = 'income' THEN amount ELSE 0 END) AS income,
                       SUM(CASE WHEN type = 'expense' THEN amount ELSE 0 END) AS expense,
                       MIN(date) AS earliest,
                       MAX(date) AS latest
                FROM transactions
                """
            )
        except StorageError as e:
            logger.error(f"Error building export summary: {e}", exc_info=True)
            return ExportSummary()

        return ExportSummary(
            total_transactions=row["count"],
            total_income=round(row["income"] or 0.0, 2),
            total_expense=round(row["expense"] or 0.0, 2),
            earliest_date=parse_date(row["earliest"]),
            latest_date=parse_date(row["latest"]),
        )
