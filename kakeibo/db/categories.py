"""
Categories repository module.

Transactions reference categories by name, so deletion is guarded in
code and a rename is cascaded into the transactions that carry the old
name.
"""

import logging
from typing import Any, Optional

from kakeibo.config import ERROR_MESSAGES
from kakeibo.errors import LedgerValidationError, NotFoundError, StorageError
from kakeibo.models import CategoryType, coerce_enum

from .base import LedgerStore
from .models import (
    Category,
    CategoryStats,
    DateLike,
    MonthlyCategorySpend,
    as_iso_date,
    parse_date,
)

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {
    "name": "name",
    "color": "color",
    "icon": "icon",
    "type": "type",
    "budget_limit": "budgetLimit",
}


class CategoryRepository:
    """Repository for transaction categories."""

    def __init__(self, store: LedgerStore):
        self.store = store

    # =========================================================================
    # Reads
    # =========================================================================

    def list_all(self) -> list[Category]:
        """All categories ordered by name."""
        try:
            rows = self.store.query("SELECT * FROM categories ORDER BY name")
            return [Category.from_row(row) for row in rows]
        except StorageError as e:
            logger.error(f"Error listing categories: {e}", exc_info=True)
            return []

    def list_by_type(self, category_type: CategoryType) -> list[Category]:
        category_type = coerce_enum(CategoryType, category_type, "category type")
        try:
            rows = self.store.query(
                "SELECT * FROM categories WHERE type = ? ORDER BY name",
                (category_type.value,),
            )
            return [Category.from_row(row) for row in rows]
        except StorageError as e:
            logger.error(f"Error listing categories by type: {e}", exc_info=True)
            return []

    def get_by_id(self, category_id: int) -> Optional[Category]:
        try:
            row = self.store.first("SELECT * FROM categories WHERE id = ?", (category_id,))
            return Category.from_row(row) if row else None
        except StorageError as e:
            logger.error(f"Error getting category {category_id}: {e}", exc_info=True)
            return None

    def get_by_name(self, name: str) -> Optional[Category]:
        try:
            row = self.store.first("SELECT * FROM categories WHERE name = ?", (name,))
            return Category.from_row(row) if row else None
        except StorageError as e:
            logger.error(f"Error getting category '{name}': {e}", exc_info=True)
            return None

    def name_exists(self, name: str, exclude_id: Optional[int] = None) -> bool:
        """Whether another category already uses name."""
        sql = "SELECT COUNT(*) FROM categories WHERE name = ?"
        params: list[Any] = [name.strip()]
        if exclude_id is not None:
            sql += " AND id != ?"
            params.append(exclude_id)
        return self.store.scalar(sql, params, default=0) > 0

    def with_stats(
        self, start: Optional[DateLike] = None, end: Optional[DateLike] = None
    ) -> list[CategoryStats]:
        """
        Every category with its usage, including categories never used.

        Args:
            start: Optional first day to count transactions from
            end: Optional last day to count transactions to
        """
        join_filter = ""
        params = []
        if start is not None:
            join_filter += " AND t.date >= ?"
            params.append(as_iso_date(start, "start date"))
        if end is not None:
            join_filter += " AND t.date <= ?"
            params.append(as_iso_date(end, "end date"))

        try:
            rows = self.store.query(
                f"""
                SELECT c.*,
                       COUNT(t.id) AS transactionCount,
                       COALESCE(SUM(t.amount), 0) AS totalAmount,
                       MAX(t.date) AS lastUsed
                FROM categories c
                LEFT JOIN transactions t ON t.category = c.name {join_filter}
                GROUP BY c.id
                ORDER BY c.name
                """,
                params,
            )
            return [
                CategoryStats(
                    category=Category.from_row(row),
                    transaction_count=row["transactionCount"],
                    total_amount=round(row["totalAmount"], 2),
                    last_used=parse_date(row["lastUsed"]),
                )
                for row in rows
            ]
        except StorageError as e:
            logger.error(f"Error building category stats: {e}", exc_info=True)
            return []

    def monthly_expense_totals(
        self, start: DateLike, end: DateLike
    ) -> list[MonthlyCategorySpend]:
        """Expense totals per (expense category, YYYY-MM) within [start, end]."""
        try:
            rows = self.store.query(
                """
                SELECT t.category, strftime('%Y-%m', t.date) AS month,
                       SUM(t.amount) AS amount
                FROM transactions t
                JOIN categories c ON c.name = t.category AND c.type = 'expense'
                WHERE t.type = 'expense' AND t.date BETWEEN ? AND ?
                GROUP BY t.category, month
                ORDER BY t.category, month
                """,
                (as_iso_date(start, "start date"), as_iso_date(end, "end date")),
            )
            return [
                MonthlyCategorySpend(
                    category=row["category"],
                    month=row["month"],
                    amount=round(row["amount"], 2),
                )
                for row in rows
            ]
        except StorageError as e:
            logger.error(f"Error loading monthly category totals: {e}", exc_info=True)
            return []

    # =========================================================================
    # Writes
    # =========================================================================

    def create(
        self,
        name: str,
        color: str,
        icon: str,
        category_type: CategoryType,
        budget_limit: Optional[float] = None,
    ) -> int:
        """
        Create a category.

        Returns:
            ID of the new category

        Raises:
            LedgerValidationError: If the name is empty or already taken
        """
        if not name or not name.strip():
            raise LedgerValidationError("Category name cannot be empty")
        category_type = coerce_enum(CategoryType, category_type, "category type")
        name = name.strip()
        if self.name_exists(name):
            raise LedgerValidationError(f"Category '{name}' already exists")

        try:
            cursor = self.store.execute(
                """
                INSERT INTO categories (name, color, icon, type, budgetLimit)
                VALUES (?, ?, ?, ?, ?)
                """,
                (name, color, icon, category_type.value, budget_limit),
            )
            logger.info(f"Created category {cursor.lastrowid} '{name}'")
            return cursor.lastrowid
        except Exception as e:
            logger.error(f"Error creating category: {e}", exc_info=True)
            raise

    def update(self, category_id: int, **fields: Any) -> Category:
        """
        Apply a partial update to a category.

        A rename is carried into every transaction that used the old name,
        in the same atomic unit as the category update.

        Raises:
            NotFoundError: If the category does not exist
            LedgerValidationError: On unknown fields, an empty or duplicate name
        """
        unknown = set(fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise LedgerValidationError(
                f"Unknown category fields: {', '.join(sorted(unknown))}"
            )

        existing = self.get_by_id(category_id)
        if existing is None:
            raise NotFoundError(f"Category {category_id} not found")
        if not fields:
            logger.warning(f"Update of category {category_id} with no fields")
            return existing

        if "name" in fields:
            if not fields["name"] or not fields["name"].strip():
                raise LedgerValidationError("Category name cannot be empty")
            fields["name"] = fields["name"].strip()
            if self.name_exists(fields["name"], exclude_id=category_id):
                raise LedgerValidationError(f"Category '{fields['name']}' already exists")
        if "type" in fields:
            fields["type"] = coerce_enum(CategoryType, fields["type"], "category type").value

        assignments = ", ".join(f"{UPDATABLE_FIELDS[key]} = ?" for key in fields)
        renamed = "name" in fields and fields["name"] != existing.name

        try:
            with self.store.atomic():
                self.store.execute(
                    f"UPDATE categories SET {assignments} WHERE id = ?",
                    list(fields.values()) + [category_id],
                )
                if renamed:
                    cursor = self.store.execute(
                        "UPDATE transactions SET category = ? WHERE category = ?",
                        (fields["name"], existing.name),
                    )
                    logger.info(
                        f"Renamed category '{existing.name}' -> '{fields['name']}' "
                        f"on {cursor.rowcount} transactions"
                    )
            logger.info(f"Updated category {category_id}: {sorted(fields)}")
            return self.get_by_id(category_id)
        except Exception as e:
            logger.error(f"Error updating category {category_id}: {e}", exc_info=True)
            raise

    def delete(self, category_id: int) -> None:
        """
        Delete an unused category.

        Raises:
            NotFoundError: If the category does not exist
            LedgerValidationError: If any transaction or budget references it
        """
        category = self.get_by_id(category_id)
        if category is None:
            raise NotFoundError(f"Category {category_id} not found")

        transaction_count = self.store.scalar(
            "SELECT COUNT(*) FROM transactions WHERE category = ?",
            (category.name,),
            default=0,
        )
        if transaction_count:
            raise LedgerValidationError(
                f"{ERROR_MESSAGES['category_in_use']} "
                f"'{category.name}' is used by {transaction_count} transactions"
            )

        budget_count = self.store.scalar(
            "SELECT COUNT(*) FROM budgets WHERE categoryId = ?",
            (category_id,),
            default=0,
        )
        if budget_count:
            raise LedgerValidationError(
                f"{ERROR_MESSAGES['category_in_use']} "
                f"'{category.name}' is used by {budget_count} budgets"
            )

        try:
            self.store.execute("DELETE FROM categories WHERE id = ?", (category_id,))
            logger.info(f"Deleted category {category_id} '{category.name}'")
        except Exception as e:
            logger.error(f"Error deleting category {category_id}: {e}", exc_info=True)
            raise
