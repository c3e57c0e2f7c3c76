"""
Budget repository module for category spending ceilings.

Budgets cover an explicit date range. Spend is always derived from
expense transactions of the budget's category; nothing about
utilization is stored.
"""

import logging
from datetime import date
from typing import Any, Optional

from kakeibo.errors import LedgerValidationError, NotFoundError, StorageError
from kakeibo.models import BudgetPeriod, coerce_enum

from .base import LedgerStore
from .models import (
    Budget,
    BudgetAlert,
    BudgetPerformance,
    BudgetUtilization,
    DateLike,
    as_amount,
    as_iso_date,
    parse_date,
)

logger = logging.getLogger(__name__)

BUDGET_SELECT = """
    SELECT b.*, c.name AS categoryName, c.color AS categoryColor
    FROM budgets b
    JOIN categories c ON c.id = b.categoryId
"""

UPDATABLE_FIELDS = {
    "category_id": "categoryId",
    "amount": "amount",
    "period": "period",
    "start_date": "startDate",
    "end_date": "endDate",
}


class BudgetRepository:
    """Repository for budgets and budget performance."""

    def __init__(self, store: LedgerStore):
        self.store = store

    # =========================================================================
    # Helpers
    # =========================================================================

    def _spent(self, category_name: str, start: date, end: date) -> float:
        """Expense total of one category within [start, end]."""
        total = self.store.scalar(
            """
            SELECT SUM(amount) FROM transactions
            WHERE category = ? AND type = 'expense' AND date BETWEEN ? AND ?
            """,
            (category_name, start.isoformat(), end.isoformat()),
            default=0.0,
        )
        return round(total, 2)

    def _list(
        self, where: str = "", params: tuple = (), order: str = "c.name, b.startDate"
    ) -> list[Budget]:
        rows = self.store.query(f"{BUDGET_SELECT} {where} ORDER BY {order}", params)
        return [Budget.from_row(row) for row in rows]

    def _check_fields(self, amount: Any, start: str, end: str) -> float:
        amount = as_amount(amount, "budget amount")
        if start > end:
            raise LedgerValidationError(
                f"Budget start date {start} is after end date {end}"
            )
        return amount

    def _check_category(self, category_id: int):
        if self.store.first("SELECT id FROM categories WHERE id = ?", (category_id,)) is None:
            raise NotFoundError(f"Category {category_id} not found")

    # =========================================================================
    # CRUD
    # =========================================================================

    def create(
        self,
        category_id: int,
        amount: float,
        period: BudgetPeriod,
        start_date: DateLike,
        end_date: DateLike,
    ) -> int:
        """
        Create a budget.

        Returns:
            ID of the new budget

        Raises:
            LedgerValidationError: On a non-positive amount or inverted range
            NotFoundError: If the category does not exist
        """
        period = coerce_enum(BudgetPeriod, period, "budget period")
        start = as_iso_date(start_date, "start date")
        end = as_iso_date(end_date, "end date")
        amount = self._check_fields(amount, start, end)
        self._check_category(category_id)

        try:
            cursor = self.store.execute(
                """
                INSERT INTO budgets (categoryId, amount, period, startDate, endDate)
                VALUES (?, ?, ?, ?, ?)
                """,
                (category_id, amount, period.value, start, end),
            )
            logger.info(
                f"Created budget {cursor.lastrowid}: {amount} {period.value} "
                f"for category {category_id} ({start}..{end})"
            )
            return cursor.lastrowid
        except Exception as e:
            logger.error(f"Error creating budget: {e}", exc_info=True)
            raise

    def update(self, budget_id: int, **fields: Any) -> Budget:
        """
        Apply a partial update to a budget.

        Raises:
            NotFoundError: If the budget or a new category does not exist
            LedgerValidationError: On unknown fields or invalid values
        """
        unknown = set(fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise LedgerValidationError(
                f"Unknown budget fields: {', '.join(sorted(unknown))}"
            )

        existing = self.get_by_id(budget_id)
        if existing is None:
            raise NotFoundError(f"Budget {budget_id} not found")
        if not fields:
            logger.warning(f"Update of budget {budget_id} with no fields")
            return existing

        if "period" in fields:
            fields["period"] = coerce_enum(BudgetPeriod, fields["period"], "budget period").value
        for key in ("start_date", "end_date"):
            if key in fields:
                fields[key] = as_iso_date(fields[key], key.replace("_", " "))
        if "category_id" in fields:
            self._check_category(fields["category_id"])
        amount = self._check_fields(
            fields.get("amount", existing.amount),
            fields.get("start_date", existing.start_date.isoformat()),
            fields.get("end_date", existing.end_date.isoformat()),
        )
        if "amount" in fields:
            fields["amount"] = amount

        assignments = ", ".join(f"{UPDATABLE_FIELDS[key]} = ?" for key in fields)
        try:
            self.store.execute(
                f"UPDATE budgets SET {assignments} WHERE id = ?",
                list(fields.values()) + [budget_id],
            )
            logger.info(f"Updated budget {budget_id}: {sorted(fields)}")
            return self.get_by_id(budget_id)
        except Exception as e:
            logger.error(f"Error updating budget {budget_id}: {e}", exc_info=True)
            raise

    def delete(self, budget_id: int) -> None:
        """
        Delete a budget.

        Raises:
            NotFoundError: If the budget does not exist
        """
        try:
            cursor = self.store.execute("DELETE FROM budgets WHERE id = ?", (budget_id,))
        except Exception as e:
            logger.error(f"Error deleting budget {budget_id}: {e}", exc_info=True)
            raise
        if not cursor.rowcount:
            raise NotFoundError(f"Budget {budget_id} not found")
        logger.info(f"Deleted budget {budget_id}")

    def get_by_id(self, budget_id: int) -> Optional[Budget]:
        try:
            budgets = self._list("WHERE b.id = ?", (budget_id,))
            return budgets[0] if budgets else None
        except StorageError as e:
            logger.error(f"Error getting budget {budget_id}: {e}", exc_info=True)
            return None

    def list_all(self) -> list[Budget]:
        """All budgets with category display data, by category name."""
        try:
            return self._list()
        except StorageError as e:
            logger.error(f"Error listing budgets: {e}", exc_info=True)
            return []

    def list_by_category(self, category_id: int) -> list[Budget]:
        """Budgets of one category, latest start first."""
        try:
            return self._list(
                "WHERE b.categoryId = ?", (category_id,), order="b.startDate DESC"
            )
        except StorageError as e:
            logger.error(f"Error listing budgets by category: {e}", exc_info=True)
            return []

    def active(self, as_of: Optional[date] = None) -> list[Budget]:
        """Budgets whose range contains as_of (defaults to today)."""
        day = (as_of or date.today()).isoformat()
        try:
            return self._list("WHERE b.startDate <= ? AND b.endDate >= ?", (day, day))
        except StorageError as e:
            logger.error(f"Error listing active budgets: {e}", exc_info=True)
            return []

    # =========================================================================
    # Performance
    # =========================================================================

    def performance(self, start: DateLike, end: DateLike) -> list[BudgetPerformance]:
        """
        Spend against every budget that overlaps [start, end].

        For each budget the spend is summed over the intersection of its
        own range with the query range, never over the whole query range.

        Args:
            start: First day of the query window
            end: Last day of the query window

        Returns:
            One BudgetPerformance per overlapping budget, by category name
        """
        window_start = parse_date(as_iso_date(start, "start date"))
        window_end = parse_date(as_iso_date(end, "end date"))
        if window_start > window_end:
            return []

        try:
            budgets = self._list(
                "WHERE b.startDate <= ? AND b.endDate >= ?",
                (window_end.isoformat(), window_start.isoformat()),
            )
            results = []
            for budget in budgets:
                overlap_start = max(budget.start_date, window_start)
                overlap_end = min(budget.end_date, window_end)
                spent = self._spent(budget.category_name, overlap_start, overlap_end)
                results.append(
                    BudgetPerformance(
                        budget=budget,
                        overlap_start=overlap_start,
                        overlap_end=overlap_end,
                        spent=spent,
                        remaining=round(budget.amount - spent, 2),
                        percent_used=round(spent / budget.amount * 100, 2),
                        is_over_budget=spent > budget.amount,
                    )
                )
            return results
        except StorageError as e:
            logger.error(f"Error computing budget performance: {e}", exc_info=True)
            return []

    def alerts(self, as_of: Optional[date] = None) -> list[BudgetAlert]:
        """Active budgets already overspent, largest overage first."""
        alerts = []
        try:
            for budget in self.active(as_of):
                spent = self._spent(budget.category_name, budget.start_date, budget.end_date)
                if spent > budget.amount:
                    alerts.append(
                        BudgetAlert(
                            category_name=budget.category_name,
                            budget_amount=budget.amount,
                            current_spent=spent,
                            over_amount=round(spent - budget.amount, 2),
                            period=budget.period,
                        )
                    )
        except StorageError as e:
            logger.error(f"Error computing budget alerts: {e}", exc_info=True)
            return []

        return sorted(alerts, key=lambda a: a.over_amount, reverse=True)

    def utilization_summary(self, as_of: Optional[date] = None) -> BudgetUtilization:
        """Totals and average utilization (percent) across active budgets."""
        budgets = self.active(as_of)
        if not budgets:
            return BudgetUtilization()

        total_spent = 0.0
        over = 0
        utilization = 0.0
        try:
            for budget in budgets:
                spent = self._spent(budget.category_name, budget.start_date, budget.end_date)
                total_spent += spent
                if spent > budget.amount:
                    over += 1
                utilization += spent / budget.amount
        except StorageError as e:
            logger.error(f"Error computing budget utilization: {e}", exc_info=True)
            return BudgetUtilization()

        return BudgetUtilization(
            total_budgets=len(budgets),
            total_budget_amount=round(sum(b.amount for b in budgets), 2),
            total_spent=round(total_spent, 2),
            over_budget_count=over,
            average_utilization=round(utilization / len(budgets) * 100, 2),
        )
