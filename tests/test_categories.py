from datetime import date

import pytest

from kakeibo.errors import LedgerValidationError, NotFoundError
from kakeibo.models import BudgetPeriod, CategoryType


@pytest.fixture
def coffee(ledger):
    return ledger.categories.create("Coffee", "#6b4f3a", "☕", CategoryType.EXPENSE, 40)


class TestCrud:
    def test_create_and_lookup(self, ledger, coffee):
        category = ledger.categories.get_by_id(coffee)
        assert category.name == "Coffee"
        assert category.type is CategoryType.EXPENSE
        assert category.budget_limit == 40
        assert ledger.categories.get_by_name("Coffee").id == coffee

    def test_duplicate_name_rejected(self, ledger, coffee):
        with pytest.raises(LedgerValidationError, match="already exists"):
            ledger.categories.create("Coffee", "#000", "x", "expense")

    def test_name_exists_excluding_self(self, ledger, coffee):
        assert ledger.categories.name_exists("Coffee")
        assert not ledger.categories.name_exists("Coffee", exclude_id=coffee)

    def test_list_by_type(self, ledger):
        income = [c.name for c in ledger.categories.list_by_type(CategoryType.INCOME)]
        assert income == ["Investment", "Loan Repayment", "Salary"]

    def test_update_fields(self, ledger, coffee):
        updated = ledger.categories.update(coffee, color="#111111", budget_limit=None)
        assert updated.color == "#111111"
        assert updated.budget_limit is None

    def test_rename_to_taken_name_rejected(self, ledger, coffee):
        with pytest.raises(LedgerValidationError):
            ledger.categories.update(coffee, name="Food")

    def test_rename_cascades_to_transactions(self, ledger, coffee):
        """Transactions follow their category to its new name."""
        txn = ledger.transactions.post(4, "expense", "Coffee", date(2024, 1, 1))
        ledger.categories.update(coffee, name="Cafe")

        assert ledger.transactions.get_by_id(txn).category == "Cafe"
        assert ledger.transactions.list_by_category("Coffee") == []

    def test_update_missing_category(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.categories.update(999, color="#000")


class TestDeleteGuard:
    def test_unused_category_can_be_deleted(self, ledger, coffee):
        ledger.categories.delete(coffee)
        assert ledger.categories.get_by_id(coffee) is None

    def test_category_used_by_transaction_is_kept(self, ledger, coffee):
        """Deletion fails and leaves the category and its transactions alone."""
        ledger.transactions.post(4, "expense", "Coffee", date(2024, 1, 1))

        with pytest.raises(LedgerValidationError, match="1 transactions"):
            ledger.categories.delete(coffee)
        assert ledger.categories.get_by_id(coffee) is not None
        assert len(ledger.transactions.list_by_category("Coffee")) == 1

    def test_category_used_by_budget_is_kept(self, ledger, coffee):
        ledger.budgets.create(
            coffee, 40, BudgetPeriod.MONTHLY, date(2024, 1, 1), date(2024, 1, 31)
        )
        with pytest.raises(LedgerValidationError, match="budgets"):
            ledger.categories.delete(coffee)
        assert len(ledger.budgets.list_by_category(coffee)) == 1

    def test_delete_missing_category(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.categories.delete(999)


class TestStats:
    def test_with_stats_includes_unused_categories(self, ledger, coffee):
        ledger.transactions.post(4, "expense", "Coffee", date(2024, 1, 1))
        ledger.transactions.post(6, "expense", "Coffee", date(2024, 2, 1))

        stats = {s.category.name: s for s in ledger.categories.with_stats()}
        assert len(stats) == len(ledger.categories.list_all())
        assert stats["Coffee"].transaction_count == 2
        assert stats["Coffee"].total_amount == 10
        assert stats["Coffee"].last_used == date(2024, 2, 1)
        assert stats["Gift"].transaction_count == 0
        assert stats["Gift"].last_used is None

    def test_with_stats_date_range(self, ledger, coffee):
        ledger.transactions.post(4, "expense", "Coffee", date(2024, 1, 1))
        ledger.transactions.post(6, "expense", "Coffee", date(2024, 2, 1))

        stats = {
            s.category.name: s
            for s in ledger.categories.with_stats(date(2024, 1, 1), date(2024, 1, 31))
        }
        assert stats["Coffee"].transaction_count == 1
        assert stats["Coffee"].total_amount == 4

    def test_monthly_expense_totals(self, ledger):
        post = ledger.transactions.post
        post(10, "expense", "Food", date(2024, 1, 5))
        post(15, "expense", "Food", date(2024, 1, 25))
        post(7, "expense", "Food", date(2024, 2, 5))
        post(100, "income", "Salary", date(2024, 1, 5))

        totals = ledger.categories.monthly_expense_totals(date(2024, 1, 1), date(2024, 2, 28))
        assert [(t.category, t.month, t.amount) for t in totals] == [
            ("Food", "2024-01", 25),
            ("Food", "2024-02", 7),
        ]
