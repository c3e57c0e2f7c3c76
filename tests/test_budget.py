from datetime import date

import pytest

from kakeibo.errors import LedgerValidationError, NotFoundError
from kakeibo.models import BudgetPeriod


def jan(day):
    return date(2024, 1, day)


@pytest.fixture
def food_id(ledger):
    return ledger.categories.get_by_name("Food").id


@pytest.fixture
def food_budget(ledger, food_id):
    return ledger.budgets.create(food_id, 100, BudgetPeriod.MONTHLY, jan(1), jan(31))


class TestCrud:
    def test_create_and_get(self, ledger, food_budget, food_id):
        budget = ledger.budgets.get_by_id(food_budget)
        assert budget.category_id == food_id
        assert budget.category_name == "Food"
        assert budget.period is BudgetPeriod.MONTHLY
        assert (budget.start_date, budget.end_date) == (jan(1), jan(31))

    @pytest.mark.parametrize("amount", [0, -1])
    def test_amount_must_be_positive(self, ledger, food_id, amount):
        with pytest.raises(LedgerValidationError):
            ledger.budgets.create(food_id, amount, "monthly", jan(1), jan(31))

    def test_amount_coerced_to_cents(self, ledger, food_id):
        budget_id = ledger.budgets.create(food_id, "99.999", "monthly", jan(1), jan(31))
        assert ledger.budgets.get_by_id(budget_id).amount == 100
        assert ledger.budgets.update(budget_id, amount="150").amount == 150
        with pytest.raises(LedgerValidationError, match="Invalid budget amount"):
            ledger.budgets.update(budget_id, amount="plenty")

    def test_inverted_range_rejected(self, ledger, food_id):
        with pytest.raises(LedgerValidationError, match="after"):
            ledger.budgets.create(food_id, 10, "monthly", jan(31), jan(1))

    def test_unknown_category_rejected(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.budgets.create(999, 10, "monthly", jan(1), jan(31))

    def test_update(self, ledger, food_budget):
        budget = ledger.budgets.update(food_budget, amount=250, period="yearly")
        assert budget.amount == 250
        assert budget.period is BudgetPeriod.YEARLY

    def test_update_checks_merged_range(self, ledger, food_budget):
        with pytest.raises(LedgerValidationError):
            ledger.budgets.update(food_budget, start_date=date(2024, 2, 1))

    def test_delete(self, ledger, food_budget):
        ledger.budgets.delete(food_budget)
        assert ledger.budgets.get_by_id(food_budget) is None
        with pytest.raises(NotFoundError):
            ledger.budgets.delete(food_budget)

    def test_active(self, ledger, food_budget, food_id):
        ledger.budgets.create(food_id, 50, "weekly", date(2024, 2, 1), date(2024, 2, 7))
        assert [b.id for b in ledger.budgets.active(as_of=jan(15))] == [food_budget]
        assert ledger.budgets.active(as_of=date(2024, 3, 1)) == []


class TestPerformance:
    @pytest.fixture
    def spread(self, ledger, food_budget):
        """$60 over days 1-15 and $60 over days 16-31."""
        for day in (1, 5, 10, 15, 16, 20, 25, 31):
            ledger.transactions.post(15, "expense", "Food", jan(day))
        ledger.transactions.post(500, "income", "Food", jan(12))
        ledger.transactions.post(70, "expense", "Shopping", jan(12))
        return food_budget

    def test_spend_is_limited_to_the_overlap(self, ledger, spread):
        """A mid-month window only counts spending inside it."""
        (perf,) = ledger.budgets.performance(jan(10), jan(20))
        assert (perf.overlap_start, perf.overlap_end) == (jan(10), jan(20))
        # days 10, 15, 16, 20
        assert perf.spent == 60
        assert perf.remaining == 40
        assert perf.percent_used == 60
        assert perf.is_over_budget is False

    def test_window_wider_than_budget(self, ledger, spread):
        (perf,) = ledger.budgets.performance(date(2023, 12, 1), date(2024, 2, 29))
        assert (perf.overlap_start, perf.overlap_end) == (jan(1), jan(31))
        assert perf.spent == 120
        assert perf.is_over_budget is True
        assert perf.remaining == -20

    def test_non_overlapping_budgets_skipped(self, ledger, spread):
        assert ledger.budgets.performance(date(2024, 2, 1), date(2024, 2, 29)) == []

    def test_inverted_window_is_empty(self, ledger, spread):
        assert ledger.budgets.performance(jan(20), jan(10)) == []


class TestAlerts:
    def test_alerts_sorted_by_overage(self, ledger, food_budget):
        shopping = ledger.categories.get_by_name("Shopping").id
        ledger.budgets.create(shopping, 10, "monthly", jan(1), jan(31))
        ledger.transactions.post(130, "expense", "Food", jan(3))
        ledger.transactions.post(90, "expense", "Shopping", jan(4))

        alerts = ledger.budgets.alerts(as_of=jan(20))
        assert [(a.category_name, a.over_amount) for a in alerts] == [
            ("Shopping", 80),
            ("Food", 30),
        ]

    def test_no_alerts_outside_active_range(self, ledger, food_budget):
        ledger.transactions.post(130, "expense", "Food", jan(3))
        assert ledger.budgets.alerts(as_of=date(2024, 2, 2)) == []

    def test_utilization_summary(self, ledger, food_budget):
        shopping = ledger.categories.get_by_name("Shopping").id
        ledger.budgets.create(shopping, 50, "monthly", jan(1), jan(31))
        ledger.transactions.post(150, "expense", "Food", jan(3))
        ledger.transactions.post(25, "expense", "Shopping", jan(4))

        summary = ledger.budgets.utilization_summary(as_of=jan(10))
        assert summary.total_budgets == 2
        assert summary.total_budget_amount == 150
        assert summary.total_spent == 175
        assert summary.over_budget_count == 1
        # (150% + 50%) / 2
        assert summary.average_utilization == 100

    def test_utilization_without_budgets(self, ledger):
        assert ledger.budgets.utilization_summary(as_of=jan(10)).total_budgets == 0
