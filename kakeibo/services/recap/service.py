"""
Recap service for monthly overviews and spending trends.

Provides functionality for:
- Monthly dashboard overview (balances, income/expense, budgets, loans)
- Startup/foreground refresh (overdue loan sweep)
- Per-category spending trends over recent months
"""

import calendar
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

import pandas as pd

from kakeibo.config import (
    DEFAULT_TREND_MONTHS,
    DEFAULT_UPCOMING_DAYS,
    TREND_DECREASE_RATIO,
    TREND_INCREASE_RATIO,
)
from kakeibo.db.models import (
    BudgetAlert,
    CategorySpend,
    CategoryTrend,
    Loan,
    LoanSummary,
    MonthlyBalance,
    MonthlyCategorySpend,
    NeedWantSummary,
)
from kakeibo.db.repository import LedgerRepository
from kakeibo.models import SpendingTrend, TransactionType

logger = logging.getLogger(__name__)


@dataclass
class MonthlyOverview:
    """Everything the dashboard shows for one calendar month."""

    year: int
    month: int
    period_start: date
    period_end: date
    headline_balance: float
    account_balances: list[MonthlyBalance]
    income: float
    expenses: float
    net: float
    category_breakdown: list[CategorySpend] = field(default_factory=list)
    need_want: NeedWantSummary = field(default_factory=NeedWantSummary)
    budget_alerts: list[BudgetAlert] = field(default_factory=list)
    loan_summary: LoanSummary = field(default_factory=LoanSummary)
    upcoming_loans: list[Loan] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "year": self.year,
            "month": self.month,
            "period_start": self.period_start.isoformat(),
            "period_end": self.period_end.isoformat(),
            "headline_balance": self.headline_balance,
            "account_balances": [b.to_dict() for b in self.account_balances],
            "income": self.income,
            "expenses": self.expenses,
            "net": self.net,
            "category_breakdown": [c.to_dict() for c in self.category_breakdown],
            "need_want": self.need_want.to_dict(),
            "budget_alerts": [a.to_dict() for a in self.budget_alerts],
            "loan_summary": self.loan_summary.to_dict(),
            "upcoming_loans": [loan.to_dict() for loan in self.upcoming_loans],
        }


def classify_trend(amounts: pd.Series) -> SpendingTrend:
    """
    Compare the later half of a monthly series with the earlier half.

    More than 10% up is increasing, more than 10% down is decreasing.
    Fewer than two months is always stable.
    """
    if len(amounts) < 2:
        return SpendingTrend.STABLE

    half = len(amounts) // 2
    first_avg = amounts.iloc[:half].mean()
    second_avg = amounts.iloc[half:].mean()

    if second_avg > first_avg * TREND_INCREASE_RATIO:
        return SpendingTrend.INCREASING
    if second_avg < first_avg * TREND_DECREASE_RATIO:
        return SpendingTrend.DECREASING
    return SpendingTrend.STABLE


class RecapService:
    """Service for read-side dashboard composition."""

    def __init__(self, ledger: LedgerRepository):
        """
        Initialize the recap service.

        Args:
            ledger: The ledger to read from
        """
        self.ledger = ledger

    def refresh(self, as_of: Optional[date] = None) -> int:
        """Run foreground housekeeping; returns the number of loans newly overdue."""
        flagged = self.ledger.loans.mark_overdue_sweep(as_of)
        logger.info(f"Refresh complete: {flagged} loans marked overdue")
        return flagged

    def monthly_overview(
        self,
        year: Optional[int] = None,
        month: Optional[int] = None,
        as_of: Optional[date] = None,
    ) -> MonthlyOverview:
        """
        Build the dashboard overview for one month.

        Args:
            year: Calendar year (defaults to as_of's year)
            month: Calendar month (defaults to as_of's month)
            as_of: Reference day for "today" (defaults to today)

        Returns:
            Complete MonthlyOverview
        """
        if as_of is None:
            as_of = date.today()
        year = year or as_of.year
        month = month or as_of.month

        period_start = date(year, month, 1)
        period_end = date(year, month, calendar.monthrange(year, month)[1])

        snapshots = self.ledger.accounts.monthly_snapshots(year, month)
        if (year, month) == (as_of.year, as_of.month):
            headline = self.ledger.accounts.current_period_balance(as_of)
        else:
            headline = round(sum(s.closing_balance for s in snapshots), 2)

        transactions = self.ledger.transactions
        income = transactions.sum_by_type(TransactionType.INCOME, period_start, period_end)
        expenses = transactions.sum_by_type(TransactionType.EXPENSE, period_start, period_end)

        logger.debug(f"Built overview for {year}-{month:02d}")
        return MonthlyOverview(
            year=year,
            month=month,
            period_start=period_start,
            period_end=period_end,
            headline_balance=headline,
            account_balances=snapshots,
            income=income,
            expenses=expenses,
            net=round(income - expenses, 2),
            category_breakdown=transactions.category_summary(period_start, period_end),
            need_want=transactions.need_want_summary(period_start, period_end),
            budget_alerts=self.ledger.budgets.alerts(as_of),
            loan_summary=self.ledger.loans.summary(),
            upcoming_loans=self.ledger.loans.upcoming_due(DEFAULT_UPCOMING_DAYS, as_of),
        )

    def spending_trends(
        self, months: int = DEFAULT_TREND_MONTHS, as_of: Optional[date] = None
    ) -> list[CategoryTrend]:
        """
        Monthly spend per expense category with a trend classification.

        Only months with spending count toward the average and the trend.

        Args:
            months: How many months back from as_of to look
            as_of: Last day of the window (defaults to today)

        Returns:
            One CategoryTrend per category with spending, highest average first
        """
        if as_of is None:
            as_of = date.today()
        start = (pd.Timestamp(as_of) - pd.DateOffset(months=months)).date()

        totals = self.ledger.categories.monthly_expense_totals(start, as_of)
        if not totals:
            return []

        df = pd.DataFrame(
            {
                "category": [t.category for t in totals],
                "month": [t.month for t in totals],
                "amount": [t.amount for t in totals],
            }
        )

        trends = []
        for category, group in df.sort_values("month").groupby("category"):
            amounts = group["amount"].reset_index(drop=True)
            trends.append(
                CategoryTrend(
                    category_name=category,
                    monthly_data=[
                        MonthlyCategorySpend(category=category, month=m, amount=a)
                        for m, a in zip(group["month"], group["amount"])
                    ],
                    trend=classify_trend(amounts),
                    average_monthly=round(float(amounts.mean()), 2),
                )
            )

        return sorted(trends, key=lambda t: t.average_monthly, reverse=True)
