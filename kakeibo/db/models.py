"""
Database models for the Kakeibo ledger.

Row types mirror the persisted tables; the remaining dataclasses are the
read projections (summaries, breakdowns, budget performance) the ledger
returns. Column names in SQLite are camelCase to stay compatible with
existing database files, attributes here are snake_case.
"""

import math
import sqlite3
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Optional, Union

from kakeibo.errors import LedgerValidationError
from kakeibo.models import (
    AccountType,
    BorrowerStanding,
    BudgetPeriod,
    CategoryType,
    LoanStatus,
    PaymentMethod,
    Priority,
    SpendingTrend,
    TransactionType,
)

DateLike = Union[date, str]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_iso_date(value: DateLike, field_name: str = "date") -> str:
    """Normalize a date or ISO string to YYYY-MM-DD."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    try:
        return date.fromisoformat(str(value)[:10]).isoformat()
    except ValueError:
        raise LedgerValidationError(
            f"Invalid {field_name}: {value!r} (expected YYYY-MM-DD)"
        ) from None


def as_amount(value: Any, field_name: str = "amount", positive: bool = True) -> float:
    """Coerce money input to a float rounded to cents."""
    try:
        amount = round(float(value), 2)
    except (TypeError, ValueError):
        raise LedgerValidationError(f"Invalid {field_name}: {value!r}") from None
    if math.isnan(amount) or math.isinf(amount):
        raise LedgerValidationError(f"Invalid {field_name}: {value!r}")
    if positive and amount <= 0:
        raise LedgerValidationError(
            f"{field_name.capitalize()} must be positive, got {value}"
        )
    return amount


def parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    return date.fromisoformat(value[:10])


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    # fromisoformat only accepts a trailing Z from 3.11 on
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def _has(row: sqlite3.Row, key: str) -> bool:
    return key in row.keys()


@dataclass
class Account:
    """
    A named money container (wallet, bank account, card).

    The balance is only moved by transaction and loan postings once the
    account exists; inactive accounts keep their history but drop out of
    every aggregate.
    """

    id: Optional[int]
    name: str
    type: AccountType
    balance: float
    currency: str
    bank_name: Optional[str] = None
    account_number: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "balance": self.balance,
            "currency": self.currency,
            "bank_name": self.bank_name,
            "account_number": self.account_number,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Account":
        """Create an Account from a database row."""
        return cls(
            id=row["id"],
            name=row["name"],
            type=AccountType(row["type"]),
            balance=row["balance"],
            currency=row["currency"],
            bank_name=row["bankName"],
            account_number=row["accountNumber"],
            is_active=bool(row["isActive"]),
            created_at=parse_datetime(row["createdAt"]),
            updated_at=parse_datetime(row["updatedAt"]),
        )


@dataclass
class Transaction:
    """
    A single income or expense event.

    When account_id is set, the account's balance carries signed_amount
    for as long as this row exists.
    """

    id: Optional[int]
    amount: float
    type: TransactionType
    category: str
    description: Optional[str]
    date: date
    payment_method: PaymentMethod
    account_id: Optional[int] = None
    priority: Optional[Priority] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    # Filled by joined reads only
    category_name: Optional[str] = None
    category_color: Optional[str] = None

    @property
    def signed_amount(self) -> float:
        """+amount for income, -amount for expense."""
        return self.type.sign * self.amount

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "amount": self.amount,
            "type": self.type.value,
            "category": self.category,
            "description": self.description,
            "date": self.date.isoformat(),
            "payment_method": self.payment_method.value,
            "account_id": self.account_id,
            "priority": self.priority.value if self.priority else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "category_name": self.category_name,
            "category_color": self.category_color,
        }

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Transaction":
        """Create a Transaction from a database row."""
        return cls(
            id=row["id"],
            amount=row["amount"],
            type=TransactionType(row["type"]),
            category=row["category"],
            description=row["description"],
            date=parse_date(row["date"]),
            payment_method=PaymentMethod(row["paymentMethod"]),
            account_id=row["accountId"],
            priority=Priority(row["priority"]) if row["priority"] else None,
            created_at=parse_datetime(row["createdAt"]),
            updated_at=parse_datetime(row["updatedAt"]),
            category_name=row["categoryName"] if _has(row, "categoryName") else None,
            category_color=row["categoryColor"] if _has(row, "categoryColor") else None,
        )


@dataclass
class Category:
    """A label for classifying transactions, optionally carrying a budget limit."""

    id: Optional[int]
    name: str
    color: str
    icon: str
    type: CategoryType
    budget_limit: Optional[float] = None

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "name": self.name,
            "color": self.color,
            "icon": self.icon,
            "type": self.type.value,
            "budget_limit": self.budget_limit,
        }

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Category":
        """Create a Category from a database row."""
        return cls(
            id=row["id"],
            name=row["name"],
            color=row["color"],
            icon=row["icon"],
            type=CategoryType(row["type"]),
            budget_limit=row["budgetLimit"],
        )


@dataclass
class CategoryStats:
    """Category with its usage over an optional date range."""

    category: Category
    transaction_count: int
    total_amount: float
    last_used: Optional[date]

    def to_dict(self) -> dict:
        return {
            **self.category.to_dict(),
            "transaction_count": self.transaction_count,
            "total_amount": self.total_amount,
            "last_used": self.last_used.isoformat() if self.last_used else None,
        }


@dataclass
class Budget:
    """
    A spending ceiling for one category over an explicit date range.

    Utilization is never stored; see BudgetRepository.performance().
    """

    id: Optional[int]
    category_id: int
    amount: float
    period: BudgetPeriod
    start_date: date
    end_date: date
    category_name: Optional[str] = None
    category_color: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "category_id": self.category_id,
            "amount": self.amount,
            "period": self.period.value,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "category_name": self.category_name,
            "category_color": self.category_color,
        }

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Budget":
        """Create a Budget from a database row."""
        return cls(
            id=row["id"],
            category_id=row["categoryId"],
            amount=row["amount"],
            period=BudgetPeriod(row["period"]),
            start_date=parse_date(row["startDate"]),
            end_date=parse_date(row["endDate"]),
            category_name=row["categoryName"] if _has(row, "categoryName") else None,
            category_color=row["categoryColor"] if _has(row, "categoryColor") else None,
        )


@dataclass
class Loan:
    """
    Money lent to a third party, tracked as a receivable.

    0 <= returned_amount <= amount holds for every persisted loan.
    """

    id: Optional[int]
    borrower_name: str
    amount: float
    lent_date: date
    returned_amount: float = 0.0
    status: LoanStatus = LoanStatus.ACTIVE
    borrower_contact: Optional[str] = None
    expected_return_date: Optional[date] = None
    actual_return_date: Optional[date] = None
    description: Optional[str] = None
    account_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def outstanding(self) -> float:
        """Amount still owed."""
        return round(self.amount - self.returned_amount, 2)

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "borrower_name": self.borrower_name,
            "borrower_contact": self.borrower_contact,
            "amount": self.amount,
            "lent_date": self.lent_date.isoformat(),
            "expected_return_date": (
                self.expected_return_date.isoformat()
                if self.expected_return_date
                else None
            ),
            "actual_return_date": (
                self.actual_return_date.isoformat() if self.actual_return_date else None
            ),
            "returned_amount": self.returned_amount,
            "outstanding": self.outstanding,
            "status": self.status.value,
            "description": self.description,
            "account_id": self.account_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Loan":
        """Create a Loan from a database row."""
        return cls(
            id=row["id"],
            borrower_name=row["borrowerName"],
            borrower_contact=row["borrowerContact"],
            amount=row["amount"],
            lent_date=parse_date(row["lentDate"]),
            expected_return_date=parse_date(row["expectedReturnDate"]),
            actual_return_date=parse_date(row["actualReturnDate"]),
            returned_amount=row["returnedAmount"],
            status=LoanStatus(row["status"]),
            description=row["description"],
            account_id=row["accountId"],
            created_at=parse_datetime(row["createdAt"]),
            updated_at=parse_datetime(row["updatedAt"]),
        )


@dataclass
class MonthlyBalance:
    """
    Closing balance of one account for one calendar month.

    Rows built from monthly_snapshots() report the live balance when no
    snapshot was written yet; is_snapshot tells the two apart.
    """

    account_id: int
    year: int
    month: int
    closing_balance: float
    name: Optional[str] = None
    last_updated: Optional[datetime] = None
    is_snapshot: bool = True

    def to_dict(self) -> dict:
        return {
            "account_id": self.account_id,
            "name": self.name,
            "year": self.year,
            "month": self.month,
            "closing_balance": self.closing_balance,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
            "is_snapshot": self.is_snapshot,
        }


@dataclass
class Setting:
    key: str
    value: str
    updated_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "value": self.value,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


# =============================================================================
# Read projections
# =============================================================================


@dataclass
class AccountSummary:
    """Active account with its transaction activity."""

    account: Account
    transaction_count: int
    last_transaction_date: Optional[date]

    def to_dict(self) -> dict:
        return {
            **self.account.to_dict(),
            "transaction_count": self.transaction_count,
            "last_transaction_date": (
                self.last_transaction_date.isoformat()
                if self.last_transaction_date
                else None
            ),
        }


@dataclass
class CategorySpend:
    category: str
    amount: float
    color: str

    def to_dict(self) -> dict:
        return {"category": self.category, "amount": self.amount, "color": self.color}


@dataclass
class PriorityBucket:
    total: float = 0.0
    count: int = 0


@dataclass
class NeedWantSummary:
    """Expense totals split by priority; unclassified expenses are left out."""

    needs: PriorityBucket = field(default_factory=PriorityBucket)
    wants: PriorityBucket = field(default_factory=PriorityBucket)

    @property
    def total(self) -> float:
        return self.needs.total + self.wants.total

    def to_dict(self) -> dict:
        return {
            "needs": {"total": self.needs.total, "count": self.needs.count},
            "wants": {"total": self.wants.total, "count": self.wants.count},
        }


@dataclass
class NeedWantCategory:
    category: str
    priority: Priority
    total: float
    count: int

    def to_dict(self) -> dict:
        return {
            "category": self.category,
            "priority": self.priority.value,
            "total": self.total,
            "count": self.count,
        }


@dataclass
class PaymentMethodSpend:
    payment_method: PaymentMethod
    amount: float
    count: int

    def to_dict(self) -> dict:
        return {
            "payment_method": self.payment_method.value,
            "amount": self.amount,
            "count": self.count,
        }


@dataclass
class TransactionStats:
    """Composite figures for a date range."""

    total_transactions: int = 0
    total_income: float = 0.0
    total_expenses: float = 0.0
    net_amount: float = 0.0
    average_transaction: float = 0.0
    expenses_by_payment_method: list[PaymentMethodSpend] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "total_transactions": self.total_transactions,
            "total_income": self.total_income,
            "total_expenses": self.total_expenses,
            "net_amount": self.net_amount,
            "average_transaction": self.average_transaction,
            "expenses_by_payment_method": [
                p.to_dict() for p in self.expenses_by_payment_method
            ],
        }


@dataclass
class ExportSummary:
    total_transactions: int = 0
    total_income: float = 0.0
    total_expense: float = 0.0
    earliest_date: Optional[date] = None
    latest_date: Optional[date] = None

    def to_dict(self) -> dict:
        return {
            "total_transactions": self.total_transactions,
            "total_income": self.total_income,
            "total_expense": self.total_expense,
            "earliest_date": self.earliest_date.isoformat() if self.earliest_date else None,
            "latest_date": self.latest_date.isoformat() if self.latest_date else None,
        }


@dataclass
class BudgetPerformance:
    """
    Spend against one budget inside a query window.

    Spend is summed over the intersection of the budget's own range and
    the query range only.
    """

    budget: Budget
    overlap_start: date
    overlap_end: date
    spent: float
    remaining: float
    percent_used: float
    is_over_budget: bool

    def to_dict(self) -> dict:
        return {
            "budget": self.budget.to_dict(),
            "overlap_start": self.overlap_start.isoformat(),
            "overlap_end": self.overlap_end.isoformat(),
            "spent": self.spent,
            "remaining": self.remaining,
            "percent_used": self.percent_used,
            "is_over_budget": self.is_over_budget,
        }


@dataclass
class BudgetAlert:
    category_name: str
    budget_amount: float
    current_spent: float
    over_amount: float
    period: BudgetPeriod

    def to_dict(self) -> dict:
        return {
            "category_name": self.category_name,
            "budget_amount": self.budget_amount,
            "current_spent": self.current_spent,
            "over_amount": self.over_amount,
            "period": self.period.value,
        }


@dataclass
class BudgetUtilization:
    total_budgets: int = 0
    total_budget_amount: float = 0.0
    total_spent: float = 0.0
    over_budget_count: int = 0
    average_utilization: float = 0.0  # percent

    def to_dict(self) -> dict:
        return {
            "total_budgets": self.total_budgets,
            "total_budget_amount": self.total_budget_amount,
            "total_spent": self.total_spent,
            "over_budget_count": self.over_budget_count,
            "average_utilization": self.average_utilization,
        }


@dataclass
class MonthlyCategorySpend:
    category: str
    month: str  # YYYY-MM
    amount: float


@dataclass
class CategoryTrend:
    category_name: str
    monthly_data: list[MonthlyCategorySpend]
    trend: SpendingTrend
    average_monthly: float

    def to_dict(self) -> dict:
        return {
            "category_name": self.category_name,
            "monthly_data": [
                {"month": m.month, "amount": m.amount} for m in self.monthly_data
            ],
            "trend": self.trend.value,
            "average_monthly": self.average_monthly,
        }


@dataclass
class LoanSummary:
    total_loaned: float = 0.0
    total_returned: float = 0.0
    total_outstanding: float = 0.0
    active_loans: int = 0  # active + partially_paid
    overdue_loans: int = 0

    def to_dict(self) -> dict:
        return {
            "total_loaned": self.total_loaned,
            "total_returned": self.total_returned,
            "total_outstanding": self.total_outstanding,
            "active_loans": self.active_loans,
            "overdue_loans": self.overdue_loans,
        }


@dataclass
class LoanStatistics:
    total_borrowers: int = 0
    average_loan_amount: float = 0.0
    average_repayment_days: float = 0.0
    repayment_rate: float = 0.0  # percent of loans fully paid
    most_reliable_borrower: Optional[str] = None
    largest_outstanding_loan: float = 0.0

    def to_dict(self) -> dict:
        return {
            "total_borrowers": self.total_borrowers,
            "average_loan_amount": self.average_loan_amount,
            "average_repayment_days": self.average_repayment_days,
            "repayment_rate": self.repayment_rate,
            "most_reliable_borrower": self.most_reliable_borrower,
            "largest_outstanding_loan": self.largest_outstanding_loan,
        }


@dataclass
class BorrowerSummary:
    borrower_name: str
    borrower_contact: Optional[str]
    total_loaned: float
    total_returned: float
    outstanding_amount: float
    loan_count: int
    fully_paid_count: int
    repayment_rate: float
    last_loan_date: Optional[date]
    standing: BorrowerStanding

    def to_dict(self) -> dict:
        return {
            "borrower_name": self.borrower_name,
            "borrower_contact": self.borrower_contact,
            "total_loaned": self.total_loaned,
            "total_returned": self.total_returned,
            "outstanding_amount": self.outstanding_amount,
            "loan_count": self.loan_count,
            "fully_paid_count": self.fully_paid_count,
            "repayment_rate": self.repayment_rate,
            "last_loan_date": self.last_loan_date.isoformat() if self.last_loan_date else None,
            "standing": self.standing.value,
        }


@dataclass
class DisplayPreferences:
    """User display preferences; never used in balance computations."""

    currency: str
    decimal_places: int
    theme_preference: str
    app_lock_enabled: bool

    def format_amount(self, amount: float) -> str:
        return f"{self.currency}{amount:,.{self.decimal_places}f}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "currency": self.currency,
            "decimal_places": self.decimal_places,
            "theme_preference": self.theme_preference,
            "app_lock_enabled": self.app_lock_enabled,
        }
