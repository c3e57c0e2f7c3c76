"""
Loans repository module for money lent to third parties.

A loan is a receivable: creating one optionally debits the account the
money came from, and each repayment optionally posts an income
transaction back into that account. Status follows the LoanStatus state
machine; see kakeibo.models.loan.
"""

import logging
from datetime import date, timedelta
from typing import Any, Optional

from kakeibo.config import (
    BORROWER_POOR_BELOW,
    BORROWER_WARNING_BELOW,
    DAYS_PER_MONTH,
    DAYS_PER_YEAR,
    DEFAULT_UPCOMING_DAYS,
    ERROR_MESSAGES,
    LOAN_REPAYMENT_CATEGORY,
)
from kakeibo.errors import LedgerValidationError, NotFoundError, StorageError
from kakeibo.models import (
    BorrowerStanding,
    InterestPeriod,
    LoanStatus,
    PaymentMethod,
    TransactionType,
    coerce_enum,
    coerce_optional_enum,
)

from .accounts import AccountRepository
from .base import LedgerStore, like_pattern
from .models import (
    BorrowerSummary,
    DateLike,
    Loan,
    LoanStatistics,
    LoanSummary,
    as_amount,
    as_iso_date,
    parse_date,
    utc_now,
)
from .transactions import TransactionRepository

logger = logging.getLogger(__name__)

OPEN_STATUSES = tuple(status.value for status in LoanStatus if status.is_open)

# Editable after creation; amount and returned amount never are
UPDATABLE_FIELDS = {
    "borrower_name": "borrowerName",
    "borrower_contact": "borrowerContact",
    "expected_return_date": "expectedReturnDate",
    "description": "description",
}


def borrower_standing(
    repayment_rate: float, outstanding: float, returned: float
) -> BorrowerStanding:
    """Classify a borrower from their repayment rate (percent) and balance."""
    if repayment_rate < BORROWER_POOR_BELOW:
        return BorrowerStanding.POOR
    if repayment_rate < BORROWER_WARNING_BELOW or outstanding > returned:
        return BorrowerStanding.WARNING
    return BorrowerStanding.GOOD


class LoanRepository:
    """
    Repository for loans, repayments and loan analytics.

    Args:
        store: Shared ledger store
        accounts: Account repository, debited when a loan is created
        transactions: Transaction repository, credited on each repayment
    """

    def __init__(
        self,
        store: LedgerStore,
        accounts: AccountRepository,
        transactions: TransactionRepository,
    ):
        self.store = store
        self.accounts = accounts
        self.transactions = transactions

    # =========================================================================
    # Writes
    # =========================================================================

    def create(
        self,
        borrower_name: str,
        amount: float,
        lent_date: Optional[DateLike] = None,
        expected_return_date: Optional[DateLike] = None,
        borrower_contact: Optional[str] = None,
        description: Optional[str] = None,
        account_id: Optional[int] = None,
    ) -> int:
        """
        Record a new loan.

        When account_id is given the principal is debited from that
        account in the same atomic unit as the insert.

        Args:
            borrower_name: Who received the money
            amount: Principal, must be positive
            lent_date: Day the money was lent (defaults to today)
            expected_return_date: Agreed return day, if any
            borrower_contact: Phone, email, etc.
            description: Free text
            account_id: Account the money left from

        Returns:
            ID of the new loan

        Raises:
            LedgerValidationError: On an empty name or non-positive amount
            NotFoundError: If account_id does not exist
        """
        if not borrower_name or not borrower_name.strip():
            raise LedgerValidationError("Borrower name cannot be empty")
        amount = as_amount(amount, "loan amount")

        lent = as_iso_date(lent_date or date.today(), "lent date")
        expected = (
            as_iso_date(expected_return_date, "expected return date")
            if expected_return_date
            else None
        )
        now = utc_now().isoformat()

        try:
            with self.store.atomic():
                if account_id is not None:
                    self.accounts.require(account_id)
                cursor = self.store.execute(
                    """
                    INSERT INTO loans
                    (borrowerName, borrowerContact, amount, lentDate,
                     expectedReturnDate, returnedAmount, status, description,
                     accountId, createdAt, updatedAt)
                    VALUES (?, ?, ?, ?, ?, 0, ?, ?, ?, ?, ?)
                    """,
                    (
                        borrower_name.strip(),
                        borrower_contact,
                        amount,
                        lent,
                        expected,
                        LoanStatus.ACTIVE.value,
                        description,
                        account_id,
                        now,
                        now,
                    ),
                )
                loan_id = cursor.lastrowid
                if account_id is not None:
                    self.accounts.apply_delta(account_id, amount, TransactionType.EXPENSE)

            logger.info(
                f"Loan {loan_id} created: {amount} to '{borrower_name.strip()}' "
                f"(account: {account_id})"
            )
            return loan_id
        except (LedgerValidationError, NotFoundError):
            raise
        except Exception as e:
            logger.error(f"Error creating loan: {e}", exc_info=True)
            raise

    def record_payment(
        self,
        loan_id: int,
        amount: float,
        payment_date: Optional[DateLike] = None,
    ) -> Loan:
        """
        Record a repayment against a loan.

        Overpayments are rejected, never clamped. If the loan has an
        account, an income transaction in the "Loan Repayment" category is
        posted to it; the loan update and the posting are one atomic unit.

        Args:
            loan_id: Loan being repaid
            amount: Amount repaid, must be positive
            payment_date: Day of the repayment (defaults to today)

        Returns:
            The updated Loan

        Raises:
            LedgerValidationError: On a non-positive amount or an overpayment
            NotFoundError: If the loan does not exist
        """
        amount = as_amount(amount, "payment amount", positive=False)
        if amount <= 0:
            raise LedgerValidationError(ERROR_MESSAGES["non_positive_payment"])

        loan = self.get_by_id(loan_id, raise_on_error=True)
        if loan is None:
            raise NotFoundError(f"Loan {loan_id} not found")

        principal = round(loan.amount, 2)
        new_returned = round(loan.returned_amount + amount, 2)
        if new_returned > principal:
            raise LedgerValidationError(
                f"{ERROR_MESSAGES['overpayment']} "
                f"(outstanding {loan.outstanding}, payment {amount})"
            )

        paid_on = as_iso_date(payment_date or date.today(), "payment date")
        new_status = LoanStatus.after_payment(new_returned, principal)
        actual_return = paid_on if new_status is LoanStatus.FULLY_PAID else None

        try:
            with self.store.atomic():
                self.store.execute(
                    """
                    UPDATE loans
                    SET returnedAmount = ?, status = ?,
                        actualReturnDate = COALESCE(?, actualReturnDate),
                        updatedAt = ?
                    WHERE id = ?
                    """,
                    (
                        new_returned,
                        new_status.value,
                        actual_return,
                        utc_now().isoformat(),
                        loan_id,
                    ),
                )
                if loan.account_id is not None:
                    self.transactions.post(
                        amount,
                        TransactionType.INCOME,
                        LOAN_REPAYMENT_CATEGORY,
                        paid_on,
                        PaymentMethod.CASH,
                        description=f"Loan repayment from {loan.borrower_name}",
                        account_id=loan.account_id,
                    )

            logger.info(
                f"Loan {loan_id} repayment {amount}: "
                f"{loan.returned_amount} -> {new_returned} of {loan.amount} "
                f"({new_status.value})"
            )
            return self.get_by_id(loan_id, raise_on_error=True)
        except (LedgerValidationError, NotFoundError):
            raise
        except Exception as e:
            logger.error(f"Error recording payment on loan {loan_id}: {e}", exc_info=True)
            raise

    def mark_overdue_sweep(self, as_of: Optional[DateLike] = None) -> int:
        """
        Flag open loans whose expected return date has passed.

        Idempotent; safe to call on every refresh.

        Returns:
            Number of loans newly marked overdue
        """
        today = as_iso_date(as_of or date.today(), "as_of")
        try:
            with self.store.atomic():
                cursor = self.store.execute(
                    f"""
                    UPDATE loans
                    SET status = ?, updatedAt = ?
                    WHERE status IN ({', '.join('?' for _ in OPEN_STATUSES)})
                      AND expectedReturnDate IS NOT NULL
                      AND expectedReturnDate < ?
                    """,
                    (LoanStatus.OVERDUE.value, utc_now().isoformat(), *OPEN_STATUSES, today),
                )
            if cursor.rowcount:
                logger.info(f"Marked {cursor.rowcount} loans overdue as of {today}")
            return cursor.rowcount
        except Exception as e:
            logger.error(f"Error running overdue sweep: {e}", exc_info=True)
            raise

    def update(
        self, loan_id: int, as_of: Optional[date] = None, **fields: Any
    ) -> Loan:
        """
        Edit a loan's descriptive fields.

        Unless the loan is fully paid its status is re-derived afterwards,
        so moving the expected return date into the future lifts an
        overdue flag and moving it into the past sets one.

        Raises:
            NotFoundError: If the loan does not exist
            LedgerValidationError: On unknown fields or invalid values
        """
        unknown = set(fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise LedgerValidationError(
                f"Unknown loan fields: {', '.join(sorted(unknown))}"
            )
        if "borrower_name" in fields and (
            not fields["borrower_name"] or not fields["borrower_name"].strip()
        ):
            raise LedgerValidationError("Borrower name cannot be empty")
        if fields.get("expected_return_date"):
            fields["expected_return_date"] = as_iso_date(
                fields["expected_return_date"], "expected return date"
            )

        loan = self.get_by_id(loan_id, raise_on_error=True)
        if loan is None:
            raise NotFoundError(f"Loan {loan_id} not found")
        if not fields:
            logger.warning(f"Update of loan {loan_id} with no fields")
            return loan

        expected = (
            parse_date(fields["expected_return_date"])
            if "expected_return_date" in fields
            else loan.expected_return_date
        )
        status = loan.status
        if status is not LoanStatus.FULLY_PAID:
            status = LoanStatus.derive(loan.returned_amount, loan.amount, expected, as_of)

        assignments = [f"{UPDATABLE_FIELDS[key]} = ?" for key in fields]
        assignments += ["status = ?", "updatedAt = ?"]
        params = list(fields.values()) + [status.value, utc_now().isoformat(), loan_id]

        try:
            self.store.execute(
                f"UPDATE loans SET {', '.join(assignments)} WHERE id = ?", params
            )
            logger.info(f"Updated loan {loan_id}: {sorted(fields)} ({status.value})")
            return self.get_by_id(loan_id, raise_on_error=True)
        except Exception as e:
            logger.error(f"Error updating loan {loan_id}: {e}", exc_info=True)
            raise

    def remove(self, loan_id: int) -> None:
        """
        Delete a loan.

        Repayment transactions already posted to an account stay in place
        and are not reversed.

        Raises:
            NotFoundError: If the loan does not exist
        """
        loan = self.get_by_id(loan_id, raise_on_error=True)
        if loan is None:
            raise NotFoundError(f"Loan {loan_id} not found")

        if loan.returned_amount > 0 and loan.account_id is not None:
            logger.warning(
                f"Deleting loan {loan_id} leaves {loan.returned_amount} of repayment "
                f"transactions on account {loan.account_id} in place"
            )

        try:
            self.store.execute("DELETE FROM loans WHERE id = ?", (loan_id,))
            logger.info(f"Deleted loan {loan_id} ('{loan.borrower_name}')")
        except Exception as e:
            logger.error(f"Error deleting loan {loan_id}: {e}", exc_info=True)
            raise

    # =========================================================================
    # Reads
    # =========================================================================

    def get_by_id(self, loan_id: int, raise_on_error: bool = False) -> Optional[Loan]:
        """Get a loan by ID."""
        try:
            row = self.store.first("SELECT * FROM loans WHERE id = ?", (loan_id,))
            return Loan.from_row(row) if row else None
        except StorageError as e:
            logger.error(f"Error getting loan {loan_id}: {e}", exc_info=True)
            if raise_on_error:
                raise
            return None

    def _list(self, where: str = "", params: tuple = ()) -> list[Loan]:
        rows = self.store.query(
            f"SELECT * FROM loans {where} ORDER BY lentDate DESC, id DESC", params
        )
        return [Loan.from_row(row) for row in rows]

    def list_all(self, status: Optional[LoanStatus] = None) -> list[Loan]:
        """All loans, newest first, optionally filtered by status."""
        status = coerce_optional_enum(LoanStatus, status, "loan status")
        try:
            if status is None:
                return self._list()
            return self._list("WHERE status = ?", (status.value,))
        except StorageError as e:
            logger.error(f"Error listing loans: {e}", exc_info=True)
            return []

    def list_by_borrower(self, term: str) -> list[Loan]:
        """Loans whose borrower name contains term (case-insensitive)."""
        if not term or not term.strip():
            return []
        try:
            return self._list(
                "WHERE borrowerName LIKE ? ESCAPE '\\'", (like_pattern(term.strip()),)
            )
        except StorageError as e:
            logger.error(f"Error listing loans by borrower: {e}", exc_info=True)
            return []

    def list_by_account(self, account_id: int) -> list[Loan]:
        """Loans funded from one account."""
        try:
            return self._list("WHERE accountId = ?", (account_id,))
        except StorageError as e:
            logger.error(f"Error listing loans by account: {e}", exc_info=True)
            return []

    def upcoming_due(
        self, days: int = DEFAULT_UPCOMING_DAYS, as_of: Optional[date] = None
    ) -> list[Loan]:
        """Open loans expected back within the next `days` days, soonest first."""
        if as_of is None:
            as_of = date.today()
        horizon = as_of + timedelta(days=days)

        try:
            rows = self.store.query(
                f"""
                SELECT * FROM loans
                WHERE status IN ({', '.join('?' for _ in OPEN_STATUSES)})
                  AND expectedReturnDate IS NOT NULL
                  AND expectedReturnDate BETWEEN ? AND ?
                ORDER BY expectedReturnDate ASC, id ASC
                """,
                (*OPEN_STATUSES, as_of.isoformat(), horizon.isoformat()),
            )
            return [Loan.from_row(row) for row in rows]
        except StorageError as e:
            logger.error(f"Error listing upcoming loans: {e}", exc_info=True)
            return []

    def summary(self) -> LoanSummary:
        """Portfolio totals over every loan."""
        try:
            row = self.store.first(
                f"""
                SELECT SUM(amount) AS totalLoaned,
                       SUM(returnedAmount) AS totalReturned,
                       SUM(amount - returnedAmount) AS totalOutstanding,
                       COUNT(CASE WHEN status IN ({', '.join('?' for _ in OPEN_STATUSES)})
                             THEN 1 END) AS activeLoans,
                       COUNT(CASE WHEN status = ? THEN 1 END) AS overdueLoans
                FROM loans
                """,
                (*OPEN_STATUSES, LoanStatus.OVERDUE.value),
            )
        except StorageError as e:
            logger.error(f"Error building loan summary: {e}", exc_info=True)
            return LoanSummary()

        return LoanSummary(
            total_loaned=round(row["totalLoaned"] or 0.0, 2),
            total_returned=round(row["totalReturned"] or 0.0, 2),
            total_outstanding=round(row["totalOutstanding"] or 0.0, 2),
            active_loans=row["activeLoans"],
            overdue_loans=row["overdueLoans"],
        )

    def borrower_summary(self) -> list[BorrowerSummary]:
        """Per-borrower totals and standing, largest outstanding first."""
        try:
            rows = self.store.query(
                """
                SELECT borrowerName,
                       MAX(borrowerContact) AS borrowerContact,
                       SUM(amount) AS totalLoaned,
                       SUM(returnedAmount) AS totalReturned,
                       SUM(amount - returnedAmount) AS outstandingAmount,
                       COUNT(*) AS loanCount,
                       COUNT(CASE WHEN status = 'fully_paid' THEN 1 END) AS fullyPaidCount,
                       MAX(lentDate) AS lastLoanDate
                FROM loans
                GROUP BY borrowerName
                ORDER BY outstandingAmount DESC, totalLoaned DESC
                """
            )
        except StorageError as e:
            logger.error(f"Error building borrower summary: {e}", exc_info=True)
            return []

        summaries = []
        for row in rows:
            rate = round(row["fullyPaidCount"] / row["loanCount"] * 100, 2)
            outstanding = round(row["outstandingAmount"], 2)
            returned = round(row["totalReturned"], 2)
            summaries.append(
                BorrowerSummary(
                    borrower_name=row["borrowerName"],
                    borrower_contact=row["borrowerContact"],
                    total_loaned=round(row["totalLoaned"], 2),
                    total_returned=returned,
                    outstanding_amount=outstanding,
                    loan_count=row["loanCount"],
                    fully_paid_count=row["fullyPaidCount"],
                    repayment_rate=rate,
                    last_loan_date=parse_date(row["lastLoanDate"]),
                    standing=borrower_standing(rate, outstanding, returned),
                )
            )
        return summaries

    def statistics(self) -> LoanStatistics:
        """Lending statistics across all borrowers."""
        try:
            stats = self.store.first(
                """
                SELECT COUNT(DISTINCT borrowerName) AS totalBorrowers,
                       AVG(amount) AS averageLoanAmount,
                       COUNT(CASE WHEN status = 'fully_paid' THEN 1 END) AS fullyPaidCount,
                       COUNT(*) AS totalLoans,
                       MAX(amount - returnedAmount) AS largestOutstanding
                FROM loans
                """
            )
            repayment_days = self.store.scalar(
                """
                SELECT AVG(julianday(actualReturnDate) - julianday(lentDate))
                FROM loans
                WHERE status = 'fully_paid' AND actualReturnDate IS NOT NULL
                """,
                default=0.0,
            )
            # Only borrowers with more than one loan qualify
            reliable = self.store.scalar(
                """
                SELECT borrowerName
                FROM loans
                GROUP BY borrowerName
                HAVING COUNT(*) > 1
                ORDER BY CAST(SUM(CASE WHEN status = 'fully_paid' THEN 1 ELSE 0 END)
                              AS REAL) / COUNT(*) DESC,
                         COUNT(*) DESC
                LIMIT 1
                """
            )
        except StorageError as e:
            logger.error(f"Error computing loan statistics: {e}", exc_info=True)
            return LoanStatistics()

        total = stats["totalLoans"]
        return LoanStatistics(
            total_borrowers=stats["totalBorrowers"],
            average_loan_amount=round(stats["averageLoanAmount"] or 0.0, 2),
            average_repayment_days=round(repayment_days, 1),
            repayment_rate=round(stats["fullyPaidCount"] / total * 100, 2) if total else 0.0,
            most_reliable_borrower=reliable,
            largest_outstanding_loan=round(stats["largestOutstanding"] or 0.0, 2),
        )

    def calculate_interest(
        self,
        loan_id: int,
        rate: float,
        period: InterestPeriod = InterestPeriod.YEARLY,
        as_of: Optional[date] = None,
    ) -> float:
        """
        Simple interest on the outstanding principal since the lent date.

        For display only; nothing is persisted.

        Args:
            loan_id: Loan to evaluate
            rate: Interest rate in percent per period
            period: Period the rate applies to
            as_of: Day to compute up to (defaults to today)

        Returns:
            Interest rounded to cents, 0.0 for a repaid loan

        Raises:
            NotFoundError: If the loan does not exist
        """
        period = coerce_enum(InterestPeriod, period, "interest period")
        if as_of is None:
            as_of = date.today()

        loan = self.get_by_id(loan_id)
        if loan is None:
            raise NotFoundError(f"Loan {loan_id} not found")

        principal = loan.outstanding
        if principal <= 0:
            return 0.0

        days = max((as_of - loan.lent_date).days, 0)
        if period is InterestPeriod.DAILY:
            periods = days
        elif period is InterestPeriod.MONTHLY:
            periods = days / DAYS_PER_MONTH
        else:
            periods = days / DAYS_PER_YEAR

        return round(principal * (rate / 100) * periods, 2)
