"""
Demo script for the Kakeibo ledger.

Walks through account postings, a loan with repayments and a budget
check against a throwaway in-memory ledger.
"""

from datetime import date, timedelta

from kakeibo.config import IN_MEMORY_DB
from kakeibo.db import LedgerRepository
from kakeibo.errors import LedgerValidationError
from kakeibo.models import AccountType, BudgetPeriod, Priority, TransactionType
from kakeibo.services.recap import RecapService


def main():
    today = date.today()
    ledger = LedgerRepository(db_path=IN_MEMORY_DB)
    prefs = ledger.settings.display_preferences()

    print("=" * 60)
    print("Kakeibo Ledger Demo")
    print("=" * 60)

    # Postings
    wallet = ledger.accounts.create("Wallet", AccountType.CASH, 0)
    txn = ledger.transactions.post(
        40, TransactionType.EXPENSE, "Food", today, priority=Priority.NEED, account_id=wallet
    )
    print(f"\nAfter $40 expense:   {ledger.accounts.get_by_id(wallet).balance:,.2f}")
    ledger.transactions.amend(txn, amount=25)
    print(f"After amend to $25:  {ledger.accounts.get_by_id(wallet).balance:,.2f}")
    ledger.transactions.void(txn)
    print(f"After void:          {ledger.accounts.get_by_id(wallet).balance:,.2f}")

    # Loans
    print("\n" + "-" * 40)
    loan = ledger.loans.create(
        "Alex", 500, today, expected_return_date=today + timedelta(days=5), account_id=wallet
    )
    paid = ledger.loans.record_payment(loan, 200)
    print(f"Loan to Alex: {paid.status.value}, outstanding {paid.outstanding:,.2f}")
    try:
        ledger.loans.record_payment(loan, 400)
    except LedgerValidationError as e:
        print(f"Rejected: {e}")
    print(f"Wallet after loan:   {ledger.accounts.get_by_id(wallet).balance:,.2f}")

    # Budgets
    print("\n" + "-" * 40)
    food = ledger.categories.get_by_name("Food")
    ledger.budgets.create(food.id, 50, BudgetPeriod.MONTHLY, today.replace(day=1), today)
    ledger.transactions.post(80, TransactionType.EXPENSE, "Food", today, account_id=wallet)
    for alert in ledger.budgets.alerts(today):
        print(f"Over budget: {alert.category_name} by {prefs.format_amount(alert.over_amount)}")

    overview = RecapService(ledger).monthly_overview(as_of=today)
    print(f"\nHeadline balance:    {prefs.format_amount(overview.headline_balance)}")
    print(f"Month net:           {prefs.format_amount(overview.net)}")

    ledger.close()


if __name__ == "__main__":
    main()
