from datetime import date

import pytest

from kakeibo.errors import LedgerValidationError, NotFoundError
from kakeibo.models import AccountType, TransactionType


def raw_balance(ledger, account_id):
    return ledger.store.scalar("SELECT balance FROM accounts WHERE id = ?", (account_id,))


class TestCrud:
    def test_create_and_get(self, ledger):
        """New accounts are active and keep the opening balance as given."""
        account_id = ledger.accounts.create(
            "Main Checking", AccountType.CHECKING, 120.5, "EUR", "Bank", "1234"
        )
        account = ledger.accounts.get_by_id(account_id)
        assert account.name == "Main Checking"
        assert account.type is AccountType.CHECKING
        assert account.balance == 120.5
        assert account.currency == "EUR"
        assert account.bank_name == "Bank"
        assert account.account_number == "1234"
        assert account.is_active
        # Opening balance is not a transaction
        assert ledger.transactions.list_by_account(account_id) == []

    def test_create_accepts_raw_type(self, ledger):
        account_id = ledger.accounts.create("Broker", "investment")
        assert ledger.accounts.get_by_id(account_id).type is AccountType.INVESTMENT

    def test_create_rejects_empty_name_and_bad_type(self, ledger):
        with pytest.raises(LedgerValidationError):
            ledger.accounts.create("  ", AccountType.CASH)
        with pytest.raises(LedgerValidationError, match="account type"):
            ledger.accounts.create("Piggy", "piggy_bank")

    def test_list_active_orders_by_name(self, ledger):
        ledger.accounts.create("Zeta", AccountType.CASH)
        ledger.accounts.create("Alpha", AccountType.SAVINGS)
        assert [a.name for a in ledger.accounts.list_active()] == ["Alpha", "Zeta"]

    def test_partial_update_refreshes_timestamp(self, ledger, wallet):
        """Only given fields change; updatedAt always moves forward."""
        before = ledger.accounts.get_by_id(wallet)
        assert ledger.accounts.update(wallet, bank_name="Cash Box")
        after = ledger.accounts.get_by_id(wallet)
        assert after.bank_name == "Cash Box"
        assert after.name == before.name
        assert after.updated_at >= before.updated_at

    def test_update_missing_account_returns_false(self, ledger):
        assert ledger.accounts.update(999, name="Ghost") is False

    def test_update_rejects_unknown_fields(self, ledger, wallet):
        with pytest.raises(LedgerValidationError, match="Unknown"):
            ledger.accounts.update(wallet, colour="red")

    def test_update_coerces_balance(self, ledger, wallet):
        ledger.accounts.update(wallet, balance="12.345")
        assert raw_balance(ledger, wallet) == 12.35
        with pytest.raises(LedgerValidationError, match="Invalid balance"):
            ledger.accounts.update(wallet, balance="abc")
        assert raw_balance(ledger, wallet) == 12.35

    def test_reads_accept_utc_z_timestamps(self, ledger):
        """Rows stamped like 2024-01-15T10:00:00.000Z load as aware datetimes."""
        ledger.store.execute(
            "INSERT INTO accounts (name, type, balance, currency, isActive, createdAt, updatedAt) "
            "VALUES ('Old', 'cash', 5, 'INR', 1, "
            "'2024-01-15T10:00:00.000Z', '2024-01-15T10:00:00.000Z')"
        )
        (account,) = ledger.accounts.list_active()
        assert account.created_at.year == 2024
        assert account.created_at.utcoffset().total_seconds() == 0

    def test_soft_delete_hides_account_but_keeps_history(self, ledger, wallet):
        """Inactive accounts drop out of reads and totals, transactions stay."""
        ledger.transactions.post(
            10, TransactionType.EXPENSE, "Food", date(2024, 1, 2), account_id=wallet
        )
        other = ledger.accounts.create("Savings", AccountType.SAVINGS, 100)

        assert ledger.accounts.soft_delete(wallet)
        assert ledger.accounts.get_by_id(wallet) is None
        assert [a.id for a in ledger.accounts.list_active()] == [other]
        assert ledger.accounts.total_active_balance() == 100
        assert len(ledger.transactions.list_by_account(wallet)) == 1

    def test_list_by_type(self, ledger):
        ledger.accounts.create("Visa", AccountType.CREDIT_CARD)
        ledger.accounts.create("Cash", AccountType.CASH)
        assert [a.name for a in ledger.accounts.list_by_type("credit_card")] == ["Visa"]

    def test_initialize_defaults_only_on_empty_table(self, ledger):
        assert ledger.accounts.initialize_defaults() == 4
        assert ledger.accounts.initialize_defaults() == 0
        assert len(ledger.accounts.list_active()) == 4


class TestApplyDelta:
    def test_income_adds_expense_subtracts(self, ledger, wallet):
        assert ledger.accounts.apply_delta(wallet, 50, TransactionType.INCOME) == 50
        assert ledger.accounts.apply_delta(wallet, 20.25, TransactionType.EXPENSE) == 29.75

    def test_missing_account_raises(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.accounts.apply_delta(999, 10, TransactionType.INCOME)

    def test_negative_amount_rejected(self, ledger, wallet):
        with pytest.raises(LedgerValidationError):
            ledger.accounts.apply_delta(wallet, -5, TransactionType.INCOME)

    def test_sub_cent_delta_is_rounded_before_applying(self, ledger, wallet):
        assert ledger.accounts.apply_delta(wallet, 0.004, TransactionType.INCOME) == 0
        assert ledger.accounts.apply_delta(wallet, 0.006, TransactionType.INCOME) == 0.01

    def test_works_on_inactive_account(self, ledger, wallet):
        """Retired accounts can still be balanced by reversals."""
        ledger.accounts.soft_delete(wallet)
        ledger.accounts.apply_delta(wallet, 5, TransactionType.INCOME)
        assert raw_balance(ledger, wallet) == 5


class TestTotals:
    def test_total_active_balance(self, ledger):
        ledger.accounts.create("A", AccountType.CASH, 10.1)
        ledger.accounts.create("B", AccountType.SAVINGS, 20.2)
        assert ledger.accounts.total_active_balance() == 30.3

    def test_total_is_zero_without_accounts(self, ledger):
        assert ledger.accounts.total_active_balance() == 0.0

    def test_summary_counts_transactions(self, ledger, wallet):
        ledger.transactions.post(5, "expense", "Food", date(2024, 1, 1), account_id=wallet)
        ledger.transactions.post(7, "expense", "Food", date(2024, 2, 1), account_id=wallet)
        (summary,) = ledger.accounts.summary()
        assert summary.transaction_count == 2
        assert summary.last_transaction_date == date(2024, 2, 1)


class TestSnapshots:
    def test_upsert_keeps_one_row_and_last_value(self, ledger, wallet):
        """Writing the same (account, year, month) twice replaces the value."""
        ledger.accounts.write_monthly_snapshot(wallet, 2024, 3, 100)
        ledger.accounts.write_monthly_snapshot(wallet, 2024, 3, 250)
        rows = ledger.store.query(
            "SELECT closingBalance FROM account_balance WHERE accountId = ?", (wallet,)
        )
        assert [r["closingBalance"] for r in rows] == [250]

    def test_invalid_month_rejected(self, ledger, wallet):
        with pytest.raises(LedgerValidationError):
            ledger.accounts.write_monthly_snapshot(wallet, 2024, 13, 1)

    def test_current_period_falls_back_to_live_balances(self, ledger, today):
        ledger.accounts.create("A", AccountType.CASH, 40)
        ledger.accounts.create("B", AccountType.CASH, 60)
        assert ledger.accounts.current_period_balance(as_of=today) == 100

    def test_current_period_prefers_snapshots(self, ledger, today):
        a = ledger.accounts.create("A", AccountType.CASH, 40)
        ledger.accounts.create("B", AccountType.CASH, 60)
        ledger.accounts.write_monthly_snapshot(a, today.year, today.month, 15)
        # Only written snapshots are summed
        assert ledger.accounts.current_period_balance(as_of=today) == 15

    def test_snapshots_of_other_months_ignored(self, ledger, today):
        a = ledger.accounts.create("A", AccountType.CASH, 40)
        ledger.accounts.write_monthly_snapshot(a, today.year - 1, today.month, 999)
        assert ledger.accounts.current_period_balance(as_of=today) == 40

    def test_monthly_snapshots_coalesce_live_balance(self, ledger):
        """Accounts without a snapshot report their live balance."""
        b = ledger.accounts.create("Bravo", AccountType.CASH, 70)
        a = ledger.accounts.create("Alpha", AccountType.CASH, 30)
        ledger.accounts.write_monthly_snapshot(b, 2024, 2, 55)

        rows = ledger.accounts.monthly_snapshots(2024, 2)
        assert [(r.account_id, r.closing_balance, r.is_snapshot) for r in rows] == [
            (a, 30, False),
            (b, 55, True),
        ]

    def test_balance_history_newest_first(self, ledger, wallet):
        ledger.accounts.write_monthly_snapshot(wallet, 2023, 12, 1)
        ledger.accounts.write_monthly_snapshot(wallet, 2024, 2, 3)
        ledger.accounts.write_monthly_snapshot(wallet, 2024, 1, 2)
        history = ledger.accounts.balance_history(wallet)
        assert [(h.year, h.month) for h in history] == [(2024, 2), (2024, 1), (2023, 12)]
        assert len(ledger.accounts.balance_history(wallet, start_year=2024)) == 2


def test_reads_return_safe_defaults_when_store_closed(ledger, wallet):
    """Read paths never raise on storage faults."""
    ledger.close()
    assert ledger.accounts.list_active() == []
    assert ledger.accounts.total_active_balance() == 0.0
    assert ledger.accounts.monthly_snapshots(2024, 1) == []
    assert ledger.accounts.get_by_id(wallet) is None
