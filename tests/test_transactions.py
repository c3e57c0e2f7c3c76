from datetime import date

import pytest

from kakeibo.config import UNCATEGORIZED_COLOR
from kakeibo.errors import LedgerValidationError, NotFoundError
from kakeibo.models import AccountType, PaymentMethod, Priority, TransactionType

JAN_1 = date(2024, 1, 1)
JAN_31 = date(2024, 1, 31)


def balance(ledger, account_id):
    return ledger.store.scalar("SELECT balance FROM accounts WHERE id = ?", (account_id,))


class TestPosting:
    def test_wallet_scenario(self, ledger, wallet):
        """Post 40, amend to 25, void: the balance follows each step."""
        txn = ledger.transactions.post(
            40, TransactionType.EXPENSE, "Food", JAN_1, account_id=wallet
        )
        assert balance(ledger, wallet) == -40

        ledger.transactions.amend(txn, amount=25)
        assert balance(ledger, wallet) == -25

        ledger.transactions.void(txn)
        assert balance(ledger, wallet) == 0
        assert ledger.transactions.get_by_id(txn) is None

    def test_post_without_account_leaves_balances(self, ledger, wallet):
        ledger.transactions.post(100, TransactionType.INCOME, "Salary", JAN_1)
        assert balance(ledger, wallet) == 0

    def test_post_stores_fields(self, ledger, wallet):
        txn_id = ledger.transactions.post(
            12.5,
            "expense",
            "Restaurant",
            "2024-01-05",
            PaymentMethod.DEBIT_CARD,
            description="Lunch",
            account_id=wallet,
            priority="want",
        )
        txn = ledger.transactions.get_by_id(txn_id)
        assert txn.amount == 12.5
        assert txn.type is TransactionType.EXPENSE
        assert txn.date == date(2024, 1, 5)
        assert txn.payment_method is PaymentMethod.DEBIT_CARD
        assert txn.priority is Priority.WANT
        assert txn.signed_amount == -12.5

    @pytest.mark.parametrize("amount", [0, -3, "abc"])
    def test_rejects_non_positive_amount(self, ledger, amount):
        with pytest.raises(LedgerValidationError):
            ledger.transactions.post(amount, TransactionType.EXPENSE, "Food", JAN_1)

    def test_rejects_priority_on_income(self, ledger):
        with pytest.raises(LedgerValidationError, match="Priority"):
            ledger.transactions.post(
                10, TransactionType.INCOME, "Salary", JAN_1, priority=Priority.NEED
            )

    def test_rejects_unknown_payment_method(self, ledger):
        with pytest.raises(LedgerValidationError, match="payment method"):
            ledger.transactions.post(10, "expense", "Food", JAN_1, "cheque")

    def test_missing_account_aborts_whole_unit(self, ledger):
        """No transaction row survives a failed balance adjustment."""
        with pytest.raises(NotFoundError):
            ledger.transactions.post(10, TransactionType.EXPENSE, "Food", JAN_1, account_id=999)
        assert ledger.transactions.list_all() == []


class TestAmend:
    def test_move_between_accounts(self, ledger, wallet):
        """Amending the account reverses the old effect and applies the new one."""
        bank = ledger.accounts.create("Bank", AccountType.CHECKING, 500)
        txn = ledger.transactions.post(30, "expense", "Food", JAN_1, account_id=wallet)

        ledger.transactions.amend(txn, account_id=bank)
        assert balance(ledger, wallet) == 0
        assert balance(ledger, bank) == 470

    def test_detach_from_account(self, ledger, wallet):
        txn = ledger.transactions.post(30, "income", "Salary", JAN_1, account_id=wallet)
        ledger.transactions.amend(txn, account_id=None)
        assert balance(ledger, wallet) == 0

    def test_flip_type(self, ledger, wallet):
        txn = ledger.transactions.post(30, "expense", "Food", JAN_1, account_id=wallet)
        ledger.transactions.amend(txn, type=TransactionType.INCOME)
        assert balance(ledger, wallet) == 30

    def test_amend_to_income_clears_priority(self, ledger):
        txn = ledger.transactions.post(30, "expense", "Food", JAN_1, priority="need")
        amended = ledger.transactions.amend(txn, type="income", category="Salary")
        assert amended.priority is None
        assert amended.category == "Salary"

    def test_amend_with_priority_on_income_rejected(self, ledger):
        txn = ledger.transactions.post(30, "income", "Salary", JAN_1)
        with pytest.raises(LedgerValidationError):
            ledger.transactions.amend(txn, priority="want")

    def test_failed_amend_leaves_everything_untouched(self, ledger, wallet):
        """Moving to a missing account rolls back the reversal too."""
        txn = ledger.transactions.post(30, "expense", "Food", JAN_1, account_id=wallet)
        with pytest.raises(NotFoundError):
            ledger.transactions.amend(txn, account_id=999)
        assert balance(ledger, wallet) == -30
        assert ledger.transactions.get_by_id(txn).account_id == wallet

    def test_invalid_amend_rejected_before_writing(self, ledger, wallet):
        txn = ledger.transactions.post(30, "expense", "Food", JAN_1, account_id=wallet)
        with pytest.raises(LedgerValidationError):
            ledger.transactions.amend(txn, amount=-1)
        assert balance(ledger, wallet) == -30

    def test_amend_missing_transaction(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.transactions.amend(999, amount=1)

    def test_amend_unknown_field(self, ledger):
        txn = ledger.transactions.post(30, "expense", "Food", JAN_1)
        with pytest.raises(LedgerValidationError, match="Unknown"):
            ledger.transactions.amend(txn, colour="red")

    def test_void_missing_transaction(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.transactions.void(999)


def test_balance_conservation(ledger):
    """Final balances equal opening balance plus live signed amounts."""
    a = ledger.accounts.create("A", AccountType.CASH, 100)
    b = ledger.accounts.create("B", AccountType.SAVINGS, 50)
    post = ledger.transactions.post

    t1 = post(20, "expense", "Food", JAN_1, account_id=a)
    t2 = post(75.5, "income", "Salary", JAN_1, account_id=a)
    t3 = post(12.25, "expense", "Transport", JAN_1, account_id=b)
    t4 = post(8, "expense", "Gift", JAN_1, account_id=b)
    post(3, "expense", "Food", JAN_1)

    ledger.transactions.amend(t1, amount=22, account_id=b)
    ledger.transactions.amend(t2, type="expense", category="Shopping")
    ledger.transactions.void(t3)
    ledger.transactions.amend(t4, account_id=a, type="income", category="Investment")
    ledger.transactions.amend(t4, amount=9.75)

    for account_id, opening in ((a, 100), (b, 50)):
        live = sum(t.signed_amount for t in ledger.transactions.list_by_account(account_id))
        assert balance(ledger, account_id) == pytest.approx(opening + live)


def test_sub_cent_amounts_are_stored_as_applied(ledger, wallet):
    """Amounts are rounded to cents once, so stored and applied values agree."""
    for _ in range(100):
        ledger.transactions.post(0.006, "expense", "Food", JAN_1, account_id=wallet)
    txn_id = ledger.transactions.post("2.499", "income", "Salary", JAN_1, account_id=wallet)

    assert ledger.transactions.get_by_id(txn_id).amount == 2.5
    live = sum(t.signed_amount for t in ledger.transactions.list_by_account(wallet))
    assert balance(ledger, wallet) == pytest.approx(live)
    assert balance(ledger, wallet) == pytest.approx(1.5)


def test_amount_rounding_to_zero_rejected(ledger, wallet):
    with pytest.raises(LedgerValidationError, match="positive"):
        ledger.transactions.post(0.004, "expense", "Food", JAN_1, account_id=wallet)
    assert balance(ledger, wallet) == 0
    assert ledger.transactions.list_all() == []


class TestReads:
    @pytest.fixture
    def seeded(self, ledger, wallet):
        post = ledger.transactions.post
        post(50, "expense", "Food", date(2024, 1, 3), description="Groceries", priority="need")
        post(20, "expense", "Free time", date(2024, 1, 10), description="Cinema", priority="want")
        post(15, "expense", "Food", date(2024, 1, 20), description="100% juice", account_id=wallet)
        post(30, "expense", "Mystery", date(2024, 1, 25), payment_method="credit_card")
        post(1000, "income", "Salary", date(2024, 1, 28))
        post(99, "expense", "Food", date(2024, 2, 2), priority="need")
        return ledger

    def test_list_by_range_newest_first(self, seeded):
        rows = seeded.transactions.list_by_range(JAN_1, JAN_31)
        assert [t.date.day for t in rows] == [28, 25, 20, 10, 3]

    def test_list_by_range_with_category(self, seeded):
        rows = seeded.transactions.list_by_range(JAN_1, JAN_31, include_category=True)
        by_category = {t.category: t.category_color for t in rows}
        assert by_category["Mystery"] == UNCATEGORIZED_COLOR
        assert by_category["Food"] == seeded.categories.get_by_name("Food").color

    def test_list_by_account(self, seeded, wallet):
        assert [t.amount for t in seeded.transactions.list_by_account(wallet)] == [15]

    def test_list_by_category_with_range(self, seeded):
        assert len(seeded.transactions.list_by_category("Food")) == 3
        assert len(seeded.transactions.list_by_category("Food", JAN_1, JAN_31)) == 2

    def test_search_matches_literally(self, seeded):
        """Wildcards in the search term are not expanded."""
        assert [t.description for t in seeded.transactions.search("100%")] == ["100% juice"]
        assert len(seeded.transactions.search("food")) == 3
        assert seeded.transactions.search("  ") == []

    def test_sum_by_type(self, seeded):
        assert seeded.transactions.sum_by_type("expense", JAN_1, JAN_31) == 115
        assert seeded.transactions.sum_by_type("income", JAN_1, JAN_31) == 1000
        assert seeded.transactions.sum_by_type("income", date(2023, 1, 1), date(2023, 1, 31)) == 0

    def test_category_summary(self, seeded):
        summary = seeded.transactions.category_summary(JAN_1, JAN_31)
        assert [(s.category, s.amount) for s in summary] == [
            ("Food", 65),
            ("Mystery", 30),
            ("Free time", 20),
        ]
        assert summary[1].color == UNCATEGORIZED_COLOR

    def test_need_want_excludes_unclassified(self, seeded):
        summary = seeded.transactions.need_want_summary(JAN_1, JAN_31)
        assert (summary.needs.total, summary.needs.count) == (50, 1)
        assert (summary.wants.total, summary.wants.count) == (20, 1)
        assert summary.total == 70

        everything = seeded.transactions.need_want_summary()
        assert everything.needs.total == 149

    def test_need_want_by_category(self, seeded):
        rows = seeded.transactions.need_want_by_category()
        assert [(r.category, r.priority, r.total) for r in rows] == [
            ("Food", Priority.NEED, 149),
            ("Free time", Priority.WANT, 20),
        ]

    def test_stats(self, seeded):
        stats = seeded.transactions.stats(JAN_1, JAN_31)
        assert stats.total_transactions == 5
        assert stats.total_income == 1000
        assert stats.total_expenses == 115
        assert stats.net_amount == 885
        assert stats.average_transaction == 223
        methods = {m.payment_method: m.amount for m in stats.expenses_by_payment_method}
        assert methods == {PaymentMethod.CASH: 85, PaymentMethod.CREDIT_CARD: 30}

    def test_recent_and_pagination(self, seeded):
        assert [t.amount for t in seeded.transactions.recent(2)] == [99, 1000]
        page = seeded.transactions.list_all(limit=2, offset=2)
        assert [t.amount for t in page] == [30, 15]

    def test_export_summary(self, seeded):
        summary = seeded.transactions.export_summary()
        assert summary.total_transactions == 6
        assert summary.total_expense == 214
        assert summary.earliest_date == date(2024, 1, 3)
        assert summary.latest_date == date(2024, 2, 2)

    def test_reads_return_empty_when_store_closed(self, seeded):
        """Storage faults on read paths give safe defaults."""
        seeded.close()
        assert seeded.transactions.list_by_range(JAN_1, JAN_31) == []
        assert seeded.transactions.search("food") == []
        assert seeded.transactions.sum_by_type("expense", JAN_1, JAN_31) == 0.0
        assert seeded.transactions.category_summary(JAN_1, JAN_31) == []
        assert seeded.transactions.stats(JAN_1, JAN_31).total_transactions == 0
