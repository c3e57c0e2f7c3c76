from enum import Enum


class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"

    @property
    def sign(self) -> int:
        """+1 for income, -1 for expense."""
        return 1 if self is TransactionType.INCOME else -1

    def inverse(self) -> "TransactionType":
        """The direction that undoes this one."""
        if self is TransactionType.INCOME:
            return TransactionType.EXPENSE
        return TransactionType.INCOME


class PaymentMethod(str, Enum):
    CASH = "cash"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"


class Priority(str, Enum):
    """Need/want classification for expenses."""

    NEED = "need"
    WANT = "want"
