from enum import Enum
from typing import Any, Optional, TypeVar

from kakeibo.errors import LedgerValidationError

from .account import AccountType
from .category import BudgetPeriod, CategoryType, SpendingTrend
from .loan import BorrowerStanding, InterestPeriod, LoanStatus
from .transaction import PaymentMethod, Priority, TransactionType

E = TypeVar("E", bound=Enum)


def coerce_enum(enum_cls: type[E], value: Any, field: str) -> E:
    """Convert a raw value into enum_cls, raising a validation error on mismatch."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise LedgerValidationError(
            f"Invalid {field}: {value!r} (expected one of: {allowed})"
        ) from None


def coerce_optional_enum(
    enum_cls: type[E], value: Any, field: str
) -> Optional[E]:
    """Like coerce_enum, but passes None through."""
    if value is None:
        return None
    return coerce_enum(enum_cls, value, field)


__all__ = [
    "AccountType",
    "BorrowerStanding",
    "BudgetPeriod",
    "CategoryType",
    "InterestPeriod",
    "LoanStatus",
    "PaymentMethod",
    "Priority",
    "SpendingTrend",
    "TransactionType",
    "coerce_enum",
    "coerce_optional_enum",
]
