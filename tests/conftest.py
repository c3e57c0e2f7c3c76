"""Shared fixtures: every test gets its own in-memory ledger."""

from datetime import date

import pytest

from kakeibo.config import IN_MEMORY_DB
from kakeibo.db import LedgerRepository, LedgerStore
from kakeibo.models import AccountType


@pytest.fixture
def store():
    store = LedgerStore(IN_MEMORY_DB)
    yield store
    store.close()


@pytest.fixture
def ledger(store):
    return LedgerRepository(store=store)


@pytest.fixture
def wallet(ledger):
    """A cash account starting at zero."""
    return ledger.accounts.create("Wallet", AccountType.CASH, 0)


@pytest.fixture
def today():
    return date(2024, 3, 15)

