"""
Exception types raised by the ledger.

Validation errors are caller mistakes and carry a message meant for the user.
Storage errors wrap sqlite3 failures so callers never import sqlite3 to catch them.
"""


class LedgerError(Exception):
    """Base exception for ledger operations."""

    pass


class LedgerValidationError(LedgerError, ValueError):
    """Input rejected before anything was written."""

    pass


class NotFoundError(LedgerError, LookupError):
    """Referenced record does not exist."""

    pass


class StorageError(LedgerError):
    """The underlying database failed."""

    pass
