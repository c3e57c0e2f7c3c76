"""
Base store module with connection management and schema initialization.

Provides the foundation for all database operations in the Kakeibo ledger:
one SQLite connection shared by every repository, schema creation with
additive column migrations, default category seeding, and the atomic-unit
wrapper that multi-table writes run inside.
"""

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, Optional, Sequence, TypeVar, Union

from kakeibo.config import DB_TIMEOUT, DEFAULT_CATEGORIES, IN_MEMORY_DB, get_db_path
from kakeibo.errors import StorageError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Nullable columns added to transactions after the first release
TRANSACTION_MIGRATIONS = [
    ("accountId", "INTEGER REFERENCES accounts(id)"),
    ("priority", "TEXT CHECK (priority IN ('need', 'want'))"),
]


def like_pattern(term: str, prefix_only: bool = False) -> str:
    """Escape LIKE wildcards in term and wrap it for a substring or prefix match."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"{escaped}%" if prefix_only else f"%{escaped}%"


class LedgerStore:
    """
    SQLite store shared by all ledger repositories.

    Holds a single connection in autocommit mode. Single statements commit
    on their own; anything that must be all-or-nothing runs inside
    ``atomic()``. Pass ``":memory:"`` for a throwaway store (tests).
    """

    def __init__(
        self, db_path: Optional[Union[Path, str]] = None, init_schema: bool = True
    ):
        """
        Initialize the store.

        Args:
            db_path: Path to the SQLite database file, or ":memory:".
                Defaults to data/kakeibo.db (or KAKEIBO_DB_PATH)
            init_schema: Whether to create tables, migrate and seed on startup
        """
        if db_path is None:
            db_path = get_db_path()
        self.db_path = db_path
        self._depth = 0
        if str(db_path) != IN_MEMORY_DB:
            self._ensure_db_directory()
        self._conn = self._connect()
        if init_schema:
            self._init_schema()

    def _ensure_db_directory(self):
        """Ensure the database directory exists."""
        try:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            logger.debug(f"Database directory ensured: {Path(self.db_path).parent}")
        except Exception as e:
            logger.error(f"Failed to create database directory: {e}", exc_info=True)
            raise

    def _connect(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(
                str(self.db_path), timeout=DB_TIMEOUT, isolation_level=None
            )
            conn.row_factory = sqlite3.Row
            # Enable foreign keys
            conn.execute("PRAGMA foreign_keys = ON")
            return conn
        except sqlite3.Error as e:
            logger.error(f"Could not open database {self.db_path}: {e}", exc_info=True)
            raise StorageError(f"Could not open database: {e}") from e

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    def close(self):
        """Close the underlying connection."""
        self._conn.close()
        logger.debug(f"Closed database {self.db_path}")

    def __enter__(self) -> "LedgerStore":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    @property
    def in_atomic(self) -> bool:
        """Whether an atomic unit is currently open."""
        return self._depth > 0

    # =========================================================================
    # Raw access
    # =========================================================================

    def query(self, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        """Run a SELECT and return every row."""
        try:
            return self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            logger.error(f"Error executing query: {e}", exc_info=True)
            raise StorageError(str(e)) from e

    def first(self, sql: str, params: Sequence[Any] = ()) -> Optional[sqlite3.Row]:
        """Run a SELECT and return its first row, or None."""
        try:
            return self._conn.execute(sql, params).fetchone()
        except sqlite3.Error as e:
            logger.error(f"Error getting first result: {e}", exc_info=True)
            raise StorageError(str(e)) from e

    def scalar(self, sql: str, params: Sequence[Any] = (), default: Any = None) -> Any:
        """Run a SELECT and return the first column of the first row."""
        row = self.first(sql, params)
        if row is None or row[0] is None:
            return default
        return row[0]

    def execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        """Run a single INSERT/UPDATE/DELETE statement."""
        try:
            return self._conn.execute(sql, params)
        except sqlite3.Error as e:
            logger.error(f"Error executing statement: {e}", exc_info=True)
            raise StorageError(str(e)) from e

    # =========================================================================
    # Atomic units
    # =========================================================================

    @contextmanager
    def atomic(self) -> Iterator[sqlite3.Connection]:
        """
        Run the enclosed statements as one all-or-nothing unit.

        Commits when the block exits normally. Any exception raised inside
        rolls every statement of the unit back and is re-raised unchanged.
        Nested blocks join the enclosing unit through a SAVEPOINT, so an
        inner failure that the caller catches only undoes the inner block.
        """
        savepoint = f"sp_{self._depth}" if self._depth else None
        self._begin(savepoint)
        self._depth += 1
        try:
            yield self._conn
        except Exception:
            self._depth -= 1
            self._rollback(savepoint)
            raise
        else:
            self._depth -= 1
            self._commit(savepoint)

    def with_transaction(self, callback: Callable[[], T]) -> T:
        """Run callback inside an atomic unit and return its result."""
        with self.atomic():
            return callback()

    def _begin(self, savepoint: Optional[str]):
        try:
            if savepoint:
                self._conn.execute(f"SAVEPOINT {savepoint}")
            else:
                self._conn.execute("BEGIN")
        except sqlite3.Error as e:
            logger.error(f"Could not begin atomic unit: {e}", exc_info=True)
            raise StorageError(str(e)) from e

    def _commit(self, savepoint: Optional[str]):
        try:
            if savepoint:
                self._conn.execute(f"RELEASE SAVEPOINT {savepoint}")
            else:
                self._conn.execute("COMMIT")
        except sqlite3.Error as e:
            logger.error(f"Could not commit atomic unit: {e}", exc_info=True)
            self._rollback(savepoint)
            raise StorageError(str(e)) from e

    def _rollback(self, savepoint: Optional[str]):
        try:
            if savepoint:
                self._conn.execute(f"ROLLBACK TO SAVEPOINT {savepoint}")
                self._conn.execute(f"RELEASE SAVEPOINT {savepoint}")
            elif self._conn.in_transaction:
                self._conn.execute("ROLLBACK")
            logger.debug(f"Rolled back atomic unit ({savepoint or 'outer'})")
        except sqlite3.Error as e:
            # Keep the original exception as the one the caller sees
            logger.error(f"Rollback failed: {e}", exc_info=True)

    # =========================================================================
    # Schema
    # =========================================================================

    def _init_schema(self):
        """Create tables, apply additive migrations and seed default categories."""
        try:
            with self.atomic() as conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS accounts (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        name TEXT NOT NULL,
                        type TEXT NOT NULL CHECK (type IN (
                            'savings', 'checking', 'credit_card', 'loan', 'investment', 'cash'
                        )),
                        balance REAL NOT NULL DEFAULT 0,
                        currency TEXT NOT NULL DEFAULT 'USD',
                        bankName TEXT,
                        accountNumber TEXT,
                        isActive INTEGER NOT NULL DEFAULT 1,
                        createdAt TEXT NOT NULL,
                        updatedAt TEXT NOT NULL
                    )
                """)

                conn.execute("""
                    CREATE TABLE IF NOT EXISTS transactions (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        amount REAL NOT NULL,
                        type TEXT NOT NULL CHECK (type IN ('income', 'expense')),
                        category TEXT NOT NULL,
                        description TEXT,
                        date TEXT NOT NULL,
                        paymentMethod TEXT NOT NULL CHECK (
                            paymentMethod IN ('cash', 'credit_card', 'debit_card')
                        ),
                        accountId INTEGER,
                        priority TEXT CHECK (priority IN ('need', 'want')),
                        createdAt TEXT NOT NULL,
                        updatedAt TEXT NOT NULL,
                        FOREIGN KEY (accountId) REFERENCES accounts (id)
                    )
                """)

                conn.execute("""
                    CREATE TABLE IF NOT EXISTS categories (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        name TEXT NOT NULL UNIQUE,
                        color TEXT NOT NULL,
                        icon TEXT NOT NULL,
                        type TEXT NOT NULL CHECK (type IN ('income', 'expense')),
                        budgetLimit REAL
                    )
                """)

                conn.execute("""
                    CREATE TABLE IF NOT EXISTS budgets (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        categoryId INTEGER NOT NULL,
                        amount REAL NOT NULL,
                        period TEXT NOT NULL CHECK (period IN ('weekly', 'monthly', 'yearly')),
                        startDate TEXT NOT NULL,
                        endDate TEXT NOT NULL,
                        FOREIGN KEY (categoryId) REFERENCES categories (id)
                    )
                """)

                # Monthly closing balance per account
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS account_balance (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        accountId INTEGER NOT NULL,
                        year INTEGER NOT NULL,
                        month INTEGER NOT NULL CHECK (month BETWEEN 1 AND 12),
                        closingBalance REAL NOT NULL,
                        lastUpdated TEXT NOT NULL,
                        UNIQUE(accountId, year, month),
                        FOREIGN KEY (accountId) REFERENCES accounts (id)
                    )
                """)

                conn.execute("""
                    CREATE TABLE IF NOT EXISTS loans (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        borrowerName TEXT NOT NULL,
                        borrowerContact TEXT,
                        amount REAL NOT NULL,
                        lentDate TEXT NOT NULL,
                        expectedReturnDate TEXT,
                        actualReturnDate TEXT,
                        returnedAmount REAL NOT NULL DEFAULT 0,
                        status TEXT NOT NULL DEFAULT 'active' CHECK (status IN (
                            'active', 'partially_paid', 'fully_paid', 'overdue'
                        )),
                        description TEXT,
                        accountId INTEGER,
                        createdAt TEXT NOT NULL,
                        updatedAt TEXT NOT NULL,
                        FOREIGN KEY (accountId) REFERENCES accounts (id)
                    )
                """)

                conn.execute("""
                    CREATE TABLE IF NOT EXISTS app_settings (
                        id INTEGER PRIMARY KEY,
                        key TEXT NOT NULL UNIQUE,
                        value TEXT NOT NULL,
                        updatedAt TEXT NOT NULL
                    )
                """)

                self._add_missing_columns(conn)
                self._create_indexes(conn)
                self._insert_default_categories(conn)

                logger.debug("Ledger schema initialized successfully")
        except sqlite3.Error as e:
            logger.error(f"Error initializing database tables: {e}", exc_info=True)
            raise StorageError(f"Error initializing database tables: {e}") from e

    def _add_missing_columns(self, conn: sqlite3.Connection):
        """Add nullable columns that older databases were created without."""
        existing = {
            row["name"] for row in conn.execute("PRAGMA table_info(transactions)")
        }
        for column, definition in TRANSACTION_MIGRATIONS:
            if column not in existing:
                conn.execute(f"ALTER TABLE transactions ADD COLUMN {column} {definition}")
                logger.info(f"Added {column} column to transactions table")

    def _create_indexes(self, conn: sqlite3.Connection):
        """Create database indexes for query performance."""
        indexes = [
            ("idx_accounts_active", "accounts", "isActive, name"),
            ("idx_transactions_date", "transactions", "date"),
            ("idx_transactions_account", "transactions", "accountId"),
            ("idx_transactions_category", "transactions", "category"),
            ("idx_budgets_category", "budgets", "categoryId"),
            ("idx_loans_status", "loans", "status"),
            ("idx_loans_account", "loans", "accountId"),
        ]

        for index_name, table, columns in indexes:
            conn.execute(f"""
                CREATE INDEX IF NOT EXISTS {index_name}
                ON {table}({columns})
            """)

    def _insert_default_categories(self, conn: sqlite3.Connection):
        """Seed the default categories, only into an empty table."""
        count = conn.execute("SELECT COUNT(*) FROM categories").fetchone()[0]
        if count > 0:
            return

        conn.executemany(
            "INSERT INTO categories (name, color, icon, type) VALUES (?, ?, ?, ?)",
            [(c["name"], c["color"], c["icon"], c["type"]) for c in DEFAULT_CATEGORIES],
        )
        logger.info(f"Inserted {len(DEFAULT_CATEGORIES)} default categories")

    # =========================================================================
    # Diagnostics
    # =========================================================================

    def table_columns(self, table: str) -> list[str]:
        """Column names of a table, in declaration order."""
        return [row["name"] for row in self.query(f"PRAGMA table_info({table})")]

    def ping(self) -> bool:
        """Whether the connection answers a trivial query."""
        try:
            self.first("SELECT 1")
            return True
        except StorageError:
            return False
