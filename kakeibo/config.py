"""
Configuration module for the Kakeibo ledger.

Contains constants, settings, and configuration values used throughout the application.
"""

import os
from pathlib import Path

# Version
VERSION = "0.1.0"

# Application paths
PROJECT_ROOT = Path(__file__).parent.parent
DATA_DIR = PROJECT_ROOT / "data"
LOG_DIR = PROJECT_ROOT / "logs"

# Database configuration
DEFAULT_DB_PATH = DATA_DIR / "kakeibo.db"
DB_TIMEOUT = 10.0  # seconds
IN_MEMORY_DB = ":memory:"

# Ledger defaults
DEFAULT_CURRENCY = "USD"
LOAN_REPAYMENT_CATEGORY = "Loan Repayment"
UNCATEGORIZED_COLOR = "#9ca3af"
DEFAULT_UPCOMING_DAYS = 7
DEFAULT_RECENT_LIMIT = 10
DEFAULT_TREND_MONTHS = 6

# Seeded once, only when the categories table is empty
DEFAULT_CATEGORIES = [
    {"name": "Transport", "color": "#10b981", "icon": "🚗", "type": "expense"},
    {"name": "Restaurant", "color": "#ef4444", "icon": "🍽️", "type": "expense"},
    {"name": "Shopping", "color": "#f97316", "icon": "🛍️", "type": "expense"},
    {"name": "Food", "color": "#3b82f6", "icon": "🍎", "type": "expense"},
    {"name": "Gift", "color": "#06b6d4", "icon": "🎁", "type": "expense"},
    {"name": "Free time", "color": "#8b5cf6", "icon": "🎮", "type": "expense"},
    {"name": "Family", "color": "#ec4899", "icon": "👨‍👩‍👧‍👦", "type": "expense"},
    {"name": "Health", "color": "#14b8a6", "icon": "🏥", "type": "expense"},
    {"name": "Salary", "color": "#22c55e", "icon": "💰", "type": "income"},
    {"name": "Investment", "color": "#6366f1", "icon": "📈", "type": "income"},
    {"name": LOAN_REPAYMENT_CATEGORY, "color": "#059669", "icon": "💸", "type": "income"},
]

# Demo accounts, only created by initialize_defaults() on an empty table
DEFAULT_ACCOUNTS = [
    {"name": "Cash Wallet", "type": "cash"},
    {"name": "Main Checking", "type": "checking", "bank_name": "Bank of America"},
    {"name": "Savings Account", "type": "savings", "bank_name": "Bank of America"},
    {"name": "Credit Card", "type": "credit_card", "bank_name": "Chase"},
]

# Display preferences (settings store keys and defaults)
SETTING_CURRENCY = "currency"
SETTING_DECIMAL_PLACES = "decimal_places"
SETTING_THEME = "theme_preference"
SETTING_APP_LOCK = "app_lock_enabled"
DEFAULT_DISPLAY_SETTINGS = {
    SETTING_CURRENCY: "₹",
    SETTING_DECIMAL_PLACES: "2",
    SETTING_THEME: "system",
    SETTING_APP_LOCK: "false",
}

# Loan analytics thresholds (repayment rate, percent)
BORROWER_POOR_BELOW = 50.0
BORROWER_WARNING_BELOW = 80.0

# Interest calculator period lengths in days
DAYS_PER_MONTH = 30.44
DAYS_PER_YEAR = 365.25

# Spending trend classification
TREND_INCREASE_RATIO = 1.1
TREND_DECREASE_RATIO = 0.9

# Logging configuration
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FILE = "kakeibo.log"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Error messages
ERROR_MESSAGES = {
    "overpayment": "Payment exceeds outstanding balance.",
    "non_positive_payment": "Payment amount must be positive.",
    "category_in_use": "Category is still in use and cannot be deleted.",
}


def get_db_path() -> Path:
    """Get the database path, honouring the KAKEIBO_DB_PATH override."""
    override = os.getenv("KAKEIBO_DB_PATH")
    return Path(override) if override else DEFAULT_DB_PATH


def ensure_directories():
    """Ensure required directories exist."""
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    LOG_DIR.mkdir(parents=True, exist_ok=True)


def get_log_level():
    """Get the configured log level."""
    import logging

    level_map = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }
    return level_map.get(os.getenv("LOG_LEVEL", LOG_LEVEL).upper(), logging.INFO)
