"""
Application bootstrap for the Kakeibo ledger.

This module handles configuration loading, logging setup and opening
the ledger with its startup housekeeping.
"""

import logging
import sys
from datetime import date
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv

from kakeibo.config import (
    LOG_DIR,
    LOG_FILE,
    LOG_FORMAT,
    PROJECT_ROOT,
    ensure_directories,
    get_db_path,
    get_log_level,
)
from kakeibo.db import LedgerRepository, open_ledger
from kakeibo.services.recap import RecapService

logger = logging.getLogger(__name__)


def load_environment(env_path: Optional[Path] = None) -> bool:
    """
    Load a .env file into the environment if one exists.

    Args:
        env_path: File to load (defaults to .env at the project root)

    Returns:
        True if a file was loaded
    """
    env_path = env_path or PROJECT_ROOT / ".env"
    if env_path.exists():
        load_dotenv(env_path)
        logger.info(f"Loaded environment from {env_path}")
        return True
    logger.debug(f".env file not found at {env_path}")
    return False


def configure_logging():
    """Log to LOG_DIR/LOG_FILE and stdout at the configured level."""
    ensure_directories()
    logging.basicConfig(
        level=get_log_level(),
        format=LOG_FORMAT,
        handlers=[
            logging.FileHandler(LOG_DIR / LOG_FILE),
            logging.StreamHandler(sys.stdout),
        ],
    )


def create_ledger(
    db_path: Optional[Union[Path, str]] = None, as_of: Optional[date] = None
) -> LedgerRepository:
    """
    Open the ledger and run startup housekeeping.

    Args:
        db_path: Database to open (defaults to KAKEIBO_DB_PATH or data/kakeibo.db)
        as_of: Reference day for the overdue sweep (defaults to today)

    Returns:
        The opened LedgerRepository
    """
    db_path = db_path or get_db_path()
    ledger = open_ledger(db_path)
    RecapService(ledger).refresh(as_of)
    logger.info(f"Ledger ready at {db_path}")
    return ledger


def run() -> LedgerRepository:
    """Load the environment, configure logging and open the ledger."""
    load_environment()
    configure_logging()
    try:
        return create_ledger()
    except Exception as e:
        logger.critical(f"Could not open ledger: {e}", exc_info=True)
        raise
