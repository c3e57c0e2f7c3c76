"""
Settings repository module for the app_settings key/value table.

Values are stored as text; typed accessors convert on the way in and
out and fall back to a default when a stored value cannot be parsed.
Nothing here feeds balance computations.
"""

import json
import logging
import math
from typing import Any, Optional

from kakeibo.config import (
    DEFAULT_DISPLAY_SETTINGS,
    SETTING_APP_LOCK,
    SETTING_CURRENCY,
    SETTING_DECIMAL_PLACES,
    SETTING_THEME,
)
from kakeibo.errors import LedgerValidationError, StorageError

from .base import LedgerStore, like_pattern
from .models import DisplayPreferences, Setting, parse_datetime, utc_now

logger = logging.getLogger(__name__)

TRUE_VALUES = ("true", "1")


class SettingsRepository:
    """Repository for application settings."""

    def __init__(self, store: LedgerStore):
        self.store = store

    # =========================================================================
    # Strings
    # =========================================================================

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Stored value for key, or default when unset."""
        try:
            value = self.store.scalar(
                "SELECT value FROM app_settings WHERE key = ?", (key,)
            )
        except StorageError as e:
            logger.error(f"Error getting setting '{key}': {e}", exc_info=True)
            return default
        return default if value is None else value

    def set(self, key: str, value: str) -> None:
        """Insert or replace the value for key."""
        if not key:
            raise LedgerValidationError("Setting key cannot be empty")
        try:
            self.store.execute(
                """
                INSERT INTO app_settings (key, value, updatedAt) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updatedAt = excluded.updatedAt
                """,
                (key, str(value), utc_now().isoformat()),
            )
            logger.debug(f"Setting '{key}' updated")
        except Exception as e:
            logger.error(f"Error saving setting '{key}': {e}", exc_info=True)
            raise

    def delete(self, key: str) -> bool:
        try:
            cursor = self.store.execute("DELETE FROM app_settings WHERE key = ?", (key,))
            return cursor.rowcount > 0
        except Exception as e:
            logger.error(f"Error deleting setting '{key}': {e}", exc_info=True)
            raise

    def exists(self, key: str) -> bool:
        try:
            return self.store.first(
                "SELECT 1 FROM app_settings WHERE key = ?", (key,)
            ) is not None
        except StorageError as e:
            logger.error(f"Error checking setting '{key}': {e}", exc_info=True)
            return False

    # =========================================================================
    # Typed accessors
    # =========================================================================

    def get_bool(self, key: str, default: bool = False) -> bool:
        """True for a stored "true" or "1", default when unset."""
        value = self.get(key)
        if value is None:
            return default
        return value.strip().lower() in TRUE_VALUES

    def set_bool(self, key: str, value: bool) -> None:
        self.set(key, "true" if value else "false")

    def get_number(self, key: str, default: float = 0) -> float:
        """Stored value parsed as a number, default when unset or unparsable."""
        value = self.get(key)
        if value is None:
            return default
        try:
            parsed = float(value)
        except ValueError:
            logger.warning(f"Setting '{key}' is not a number: {value!r}")
            return default
        return default if math.isnan(parsed) else parsed

    def set_number(self, key: str, value: float) -> None:
        self.set(key, str(value))

    def get_json(self, key: str, default: Any = None) -> Any:
        """Stored value decoded from JSON, default when unset or malformed."""
        value = self.get(key)
        if value is None:
            return default
        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            logger.error(f"Error parsing JSON setting '{key}': {e}")
            return default

    def set_json(self, key: str, value: Any) -> None:
        try:
            encoded = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise LedgerValidationError(f"Setting '{key}' is not JSON serializable: {e}") from e
        self.set(key, encoded)

    # =========================================================================
    # Bulk
    # =========================================================================

    def get_all(self) -> dict[str, str]:
        try:
            rows = self.store.query("SELECT key, value FROM app_settings ORDER BY key")
            return {row["key"]: row["value"] for row in rows}
        except StorageError as e:
            logger.error(f"Error listing settings: {e}", exc_info=True)
            return {}

    def list_with_timestamps(self) -> list[Setting]:
        """Every setting, most recently updated first."""
        try:
            rows = self.store.query(
                "SELECT key, value, updatedAt FROM app_settings ORDER BY updatedAt DESC"
            )
            return [
                Setting(
                    key=row["key"],
                    value=row["value"],
                    updated_at=parse_datetime(row["updatedAt"]),
                )
                for row in rows
            ]
        except StorageError as e:
            logger.error(f"Error listing settings: {e}", exc_info=True)
            return []

    def get_many(self, keys: list[str]) -> dict[str, Optional[str]]:
        """Values for keys; missing keys map to None."""
        return {key: self.get(key) for key in keys}

    def set_many(self, values: dict[str, Any]) -> None:
        """Write several settings as one atomic unit."""
        with self.store.atomic():
            for key, value in values.items():
                self.set(key, value)
        logger.info(f"Saved {len(values)} settings")

    def get_by_prefix(self, prefix: str) -> dict[str, str]:
        try:
            rows = self.store.query(
                "SELECT key, value FROM app_settings WHERE key LIKE ? ESCAPE '\\' ORDER BY key",
                (like_pattern(prefix, prefix_only=True),),
            )
            return {row["key"]: row["value"] for row in rows}
        except StorageError as e:
            logger.error(f"Error listing settings by prefix: {e}", exc_info=True)
            return {}

    def clear_prefix(self, prefix: str) -> int:
        """Delete every setting whose key starts with prefix."""
        try:
            cursor = self.store.execute(
                "DELETE FROM app_settings WHERE key LIKE ? ESCAPE '\\'",
                (like_pattern(prefix, prefix_only=True),),
            )
            logger.info(f"Cleared {cursor.rowcount} settings with prefix '{prefix}'")
            return cursor.rowcount
        except Exception as e:
            logger.error(f"Error clearing settings: {e}", exc_info=True)
            raise

    def export(self) -> dict[str, Any]:
        """Backup of every setting with its export time."""
        return {"settings": self.get_all(), "export_date": utc_now().isoformat()}

    def import_(self, backup: dict[str, Any]) -> None:
        """
        Replace all settings with those in a backup from export().

        Raises:
            LedgerValidationError: If the backup has no settings mapping
        """
        settings = backup.get("settings") if isinstance(backup, dict) else None
        if not isinstance(settings, dict):
            raise LedgerValidationError("Settings backup has no 'settings' mapping")

        try:
            with self.store.atomic():
                self.store.execute("DELETE FROM app_settings")
                self.set_many(settings)
            logger.info(
                f"Imported {len(settings)} settings from backup "
                f"{backup.get('export_date', 'unknown')}"
            )
        except Exception as e:
            logger.error(f"Error importing settings: {e}", exc_info=True)
            raise

    def reset(self) -> int:
        """Delete every setting."""
        try:
            cursor = self.store.execute("DELETE FROM app_settings")
            logger.info(f"Reset complete. Cleared {cursor.rowcount} settings")
            return cursor.rowcount
        except Exception as e:
            logger.error(f"Error resetting settings: {e}", exc_info=True)
            raise

    # =========================================================================
    # Display preferences
    # =========================================================================

    def display_preferences(self) -> DisplayPreferences:
        """Currency, decimal places, theme and app lock, with defaults filled in."""
        decimals = int(
            self.get_number(
                SETTING_DECIMAL_PLACES,
                float(DEFAULT_DISPLAY_SETTINGS[SETTING_DECIMAL_PLACES]),
            )
        )
        return DisplayPreferences(
            currency=self.get(SETTING_CURRENCY, DEFAULT_DISPLAY_SETTINGS[SETTING_CURRENCY]),
            decimal_places=max(decimals, 0),
            theme_preference=self.get(SETTING_THEME, DEFAULT_DISPLAY_SETTINGS[SETTING_THEME]),
            app_lock_enabled=self.get_bool(
                SETTING_APP_LOCK,
                DEFAULT_DISPLAY_SETTINGS[SETTING_APP_LOCK] in TRUE_VALUES,
            ),
        )

    def format_amount(self, amount: float) -> str:
        """Format amount with the stored currency symbol and decimal places."""
        return self.display_preferences().format_amount(amount)
