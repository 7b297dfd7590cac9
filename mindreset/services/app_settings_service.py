"""
Application Settings Service.

Read/write access to the ``app_settings`` key-value table in the local
SQLite database.  Provides typed getters for the default schedule times
and a generic get/set for future extensibility.

This is a documented exception to the Repository pattern because
``app_settings`` stores device-local preferences, not remote documents::

    CREATE TABLE IF NOT EXISTS app_settings (
        key   TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
"""

from __future__ import annotations

from datetime import datetime, time
from typing import Optional

from mindreset.database import DatabaseManager
from mindreset.logger import StructuredLogger
from mindreset.utils.general import format_time_of_day

_KEY_DEFAULT_WAKE_TIME: str = "default_wake_time"
_KEY_DEFAULT_SLEEP_TIME: str = "default_sleep_time"
_TIME_FORMAT: str = "%H:%M"


class AppSettingsService:
    """Manages persistent application preferences in local SQLite.

    Parameters
    ----------
    db:
        Initialised ``DatabaseManager`` with active SQLite connection.
    logger:
        Structured logger instance.
    """

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        self._db = db
        self._logger = logger

    # ------------------------------------------------------------------
    # Generic key-value access
    # ------------------------------------------------------------------

    def get(self, key: str) -> Optional[str]:
        """Read a setting value by key.  Returns ``None`` if not found."""
        try:
            row = self._db.sqlite.execute(
                "SELECT value FROM app_settings WHERE key = ?",
                (key,),
            ).fetchone()
            return row["value"] if row is not None else None
        except Exception as exc:
            self._logger.warning("Failed to read app_settings[%s]: %s", key, exc)
            return None

    def set(self, key: str, value: str) -> bool:
        """Upsert a setting value.  Returns ``True`` on success."""
        try:
            with self._db.write_lock:
                self._db.sqlite.execute(
                    """
                    INSERT INTO app_settings (key, value)
                    VALUES (?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value      = excluded.value,
                        updated_at = CURRENT_TIMESTAMP
                    """,
                    (key, value),
                )
                self._db.sqlite.commit()
            self._logger.info("app_settings[%s] updated.", key)
            return True
        except Exception as exc:
            self._logger.error("Failed to write app_settings[%s]: %s", key, exc)
            return False

    # ------------------------------------------------------------------
    # Typed convenience: default schedule times
    # ------------------------------------------------------------------

    def get_default_wake_time(self) -> Optional[time]:
        """Return the stored default wake time, or ``None``."""
        return self._get_time(_KEY_DEFAULT_WAKE_TIME)

    def get_default_sleep_time(self) -> Optional[time]:
        """Return the stored default sleep time, or ``None``."""
        return self._get_time(_KEY_DEFAULT_SLEEP_TIME)

    def set_default_times(self, wake: time, sleep: time) -> bool:
        """Persist both default times.  Returns ``True`` if both were stored."""
        wake_ok = self.set(_KEY_DEFAULT_WAKE_TIME, format_time_of_day(wake))
        sleep_ok = self.set(_KEY_DEFAULT_SLEEP_TIME, format_time_of_day(sleep))
        return wake_ok and sleep_ok

    def _get_time(self, key: str) -> Optional[time]:
        raw = self.get(key)
        if raw is None:
            return None
        try:
            return datetime.strptime(raw, _TIME_FORMAT).time()
        except ValueError:
            self._logger.warning("Ignoring malformed app_settings[%s]: %r", key, raw)
            return None
