"""
Application Settings Service.

Read/write access to the ``app_settings`` key-value table in the local
SQLite database.  Provides typed getters for known settings and a
generic get/set for future extensibility.

This is a documented exception to the Repository pattern because
``app_settings`` stores infrastructure state, not tenant data, and must
stay in SQLite whichever storage mode is active::

    CREATE TABLE IF NOT EXISTS app_settings (
        key   TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
"""

from __future__ import annotations

import sqlite3
from typing import Optional

from budgeteer.database import DatabaseManager
from budgeteer.logger import StructuredLogger
from budgeteer.models.enums import StorageMode

_KEY_STORAGE_MODE: str = "storage_mode"


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
        except sqlite3.Error as exc:
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
        except sqlite3.Error as exc:
            self._logger.error("Failed to write app_settings[%s]: %s", key, exc)
            return False

    # ------------------------------------------------------------------
    # Typed convenience: storage mode
    # ------------------------------------------------------------------

    def get_storage_mode(self) -> Optional[StorageMode]:
        """Return the persisted storage mode, or ``None``.

        Demo is never restored; an unrecognised or demo value reads as
        ``None`` so startup falls back to the configured default.
        """
        raw = self.get(_KEY_STORAGE_MODE)
        if raw is None:
            return None
        try:
            mode = StorageMode(raw)
        except ValueError:
            self._logger.warning("Ignoring unknown persisted storage mode %r.", raw)
            return None
        return None if mode == StorageMode.DEMO else mode

    def set_storage_mode(self, mode: StorageMode) -> bool:
        """Persist *mode*.  Demo is refused and returns ``False``."""
        if mode == StorageMode.DEMO:
            return False
        return self.set(_KEY_STORAGE_MODE, mode.value)
