"""
Database Connection Manager.

Owns the two physical connections the storage adapters run against:

- **SQLite (local)**: always opened.  Backs the local storage mode and the
  ``app_settings`` table that remembers the chosen mode, so it is needed
  even while the cloud mode is active.

- **Supabase (cloud PostgreSQL)**: optional.  Created only when both the
  project URL and key are configured; otherwise the manager runs offline
  and the cloud adapter reports ``BackendUnavailableError``.

This module only manages connections; it contains no query logic.

Usage::

    db = DatabaseManager(
        supabase_url=config.SUPABASE_URL,
        supabase_key=config.SUPABASE_ANON_KEY.get_secret_value(),
        sqlite_path=Path(config.SQLITE_PATH),
        logger=StructuredLogger(name="budgeteer.database"),
    )
"""

from __future__ import annotations

import sqlite3
import threading
from pathlib import Path
from typing import Optional

from supabase import Client as SupabaseClient, create_client

from budgeteer.logger import StructuredLogger


class DatabaseManager:
    """Manages the local SQLite connection and the optional Supabase client.

    Parameters
    ----------
    supabase_url:
        The Supabase project URL.  May be empty to run offline.
    supabase_key:
        The Supabase anonymous key.  May be empty to run offline.
    sqlite_path:
        Filesystem path for the local database file, or ``":memory:"``.
    logger:
        A ``StructuredLogger`` instance.
    supabase_client:
        Pre-built client to use instead of calling ``create_client``.
    """

    def __init__(
        self,
        supabase_url: str,
        supabase_key: str,
        sqlite_path: Path,
        logger: StructuredLogger,
        supabase_client: Optional[SupabaseClient] = None,
    ) -> None:
        self._logger: StructuredLogger = logger
        self._write_lock: threading.RLock = threading.RLock()
        self._closed: bool = False

        self._supabase: Optional[SupabaseClient] = supabase_client
        if self._supabase is None and supabase_url and supabase_key:
            try:
                self._supabase = create_client(supabase_url, supabase_key)
                self._logger.info("Supabase client initialized.")
            except (ValueError, TypeError) as exc:
                self._logger.warning(
                    "Supabase credential format error: %s. Cloud mode unavailable.",
                    exc,
                )
            except Exception as exc:
                self._logger.error(
                    "Unexpected Supabase initialization failure: %s. "
                    "Cloud mode unavailable.",
                    exc,
                    exc_info=True,
                )
        elif self._supabase is None:
            self._logger.info(
                "Supabase credentials not configured; cloud mode unavailable."
            )

        self._sqlite_conn: sqlite3.Connection = self._connect_sqlite(sqlite_path)

    # ------------------------------------------------------------------
    # Public properties
    # ------------------------------------------------------------------

    @property
    def supabase(self) -> SupabaseClient:
        """Return the Supabase client.

        Raises
        ------
        RuntimeError
            If no client was initialised (offline).  The cloud adapter
            translates this into ``BackendUnavailableError``.
        """
        if self._supabase is None:
            raise RuntimeError(
                "Supabase client is not initialised; cloud storage is offline."
            )
        return self._supabase

    @property
    def is_online(self) -> bool:
        """``True`` when the Supabase client is available."""
        return self._supabase is not None

    @property
    def sqlite(self) -> sqlite3.Connection:
        """Return the SQLite connection."""
        return self._sqlite_conn

    @property
    def write_lock(self) -> threading.RLock:
        """Lock held around every SQLite write + commit pair::

            with db.write_lock:
                db.sqlite.execute("INSERT ...")
                db.sqlite.commit()
        """
        return self._write_lock

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close the SQLite connection.  Safe to call multiple times."""
        with self._write_lock:
            if self._closed:
                return
            try:
                self._sqlite_conn.close()
                self._logger.info("SQLite connection closed.")
            except sqlite3.ProgrammingError:
                pass
            self._closed = True

    def _connect_sqlite(self, path: Path) -> sqlite3.Connection:
        """Open (or create) the SQLite database.

        Raises
        ------
        PermissionError
            If the OS denies access to the file or its directory, re-raised
            with a message naming the path.
        """
        try:
            conn = sqlite3.connect(str(path), check_same_thread=False)
            conn.row_factory = sqlite3.Row
            if str(path) != ":memory:":
                conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA foreign_keys = ON;")
            self._logger.info("SQLite database opened at %s", path)
            return conn
        except PermissionError as exc:
            msg = (
                f"Cannot open the local database at '{path}'. "
                "The file or its directory may be read-only or locked by "
                "another process."
            )
            self._logger.error(msg)
            raise PermissionError(msg) from exc
