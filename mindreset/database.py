"""
Database Abstraction Layer.

Owns the two connections the session core needs:

- **SQLite (local)**: holds the ``app_settings`` key-value table where
  device-local preferences (default wake / sleep time) are persisted.

- **Supabase (cloud)**: the identity provider (GoTrue) and the remote
  document store (``users`` and ``day_schedules`` tables, Realtime row
  subscriptions).  Accessed through the ``supabase`` async client.  A
  second client built from the service-role key is kept for the single
  admin operation the app needs (deleting the current identity).

This module only manages the raw *connections*; it contains no query
logic.  Data access is performed through the repositories and the
credential gateway.

Usage (dependency injection at app startup)::

    from mindreset.database import DatabaseManager
    from mindreset.logger import StructuredLogger

    db = await DatabaseManager.connect(
        supabase_url=config.SUPABASE_URL,
        supabase_key=config.SUPABASE_ANON_KEY.get_secret_value(),
        service_role_key=config.SUPABASE_SERVICE_ROLE_KEY.get_secret_value(),
        sqlite_path=Path(config.LOCAL_DB_PATH),
        logger=StructuredLogger(name="mindreset.database"),
    )
"""

from __future__ import annotations

import sqlite3
import threading
from pathlib import Path
from typing import Optional

from supabase import AsyncClient, acreate_client

from mindreset.exceptions import ConfigurationError
from mindreset.logger import StructuredLogger


class DatabaseManager:
    """Manages the local SQLite connection and the Supabase async clients.

    When no Supabase client is supplied the manager runs in offline mode:
    the ``supabase`` property raises ``RuntimeError``, which the gateway
    and repositories translate into network-unreachable failures.

    Parameters
    ----------
    sqlite_path:
        Filesystem path for the local SQLite database file, or
        ``":memory:"``.
    logger:
        A ``StructuredLogger`` instance for structured JSON log output.
    supabase:
        Client created with the anonymous key; carries the user session.
    supabase_admin:
        Client created with the service-role key, used only for identity
        deletion.
    """

    def __init__(
        self,
        sqlite_path: Path,
        logger: StructuredLogger,
        supabase: Optional[AsyncClient] = None,
        supabase_admin: Optional[AsyncClient] = None,
    ) -> None:
        self._logger: StructuredLogger = logger
        self._write_lock: threading.RLock = threading.RLock()
        self._supabase: Optional[AsyncClient] = supabase
        self._supabase_admin: Optional[AsyncClient] = supabase_admin
        self._closed: bool = False
        self._sqlite_conn: sqlite3.Connection = self._connect_sqlite(sqlite_path)

    @classmethod
    async def connect(
        cls,
        supabase_url: str,
        supabase_key: str,
        sqlite_path: Path,
        logger: StructuredLogger,
        service_role_key: str = "",
    ) -> "DatabaseManager":
        """Create the Supabase clients and open the local database.

        Missing or malformed Supabase settings are logged and leave the
        manager in offline mode rather than aborting start-up.
        """
        supabase: Optional[AsyncClient] = None
        supabase_admin: Optional[AsyncClient] = None

        if supabase_url and supabase_key:
            try:
                supabase = await acreate_client(supabase_url, supabase_key)
                logger.info("Supabase client initialized.")
                if service_role_key:
                    supabase_admin = await acreate_client(supabase_url, service_role_key)
                    logger.info("Supabase admin client initialized.")
            except (ValueError, TypeError) as exc:
                logger.warning(
                    "Supabase credential format error: %s. Running in offline mode.",
                    exc,
                )
            except Exception as exc:
                logger.error(
                    "Unexpected Supabase initialization failure: %s. "
                    "Running in offline mode.",
                    exc,
                    exc_info=True,
                )
        else:
            logger.warning(
                "Supabase credentials not configured: running in offline mode."
            )

        return cls(
            sqlite_path=sqlite_path,
            logger=logger,
            supabase=supabase,
            supabase_admin=supabase_admin,
        )

    # ------------------------------------------------------------------
    # Public properties
    # ------------------------------------------------------------------

    @property
    def supabase(self) -> AsyncClient:
        """Return the initialised Supabase client.

        Raises
        ------
        RuntimeError
            If the Supabase client was not initialised (offline mode).
        """
        if self._supabase is None:
            raise RuntimeError(
                "Supabase client is not initialised. "
                "The application is running in offline mode."
            )
        return self._supabase

    @property
    def supabase_admin(self) -> AsyncClient:
        """Return the service-role client.

        Raises
        ------
        ConfigurationError
            If no service-role key was configured.
        """
        if self._supabase_admin is None:
            raise ConfigurationError(
                "Supabase admin client is not initialised. "
                "Set SUPABASE_SERVICE_ROLE_KEY to enable account deletion."
            )
        return self._supabase_admin

    @property
    def is_online(self) -> bool:
        """``True`` when the Supabase client is available."""
        return self._supabase is not None

    @property
    def sqlite(self) -> sqlite3.Connection:
        """Return the initialised SQLite connection."""
        return self._sqlite_conn

    @property
    def write_lock(self) -> threading.RLock:
        """Return the write lock for thread-safe SQLite operations.

        All code that performs SQLite writes should acquire this lock
        first::

            with db.write_lock:
                db.sqlite.execute("INSERT ...")
                db.sqlite.commit()
        """
        return self._write_lock

    # ------------------------------------------------------------------
    # Lifecycle helpers
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close the local SQLite connection.

        Safe to call multiple times; subsequent calls are no-ops.
        """
        with self._write_lock:
            if self._closed:
                return
            try:
                self._sqlite_conn.close()
                self._logger.info("SQLite connection closed.")
            except sqlite3.ProgrammingError:
                pass
            self._closed = True

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _connect_sqlite(self, path: Path) -> sqlite3.Connection:
        """Open (or create) the local SQLite database.

        Raises
        ------
        PermissionError
            If the OS denies access to the database file or its directory.
        """
        try:
            conn = sqlite3.connect(str(path), check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL;")
            self._logger.info("SQLite database opened at %s", path)
            return conn
        except PermissionError as exc:
            msg = (
                f"Cannot open the local database at '{path}'. "
                "The file or its directory may be read-only or locked by "
                "another process.  Please check file permissions and try again."
            )
            self._logger.error(msg)
            raise PermissionError(msg) from exc
