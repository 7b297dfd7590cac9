"""
Base Repository.

Provides shared infrastructure for all repositories:
- DatabaseManager reference (Supabase async client)
- Logger reference
- Convenience property for accessing the client
- Translation of client-library exceptions into ``StoreError``
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Optional, TypeVar

import httpx
from postgrest.exceptions import APIError
from supabase import AsyncClient

from mindreset.database import DatabaseManager
from mindreset.exceptions import StoreError
from mindreset.logger import StructuredLogger

T = TypeVar("T")


class BaseRepository:
    """Base class for all repositories. Receives dependencies via __init__.

    ``table`` overrides the class-level ``TABLE`` so deployments can
    rename remote tables through ``AppConfig``.
    """

    TABLE: str = ""

    def __init__(
        self,
        db: DatabaseManager,
        logger: StructuredLogger,
        table: Optional[str] = None,
    ) -> None:
        self._db = db
        self._logger = logger
        if table:
            self.TABLE = table

    @property
    def supabase(self) -> AsyncClient:
        """Returns the Supabase client for cloud operations."""
        return self._db.supabase

    async def _execute(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        operation_name: str,
    ) -> T:
        """Run a remote operation, translating failures into ``StoreError``.

        Parameters
        ----------
        operation:
            Zero-argument coroutine factory performing the PostgREST call.
        operation_name:
            Human-readable label for log messages, e.g.
            ``"get_document (users)"``.

        Raises
        ------
        StoreError
            With ``is_network=True`` for transport failures and offline
            mode, ``False`` for errors reported by the server.
        """
        try:
            return await operation()
        except RuntimeError as exc:
            # Offline mode: DatabaseManager.supabase raised.
            self._logger.warning("Supabase unavailable for %s: %s", operation_name, exc)
            raise StoreError(str(exc), original_error=exc, is_network=True) from exc
        except (httpx.TransportError, ConnectionError, TimeoutError) as exc:
            self._logger.warning("Network error during %s: %s", operation_name, exc)
            raise StoreError(
                f"Network error during {operation_name}.",
                original_error=exc,
                is_network=True,
            ) from exc
        except APIError as exc:
            self._logger.error(
                "Supabase rejected %s: %s (code=%s)",
                operation_name,
                exc.message,
                exc.code,
            )
            raise StoreError(
                exc.message or f"{operation_name} failed.", original_error=exc
            ) from exc
