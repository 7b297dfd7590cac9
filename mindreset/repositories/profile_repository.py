"""
Profile Repository.

Handles the per-identity profile row in the ``users`` table via Supabase
PostgREST, live row subscriptions via Supabase Realtime, and atomic
counter increments via a Postgres function.

The counter function is expected to exist server-side::

    create function increment_profile_counter(
        p_user_id uuid, p_column text, p_amount integer
    ) returns void ...
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Optional

from mindreset.database import DatabaseManager
from mindreset.exceptions import StoreError
from mindreset.logger import StructuredLogger
from mindreset.models.enums import ProfileCounter
from mindreset.ports import DocumentCallback
from mindreset.repositories.base_repository import BaseRepository
from mindreset.utils.general import JsonValue

if TYPE_CHECKING:
    from realtime import AsyncRealtimeChannel


def _extract_record(payload: Mapping[str, Any]) -> Optional[dict[str, JsonValue]]:
    """Return the new row carried by a Realtime change payload.

    ``DELETE`` events (and payloads without a record) yield ``None``.
    Handles both the wrapped (``{"data": {...}}``) and flat payload
    shapes emitted by different ``realtime`` releases.
    """
    data = payload.get("data", payload)
    event_type = str(data.get("type") or data.get("eventType") or "").upper()
    if event_type == "DELETE":
        return None
    record = data.get("record") or data.get("new")
    return dict(record) if record else None


class RealtimeSubscription:
    """Live row subscription backed by one Realtime channel.

    ``close()`` removes the channel and is idempotent.
    """

    def __init__(
        self,
        db: DatabaseManager,
        channel: AsyncRealtimeChannel,
        logger: StructuredLogger,
    ) -> None:
        self._db = db
        self._channel = channel
        self._logger = logger
        self._closed: bool = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._db.supabase.remove_channel(self._channel)
        except Exception as exc:
            # Channel is discarded whatever the outcome.
            self._logger.warning("Failed to remove realtime channel: %s", exc)


class ProfileRepository(BaseRepository):
    """Data access layer for UserProfile rows.

    Documents are exchanged as plain dicts; decoding into
    ``UserProfile`` is the session controller's responsibility so decode
    failures can be reported without tearing down subscriptions.
    """

    TABLE = "users"

    def __init__(
        self,
        db: DatabaseManager,
        logger: StructuredLogger,
        table: Optional[str] = None,
        counter_rpc: str = "increment_profile_counter",
    ) -> None:
        super().__init__(db, logger, table)
        self._counter_rpc: str = counter_rpc

    async def get_document(self, user_id: str) -> Optional[dict[str, JsonValue]]:
        """Fetch the profile row, or ``None`` if it does not exist."""
        async def _op() -> Optional[dict[str, JsonValue]]:
            response = await (
                self.supabase.table(self.TABLE)
                .select("*")
                .eq("id", user_id)
                .maybe_single()
                .execute()
            )
            if response is None or not response.data:
                return None
            return dict(response.data)

        return await self._execute(_op, operation_name=f"get_document ({self.TABLE})")

    async def set_document(
        self,
        user_id: str,
        fields: dict[str, JsonValue],
        if_absent: bool = False,
    ) -> bool:
        """Write the profile row.

        With ``if_absent=True`` the write is a conditional insert
        (``ON CONFLICT (id) DO NOTHING``) and never touches an existing
        row.  Returns ``True`` when a row was written.
        """
        data = {**fields, "id": user_id}

        async def _op() -> bool:
            response = await (
                self.supabase.table(self.TABLE)
                .upsert(data, on_conflict="id", ignore_duplicates=if_absent)
                .execute()
            )
            return bool(response.data)

        written = await self._execute(_op, operation_name=f"set_document ({self.TABLE})")
        self._logger.info(
            "Profile document %s for %s.",
            "created" if written else "already present",
            user_id,
        )
        return written

    async def update_document(self, user_id: str, fields: dict[str, JsonValue]) -> None:
        """Merge *fields* into an existing row.

        Raises:
            StoreError: If the row does not exist or the write fails.
        """
        async def _op() -> list[Any]:
            response = await (
                self.supabase.table(self.TABLE)
                .update(fields)
                .eq("id", user_id)
                .execute()
            )
            return list(response.data or [])

        rows = await self._execute(_op, operation_name=f"update_document ({self.TABLE})")
        if not rows:
            raise StoreError(f"Profile {user_id} does not exist.")

    async def delete_document(self, user_id: str) -> None:
        async def _op() -> None:
            await self.supabase.table(self.TABLE).delete().eq("id", user_id).execute()

        await self._execute(_op, operation_name=f"delete_document ({self.TABLE})")
        self._logger.info("Profile document deleted: %s", user_id)

    async def increment_counter(
        self, user_id: str, counter: ProfileCounter, amount: int
    ) -> None:
        """Atomically add *amount* to one counter column server-side."""
        async def _op() -> None:
            await self.supabase.rpc(
                self._counter_rpc,
                {"p_user_id": user_id, "p_column": str(counter), "p_amount": amount},
            ).execute()

        await self._execute(_op, operation_name=f"increment_counter ({counter})")

    async def subscribe_to_document(
        self, user_id: str, callback: DocumentCallback
    ) -> RealtimeSubscription:
        """Open a live subscription to one profile row.

        The current state is read once and delivered to *callback* before
        this coroutine returns; later changes arrive as Realtime events.
        ``None`` is delivered when the row does not exist or is deleted.

        Raises:
            StoreError: If the channel cannot be opened or the initial
                read fails.  No channel is left open in that case.
        """
        def _on_change(payload: Mapping[str, Any]) -> None:
            callback(_extract_record(payload))

        async def _open() -> AsyncRealtimeChannel:
            channel = self.supabase.channel(f"{self.TABLE}:{user_id}:{uuid.uuid4().hex[:8]}")
            channel.on_postgres_changes(
                "*",
                callback=_on_change,
                table=self.TABLE,
                schema="public",
                filter=f"id=eq.{user_id}",
            )
            await channel.subscribe()
            return channel

        channel = await self._execute(_open, operation_name=f"subscribe ({self.TABLE})")
        subscription = RealtimeSubscription(self._db, channel, self._logger)

        try:
            initial = await self.get_document(user_id)
        except StoreError:
            await subscription.close()
            raise
        callback(initial)
        return subscription
