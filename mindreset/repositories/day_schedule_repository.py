"""
Day Schedule Repository.

Handles the ``day_schedules`` table via Supabase PostgREST.  Only the
operations needed by default-time propagation and its diagnostics are
provided.
"""

from __future__ import annotations

from datetime import date
from typing import Any

from mindreset.models.day_schedule import DaySchedule
from mindreset.repositories.base_repository import BaseRepository
from mindreset.utils.general import JsonValue


class DayScheduleRepository(BaseRepository):
    """Data access layer for DaySchedule rows."""

    TABLE = "day_schedules"

    async def batch_update_where(
        self,
        user_id: str,
        on_or_after: date,
        fields: dict[str, JsonValue],
    ) -> int:
        """Rewrite *fields* on every row of *user_id* dated on or after
        *on_or_after*.

        Issued as a single ``UPDATE ... WHERE user_id = ? AND date >= ?``
        so the batch commits or fails as a whole.

        Returns:
            The number of rows updated.
        """
        async def _op() -> list[Any]:
            response = await (
                self.supabase.table(self.TABLE)
                .update(fields)
                .eq("user_id", user_id)
                .gte("date", on_or_after.isoformat())
                .execute()
            )
            return list(response.data or [])

        rows = await self._execute(_op, operation_name=f"batch_update_where ({self.TABLE})")
        self._logger.info(
            "Updated %d day schedules for %s from %s.",
            len(rows),
            user_id,
            on_or_after.isoformat(),
        )
        return len(rows)

    async def list_schedules(self, user_id: str) -> list[DaySchedule]:
        """Fetch all schedules of *user_id* ordered by date."""
        async def _op() -> list[DaySchedule]:
            response = await (
                self.supabase.table(self.TABLE)
                .select("*")
                .eq("user_id", user_id)
                .order("date")
                .execute()
            )
            return [DaySchedule(**row) for row in response.data or []]

        return await self._execute(_op, operation_name=f"list_schedules ({self.TABLE})")
