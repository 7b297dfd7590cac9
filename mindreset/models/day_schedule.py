"""
Day Schedule Model.

One row per calendar date per identity in the ``day_schedules`` table.
Only the columns the default-time propagation touches are modelled;
priorities and time blocks live in other columns owned by the scheduler
screens.
"""

from __future__ import annotations

import datetime
from typing import Optional

from pydantic import BaseModel


class DaySchedule(BaseModel):
    """Wake/sleep window for a single day."""

    id: Optional[str] = None  # ISO date string, e.g. "2025-03-24"
    user_id: str
    date: datetime.date
    wake_time: datetime.time
    sleep_time: datetime.time

    model_config = {"from_attributes": True, "extra": "ignore"}
