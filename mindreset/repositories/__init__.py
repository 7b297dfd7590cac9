"""
Repository Layer Package.

Supabase-backed data access for the remote document store:
    from mindreset.repositories import ProfileRepository, DayScheduleRepository
"""

from __future__ import annotations

from mindreset.repositories.base_repository import BaseRepository
from mindreset.repositories.day_schedule_repository import DayScheduleRepository
from mindreset.repositories.profile_repository import ProfileRepository, RealtimeSubscription

__all__ = [
    "BaseRepository",
    "DayScheduleRepository",
    "ProfileRepository",
    "RealtimeSubscription",
]
