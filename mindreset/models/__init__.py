"""
Data Models Package.

Re-exports all Pydantic models:
    from mindreset.models import Identity, UserProfile, DaySchedule
    from mindreset.models import AuthErrorCode, AuthResult, ClassifiedError
"""

from __future__ import annotations

from mindreset.models.auth_models import AuthResult, ClassifiedError, FederatedCredential
from mindreset.models.day_schedule import DaySchedule
from mindreset.models.enums import AuthErrorCode, IntentKind, ProfileCounter, ReauthState
from mindreset.models.session_models import (
    PendingIntent,
    PropagationResult,
    ReauthOutcome,
    SessionSnapshot,
)
from mindreset.models.user import Identity, UserProfile

__all__ = [
    "AuthErrorCode",
    "AuthResult",
    "ClassifiedError",
    "DaySchedule",
    "FederatedCredential",
    "Identity",
    "IntentKind",
    "PendingIntent",
    "ProfileCounter",
    "PropagationResult",
    "ReauthOutcome",
    "ReauthState",
    "SessionSnapshot",
    "UserProfile",
]
