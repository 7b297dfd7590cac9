"""
Session Layer Data Transfer Objects.

Immutable snapshots republished to session observers, and the result
envelopes of the reauthentication gate and default-time propagation.
"""

from __future__ import annotations

from datetime import time
from typing import Optional

from pydantic import BaseModel

from mindreset.models.auth_models import ClassifiedError
from mindreset.models.enums import IntentKind, ReauthState
from mindreset.models.user import Identity, UserProfile

__all__ = [
    "PendingIntent",
    "PropagationResult",
    "ReauthOutcome",
    "SessionSnapshot",
]


class SessionSnapshot(BaseModel):
    """Point-in-time copy of the session state handed to observers."""

    identity: Optional[Identity] = None
    profile: Optional[UserProfile] = None
    last_error: Optional[ClassifiedError] = None
    default_wake_time: time
    default_sleep_time: time

    model_config = {"frozen": True}

    @property
    def is_authenticated(self) -> bool:
        return self.identity is not None


class PendingIntent(BaseModel):
    """The sensitive mutation to run once the current password is confirmed.

    ``new_value`` carries the new password or email for the change
    intents and is unused for account deletion.
    """

    kind: IntentKind
    new_value: Optional[str] = None

    model_config = {"frozen": True}


class ReauthOutcome(BaseModel):
    """Result of a single reauthentication transition."""

    state: ReauthState
    success: bool
    error: Optional[ClassifiedError] = None


class PropagationResult(BaseModel):
    """Result of a ``set_default_times`` call.

    Attributes
    ----------
    success:
        ``True`` when local defaults were stored and the remote batch
        (if any) committed.
    dropped:
        ``True`` when the call was ignored because a previous batch was
        still in flight.
    updated_count:
        Number of day schedules rewritten remotely.
    error:
        Classified failure of the remote batch, if any.
    """

    success: bool
    dropped: bool = False
    updated_count: int = 0
    error: Optional[ClassifiedError] = None
