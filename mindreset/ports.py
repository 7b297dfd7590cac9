"""
Infrastructure Ports.

Structural interfaces between the session core and its external
collaborators.  The production implementations are
``SupabaseCredentialGateway``, ``ProfileRepository`` and
``DayScheduleRepository``; the test-suite supplies in-memory fakes.

Gateway methods raise ``ProviderError``; store methods raise
``StoreError``.  Callbacks may be invoked from any thread.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import date
from typing import Optional, Protocol

from mindreset.models.auth_models import FederatedCredential
from mindreset.models.day_schedule import DaySchedule
from mindreset.models.enums import ProfileCounter
from mindreset.models.user import Identity
from mindreset.utils.general import JsonValue

__all__ = [
    "AuthStateCallback",
    "CredentialGateway",
    "DocumentCallback",
    "ProfileStore",
    "ScheduleStore",
    "Subscription",
]

AuthStateCallback = Callable[[Optional[Identity]], None]
"""Receives the new identity, or ``None`` after sign-out."""

DocumentCallback = Callable[[Optional[Mapping[str, JsonValue]]], None]
"""Receives the raw document, or ``None`` when it does not exist."""


class Subscription(Protocol):
    """Handle for a live stream; ``close()`` is idempotent."""

    async def close(self) -> None: ...


class CredentialGateway(Protocol):
    """Identity provider operations."""

    async def sign_in(self, email: str, password: str) -> Identity: ...

    async def create_user(self, email: str, password: str) -> Identity: ...

    async def sign_in_with_federated_credential(
        self, credential: FederatedCredential
    ) -> Identity: ...

    async def sign_out(self) -> None: ...

    async def send_password_reset(self, email: str) -> None: ...

    async def send_email_verification(self, email: str) -> None: ...

    async def reauthenticate(self, email: str, current_password: str) -> None: ...

    async def update_password(self, new_password: str) -> None: ...

    async def update_email(self, new_email: str) -> None: ...

    async def delete_current_identity(self, user_id: str) -> None: ...

    async def current_identity(self) -> Optional[Identity]: ...

    def subscribe_to_auth_state(self, callback: AuthStateCallback) -> Subscription: ...


class ProfileStore(Protocol):
    """Per-identity profile documents."""

    async def get_document(self, user_id: str) -> Optional[dict[str, JsonValue]]: ...

    async def set_document(
        self, user_id: str, fields: dict[str, JsonValue], if_absent: bool = False
    ) -> bool: ...

    async def update_document(self, user_id: str, fields: dict[str, JsonValue]) -> None: ...

    async def delete_document(self, user_id: str) -> None: ...

    async def subscribe_to_document(
        self, user_id: str, callback: DocumentCallback
    ) -> Subscription: ...

    async def increment_counter(
        self, user_id: str, counter: ProfileCounter, amount: int
    ) -> None: ...


class ScheduleStore(Protocol):
    """Per-date day schedules."""

    async def batch_update_where(
        self, user_id: str, on_or_after: date, fields: dict[str, JsonValue]
    ) -> int: ...

    async def list_schedules(self, user_id: str) -> list[DaySchedule]: ...
