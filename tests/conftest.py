"""Shared fixtures and in-memory port implementations."""

from __future__ import annotations

import asyncio
import itertools
from datetime import date, time
from pathlib import Path
from typing import Optional

import pytest

from mindreset.auth import SessionManager
from mindreset.database import DatabaseManager
from mindreset.exceptions import ProviderError, StoreError
from mindreset.logger import StructuredLogger
from mindreset.models.auth_models import FederatedCredential
from mindreset.models.day_schedule import DaySchedule
from mindreset.models.enums import ProfileCounter
from mindreset.models.user import Identity
from mindreset.ports import AuthStateCallback, DocumentCallback
from mindreset.schema import initialize_schema
from mindreset.services.app_settings_service import AppSettingsService
from mindreset.services.reauthentication import ReauthenticationFlow
from mindreset.services.schedule_propagation import SchedulePropagationService
from mindreset.services.session_controller import SessionController
from mindreset.utils.general import JsonValue


class FakeSubscription:
    def __init__(self, on_close=None) -> None:
        self.closed = False
        self.close_calls = 0
        self._on_close = on_close

    async def close(self) -> None:
        self.close_calls += 1
        if self.closed:
            return
        self.closed = True
        if self._on_close is not None:
            self._on_close()


class FakeCredentialGateway:
    """Identity provider double.

    ``fail_next[method]`` raises once for that method.  State changes are
    emitted to subscribers synchronously, like GoTrue does.
    """

    def __init__(self) -> None:
        self.accounts: dict[str, dict[str, str]] = {}
        self.current: Optional[Identity] = None
        self.fail_next: dict[str, Exception] = {}
        self.calls: list[str] = []
        self.listeners: list[AuthStateCallback] = []
        self._ids = itertools.count(1)

    def add_account(self, email: str, password: str, user_id: Optional[str] = None) -> Identity:
        user_id = user_id or f"user-{next(self._ids)}"
        self.accounts[email] = {"id": user_id, "password": password}
        return Identity(id=user_id, email=email)

    def emit(self, identity: Optional[Identity]) -> None:
        for listener in list(self.listeners):
            listener(identity)

    def _check(self, method: str) -> None:
        self.calls.append(method)
        error = self.fail_next.pop(method, None)
        if error is not None:
            raise error

    def _verify(self, email: str, password: str) -> Identity:
        account = self.accounts.get(email)
        if account is None:
            raise ProviderError("invalid_credentials", "Invalid login credentials")
        if account["password"] != password:
            raise ProviderError("invalid_credentials", "Invalid login credentials")
        return Identity(id=account["id"], email=email)

    async def sign_in(self, email: str, password: str) -> Identity:
        self._check("sign_in")
        identity = self._verify(email, password)
        self.current = identity
        self.emit(identity)
        return identity

    async def create_user(self, email: str, password: str) -> Identity:
        self._check("create_user")
        if email in self.accounts:
            raise ProviderError("user_already_exists", "User already registered")
        if len(password) < 6:
            raise ProviderError("weak_password", "Password should be at least 6 characters")
        identity = self.add_account(email, password)
        self.current = identity
        self.emit(identity)
        return identity

    async def sign_in_with_federated_credential(self, credential: FederatedCredential) -> Identity:
        self._check("sign_in_with_federated_credential")
        identity = Identity(id=f"{credential.provider}-{credential.id_token}", email=None)
        self.current = identity
        self.emit(identity)
        return identity

    async def sign_out(self) -> None:
        self._check("sign_out")
        self.current = None
        self.emit(None)

    async def send_password_reset(self, email: str) -> None:
        self._check("send_password_reset")

    async def send_email_verification(self, email: str) -> None:
        self._check("send_email_verification")

    async def reauthenticate(self, email: str, current_password: str) -> None:
        self._check("reauthenticate")
        self._verify(email, current_password)

    async def update_password(self, new_password: str) -> None:
        self._check("update_password")
        assert self.current is not None and self.current.email is not None
        self.accounts[self.current.email]["password"] = new_password

    async def update_email(self, new_email: str) -> None:
        self._check("update_email")
        assert self.current is not None and self.current.email is not None
        self.accounts[new_email] = self.accounts.pop(self.current.email)

    async def delete_current_identity(self, user_id: str) -> None:
        self._check("delete_current_identity")
        self.accounts = {e: a for e, a in self.accounts.items() if a["id"] != user_id}
        self.current = None
        self.emit(None)

    async def current_identity(self) -> Optional[Identity]:
        self._check("current_identity")
        return self.current

    def subscribe_to_auth_state(self, callback: AuthStateCallback) -> FakeSubscription:
        self.listeners.append(callback)
        return FakeSubscription(on_close=lambda: self.listeners.remove(callback))


class FakeProfileStore:
    """Profile document store double.

    ``gates[user_id]`` holds ``subscribe_to_document`` for that user
    until the event is set, simulating a slow initial read.
    """

    def __init__(self) -> None:
        self.documents: dict[str, dict[str, JsonValue]] = {}
        self.fail_next: dict[str, Exception] = {}
        self.gates: dict[str, asyncio.Event] = {}
        self.waiting: set[str] = set()
        self.subscriptions: list[tuple[str, DocumentCallback, FakeSubscription]] = []
        self.set_calls: list[tuple[str, bool]] = []

    @property
    def live_subscriptions(self) -> list[str]:
        return [uid for uid, _, sub in self.subscriptions if not sub.closed]

    def _check(self, method: str) -> None:
        error = self.fail_next.pop(method, None)
        if error is not None:
            raise error

    def _notify(self, user_id: str) -> None:
        document = self.documents.get(user_id)
        for uid, callback, sub in list(self.subscriptions):
            if uid == user_id and not sub.closed:
                callback(dict(document) if document is not None else None)

    def push(self, user_id: str, document: Optional[dict[str, JsonValue]]) -> None:
        """Simulate a server-side change."""
        if document is None:
            self.documents.pop(user_id, None)
        else:
            self.documents[user_id] = document
        self._notify(user_id)

    async def get_document(self, user_id: str) -> Optional[dict[str, JsonValue]]:
        self._check("get_document")
        document = self.documents.get(user_id)
        return dict(document) if document is not None else None

    async def set_document(
        self, user_id: str, fields: dict[str, JsonValue], if_absent: bool = False
    ) -> bool:
        self._check("set_document")
        self.set_calls.append((user_id, if_absent))
        if if_absent and user_id in self.documents:
            return False
        self.documents[user_id] = {**fields, "id": user_id, "created_at": "2025-03-24T08:00:00+00:00"}
        self._notify(user_id)
        return True

    async def update_document(self, user_id: str, fields: dict[str, JsonValue]) -> None:
        self._check("update_document")
        if user_id not in self.documents:
            raise StoreError(f"Profile {user_id} does not exist.")
        self.documents[user_id] = {**self.documents[user_id], **fields}
        self._notify(user_id)

    async def delete_document(self, user_id: str) -> None:
        self._check("delete_document")
        self.documents.pop(user_id, None)
        self._notify(user_id)

    async def subscribe_to_document(
        self, user_id: str, callback: DocumentCallback
    ) -> FakeSubscription:
        self._check("subscribe_to_document")
        gate = self.gates.get(user_id)
        if gate is not None:
            self.waiting.add(user_id)
            await gate.wait()
            self.waiting.discard(user_id)
        subscription = FakeSubscription()
        self.subscriptions.append((user_id, callback, subscription))
        document = self.documents.get(user_id)
        callback(dict(document) if document is not None else None)
        return subscription

    async def increment_counter(self, user_id: str, counter: ProfileCounter, amount: int) -> None:
        self._check("increment_counter")
        document = self.documents[user_id]
        document[str(counter)] = int(document.get(str(counter)) or 0) + amount
        self._notify(user_id)


class FakeScheduleStore:
    def __init__(self) -> None:
        self.schedules: list[DaySchedule] = []
        self.fail_next: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None
        self.waiting = False
        self.batch_calls = 0

    async def batch_update_where(
        self, user_id: str, on_or_after: date, fields: dict[str, JsonValue]
    ) -> int:
        self.batch_calls += 1
        if self.gate is not None:
            self.waiting = True
            await self.gate.wait()
            self.waiting = False
        if self.fail_next is not None:
            error, self.fail_next = self.fail_next, None
            raise error
        updated = 0
        for index, schedule in enumerate(self.schedules):
            if schedule.user_id == user_id and schedule.date >= on_or_after:
                self.schedules[index] = schedule.model_copy(
                    update={
                        "wake_time": time.fromisoformat(str(fields["wake_time"])),
                        "sleep_time": time.fromisoformat(str(fields["sleep_time"])),
                    }
                )
                updated += 1
        return updated

    async def list_schedules(self, user_id: str) -> list[DaySchedule]:
        return sorted(
            (s for s in self.schedules if s.user_id == user_id), key=lambda s: s.date
        )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def logger() -> StructuredLogger:
    return StructuredLogger(name="mindreset.tests", log_file="")


@pytest.fixture
def db(logger: StructuredLogger):
    manager = DatabaseManager(sqlite_path=Path(":memory:"), logger=logger)
    initialize_schema(manager.sqlite, logger)
    yield manager
    manager.close()


@pytest.fixture
def session(logger: StructuredLogger) -> SessionManager:
    return SessionManager(logger=logger)


@pytest.fixture
def gateway() -> FakeCredentialGateway:
    return FakeCredentialGateway()


@pytest.fixture
def profiles() -> FakeProfileStore:
    return FakeProfileStore()


@pytest.fixture
def schedules() -> FakeScheduleStore:
    return FakeScheduleStore()


@pytest.fixture
def settings(db: DatabaseManager, logger: StructuredLogger) -> AppSettingsService:
    return AppSettingsService(db=db, logger=logger)


@pytest.fixture
def controller(
    session: SessionManager,
    gateway: FakeCredentialGateway,
    profiles: FakeProfileStore,
    logger: StructuredLogger,
) -> SessionController:
    return SessionController(session=session, gateway=gateway, profiles=profiles, logger=logger)


@pytest.fixture
def reauth(
    session: SessionManager,
    gateway: FakeCredentialGateway,
    controller: SessionController,
    logger: StructuredLogger,
) -> ReauthenticationFlow:
    return ReauthenticationFlow(
        session=session, gateway=gateway, controller=controller, logger=logger
    )


@pytest.fixture
def propagation_date() -> date:
    return date(2025, 3, 24)


@pytest.fixture
def propagation(
    session: SessionManager,
    settings: AppSettingsService,
    schedules: FakeScheduleStore,
    logger: StructuredLogger,
    propagation_date: date,
) -> SchedulePropagationService:
    return SchedulePropagationService(
        session=session,
        settings=settings,
        schedules=schedules,
        logger=logger,
        today_provider=lambda: propagation_date,
    )
