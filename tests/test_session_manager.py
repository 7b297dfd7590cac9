"""Unit tests for SessionManager."""

from datetime import time

import pytest
from pydantic import ValidationError

from mindreset.auth import SessionManager
from mindreset.models import AuthErrorCode, Identity, UserProfile
from mindreset.services.error_classifier import error_for


def _profile(user_id: str) -> UserProfile:
    return UserProfile(id=user_id, email=f"{user_id}@example.com")


class TestState:
    def test_defaults(self):
        session = SessionManager()

        assert session.identity is None
        assert session.is_authenticated is False
        assert session.default_wake_time == time(7, 0)
        assert session.default_sleep_time == time(23, 0)

    def test_switching_identity_drops_foreign_profile(self, session):
        session.set_identity(Identity(id="a"))
        session.set_profile(_profile("a"))

        session.set_identity(Identity(id="a", email="a@example.com", email_verified=True))
        assert session.profile is not None

        session.set_identity(Identity(id="b"))
        assert session.profile is None

    def test_clear(self, session):
        session.set_identity(Identity(id="a"))
        session.set_profile(_profile("a"))
        session.set_error(error_for(AuthErrorCode.PROFILE_MISSING))

        session.clear()

        assert session.identity is None
        assert session.profile is None
        assert session.last_error is not None

    def test_clear_error(self, session):
        session.set_error(error_for(AuthErrorCode.WEAK_PASSWORD))

        session.clear_error()

        assert session.last_error is None


class TestObservers:
    def test_subscribe_delivers_current_snapshot(self, session):
        received = []

        session.subscribe(received.append)

        assert len(received) == 1
        assert received[0].identity is None

    def test_every_change_is_published(self, session):
        received = []
        session.subscribe(received.append)

        session.set_identity(Identity(id="a"))
        session.set_default_times(time(6, 0), time(22, 0))

        assert received[-2].identity.id == "a"
        assert received[-1].default_wake_time == time(6, 0)
        assert received[-1].is_authenticated is True

    def test_unsubscribe(self, session):
        received = []
        unsubscribe = session.subscribe(received.append)

        unsubscribe()
        unsubscribe()
        session.set_identity(Identity(id="a"))

        assert len(received) == 1

    def test_snapshots_are_immutable(self, session):
        snapshot = session.snapshot()

        with pytest.raises(ValidationError):
            snapshot.identity = Identity(id="x")

    def test_failing_listener_does_not_block_others(self, session):
        received = []

        def broken(_snapshot):
            raise RuntimeError("observer bug")

        session.subscribe(received.append)
        session._listeners.insert(0, broken)
        received.clear()

        session.set_identity(Identity(id="a"))

        assert len(received) == 1
        assert received[0].identity.id == "a"
