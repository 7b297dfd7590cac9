"""
Session State.

Provides an injectable ``SessionManager`` that holds the signed-in
identity, the mirrored user profile, the last classified error and the
default schedule times for the lifetime of the process.

Observers register with :meth:`SessionManager.subscribe` and receive an
immutable ``SessionSnapshot`` after every change.

Usage::

    from mindreset.auth import SessionManager

    session = SessionManager(default_wake_time=time(7, 0),
                             default_sleep_time=time(23, 0))
    unsubscribe = session.subscribe(lambda snap: print(snap.identity))
    ...
    unsubscribe()
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import time
from typing import Optional

from mindreset.logger import StructuredLogger
from mindreset.models.auth_models import ClassifiedError
from mindreset.models.session_models import SessionSnapshot
from mindreset.models.user import Identity, UserProfile

SessionListener = Callable[[SessionSnapshot], None]


class SessionManager:
    """Injectable holder for the process-wide session state.

    ``identity`` and ``profile`` are written only by the session
    controller.  ``last_error`` is written by any failing operation and
    cleared by the UI through :meth:`clear_error`.

    All fields are guarded by a re-entrant lock so readers on other
    threads always see a consistent snapshot.  Listeners are invoked
    outside the lock, in registration order.
    """

    def __init__(
        self,
        default_wake_time: time = time(7, 0),
        default_sleep_time: time = time(23, 0),
        logger: Optional[StructuredLogger] = None,
    ) -> None:
        self._lock: threading.RLock = threading.RLock()
        self._identity: Optional[Identity] = None
        self._profile: Optional[UserProfile] = None
        self._last_error: Optional[ClassifiedError] = None
        self._default_wake_time: time = default_wake_time
        self._default_sleep_time: time = default_sleep_time
        self._listeners: list[SessionListener] = []
        self._logger: Optional[StructuredLogger] = logger

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def identity(self) -> Optional[Identity]:
        with self._lock:
            return self._identity

    @property
    def profile(self) -> Optional[UserProfile]:
        with self._lock:
            return self._profile

    @property
    def last_error(self) -> Optional[ClassifiedError]:
        with self._lock:
            return self._last_error

    @property
    def default_wake_time(self) -> time:
        with self._lock:
            return self._default_wake_time

    @property
    def default_sleep_time(self) -> time:
        with self._lock:
            return self._default_sleep_time

    @property
    def is_authenticated(self) -> bool:
        """``True`` when an identity is signed in."""
        with self._lock:
            return self._identity is not None

    def snapshot(self) -> SessionSnapshot:
        """Return an immutable copy of the current state."""
        with self._lock:
            return SessionSnapshot(
                identity=self._identity,
                profile=self._profile,
                last_error=self._last_error,
                default_wake_time=self._default_wake_time,
                default_sleep_time=self._default_sleep_time,
            )

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def set_identity(self, identity: Optional[Identity]) -> None:
        """Replace the identity.

        A profile that belongs to a different identity is dropped in the
        same step, so observers never see A's identity with B's profile.
        """
        with self._lock:
            self._identity = identity
            if identity is None or (
                self._profile is not None and self._profile.id != identity.id
            ):
                self._profile = None
        self._publish()

    def set_profile(self, profile: Optional[UserProfile]) -> None:
        with self._lock:
            self._profile = profile
        self._publish()

    def set_error(self, error: ClassifiedError) -> None:
        with self._lock:
            self._last_error = error
        self._publish()

    def clear_error(self) -> None:
        """Dismiss the last error (called by the UI after displaying it)."""
        with self._lock:
            self._last_error = None
        self._publish()

    def set_default_times(self, wake: time, sleep: time) -> None:
        with self._lock:
            self._default_wake_time = wake
            self._default_sleep_time = sleep
        self._publish()

    def clear(self) -> None:
        """Remove identity and profile in one step, ending the session."""
        with self._lock:
            self._identity = None
            self._profile = None
        self._publish()

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register *listener* and return a callable that removes it.

        The listener immediately receives the current snapshot.
        """
        with self._lock:
            self._listeners.append(listener)
            current = self.snapshot()
        listener(current)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def _publish(self) -> None:
        with self._lock:
            listeners = list(self._listeners)
            current = self.snapshot()
        for listener in listeners:
            try:
                listener(current)
            except Exception as exc:
                if self._logger is None:
                    raise
                self._logger.error("Session listener failed: %s", exc, exc_info=True)
