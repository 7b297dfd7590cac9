"""
Session Controller.

Owns the authentication state machine: consumes the identity provider's
auth-state stream, keeps the mirrored ``UserProfile`` in step with the
remote ``users`` row, and exposes the sign-in / sign-out / account
operations the UI calls.

Concurrency model
-----------------
Everything runs on one asyncio event loop.  Provider and Realtime
callbacks are marshalled onto that loop before touching state.
Identity events go through an ``asyncio.Queue`` drained by a single
consumer task, so they are applied in the order the provider emitted
them.

Every profile subscription is tagged with a generation number.  Opening
or closing a subscription bumps the generation, and snapshots tagged
with an older generation are dropped.  A profile attach for an identity
that is no longer current is skipped.  Together these guarantee that a
slow read for a previous identity can never overwrite the profile of the
current one.

All public operations return an ``AuthResult`` and mirror failures into
``SessionManager.last_error``; exceptions are not raised to callers
except ``InvalidTransitionError`` for misuse.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable, Mapping
from typing import Any, Optional

from pydantic import ValidationError

from mindreset.auth import SessionManager
from mindreset.exceptions import InvalidTransitionError
from mindreset.logger import StructuredLogger
from mindreset.models.auth_models import AuthResult, ClassifiedError, FederatedCredential
from mindreset.models.enums import AuthErrorCode, ProfileCounter
from mindreset.models.user import Identity, UserProfile
from mindreset.ports import CredentialGateway, ProfileStore, Subscription
from mindreset.services.base_service import BaseService
from mindreset.services.error_classifier import classify_exception, error_for
from mindreset.utils.audit import log_audit_event
from mindreset.utils.general import JsonValue


class SessionController(BaseService):
    """Central session state machine.

    Parameters
    ----------
    session:
        Shared session state; only this controller writes ``identity``
        and ``profile``.
    gateway:
        Identity provider port.
    profiles:
        Profile document store port.
    logger:
        Structured JSON logger.
    """

    def __init__(
        self,
        session: SessionManager,
        gateway: CredentialGateway,
        profiles: ProfileStore,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._session: SessionManager = session
        self._gateway: CredentialGateway = gateway
        self._profiles: ProfileStore = profiles

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._events: Optional[asyncio.Queue[Optional[Identity]]] = None
        self._consumer: Optional[asyncio.Task[None]] = None
        self._identity_subscription: Optional[Subscription] = None

        self._profile_subscription: Optional[Subscription] = None
        self._profile_generation: int = 0
        # Identity whose profile is being (or has been) attached.
        self._profile_target_id: Optional[str] = None
        self._closed: bool = False

    # ==================================================================
    # Read access
    # ==================================================================

    @property
    def session(self) -> SessionManager:
        return self._session

    @property
    def has_profile_subscription(self) -> bool:
        """``True`` while a profile subscription is live."""
        return self._profile_subscription is not None

    @property
    def is_closed(self) -> bool:
        return self._closed

    # ==================================================================
    # Identity stream
    # ==================================================================

    async def subscribe_to_identity_changes(self) -> None:
        """Open the long-lived auth-state subscription.

        Must be called once, from the event loop that will host the
        controller.  The provider's current identity (if any) is applied
        as the first event.

        Raises:
            InvalidTransitionError: If already subscribed or closed.
        """
        if self._closed:
            raise InvalidTransitionError("SessionController is closed.")
        if self._identity_subscription is not None:
            raise InvalidTransitionError("Already subscribed to identity changes.")

        self._bind_loop()
        self._events = asyncio.Queue()
        self._consumer = asyncio.create_task(
            self._consume_identity_events(self._events), name="mindreset-identity-events"
        )
        self._identity_subscription = self._gateway.subscribe_to_auth_state(
            self._on_auth_state
        )
        self._logger.info("Subscribed to identity changes.")

        try:
            current = await self._gateway.current_identity()
        except Exception as exc:
            self._record_failure(exc, "current_identity")
            return
        if current is not None:
            self._events.put_nowait(current)

    async def drain_identity_events(self) -> None:
        """Wait until every queued identity event has been applied."""
        if self._events is not None and not self._closed:
            await self._events.join()

    def _on_auth_state(self, identity: Optional[Identity]) -> None:
        """Provider callback; may run on any thread."""
        if self._closed or self._events is None:
            return
        self._dispatch(self._events.put_nowait, identity)

    async def _consume_identity_events(
        self, events: asyncio.Queue[Optional[Identity]]
    ) -> None:
        while True:
            identity = await events.get()
            try:
                await self._apply_identity(identity)
            except Exception as exc:
                self._logger.error(
                    "Failed to apply identity event: %s", exc, exc_info=True
                )
                self._session.set_error(classify_exception(exc))
            finally:
                events.task_done()

    async def _apply_identity(self, identity: Optional[Identity]) -> None:
        if self._closed:
            return
        if identity is None:
            if self._session.identity is None and self._profile_subscription is None:
                return
            previous = self._session.identity
            self._profile_target_id = None
            await self._detach_profile_listener()
            self._session.clear()
            self._logger.info("Identity cleared by provider.")
            if previous is not None:
                log_audit_event(
                    self._logger, "SIGNED_OUT", "Identity", previous.id, previous.id
                )
            return
        await self._adopt_identity(identity)

    async def _adopt_identity(
        self, identity: Identity, email: Optional[str] = None, explicit: bool = False
    ) -> None:
        """Make *identity* current, then verify and attach its profile.

        Repeated provider events for the identity already being tracked
        only refresh the identity fields.  An explicit sign-in always
        re-runs verify and attach.
        """
        if self._profile_target_id == identity.id and not explicit:
            if self._session.identity != identity:
                self._session.set_identity(identity)
            return

        self._profile_target_id = identity.id
        self._session.set_identity(identity)

        await self.create_or_verify_profile(identity, identity.email or email or "")
        if self._is_current(identity):
            await self.attach_profile_listener(identity)
        else:
            self._logger.info(
                "Skipping profile attach for superseded identity %s.", identity.id
            )

    # ==================================================================
    # Profile mirror
    # ==================================================================

    async def create_or_verify_profile(self, identity: Identity, email: str) -> bool:
        """Ensure the profile row for *identity* exists.

        Reads the row; if absent writes the default document with a
        conditional insert that never overwrites an existing row.
        Idempotent.  Returns ``False`` (and records ``last_error``) on
        failure.
        """
        try:
            existing = await self._profiles.get_document(identity.id)
            if existing is not None:
                return True
            created = await self._profiles.set_document(
                identity.id,
                UserProfile.default_document(identity.id, email),
                if_absent=True,
            )
        except Exception as exc:
            self._record_failure(exc, "create_or_verify_profile")
            return False

        if created:
            log_audit_event(
                self._logger, "PROFILE_CREATED", "UserProfile", identity.id, identity.id
            )
        return True

    async def attach_profile_listener(self, identity: Identity) -> None:
        """Replace any profile subscription with one for *identity*.

        The store delivers the current document first; later changes
        arrive as they happen.  Snapshots are decoded into
        ``UserProfile``; decode failures set ``PROFILE_DECODE_FAILURE``
        and leave the subscription open.
        """
        self._bind_loop()
        generation = await self._detach_profile_listener()
        if self._closed:
            return
        user_id = identity.id

        def _on_document(document: Optional[Mapping[str, JsonValue]]) -> None:
            self._dispatch(self._handle_profile_document, generation, user_id, document)

        try:
            subscription = await self._profiles.subscribe_to_document(user_id, _on_document)
        except Exception as exc:
            if generation == self._profile_generation:
                self._record_failure(
                    exc, "attach_profile_listener", AuthErrorCode.PROFILE_DECODE_FAILURE
                )
            return

        if generation != self._profile_generation or self._closed:
            # Superseded while the subscription was opening.
            await subscription.close()
            return

        self._profile_subscription = subscription
        self._logger.info("Profile listener attached for %s.", user_id)

    async def _detach_profile_listener(self) -> int:
        """Invalidate pending snapshots and close the live subscription.

        Returns the new generation number.
        """
        self._profile_generation += 1
        generation = self._profile_generation
        subscription, self._profile_subscription = self._profile_subscription, None
        if subscription is not None:
            await subscription.close()
            self._logger.info("Profile listener detached.")
        return generation

    def _handle_profile_document(
        self,
        generation: int,
        user_id: str,
        document: Optional[Mapping[str, Any]],
    ) -> None:
        if self._closed or generation != self._profile_generation:
            self._logger.debug("Dropping stale profile snapshot for %s.", user_id)
            return

        current = self._session.identity
        if current is None or current.id != user_id:
            return

        if document is None:
            self._logger.error("Profile row missing for signed-in identity %s.", user_id)
            self._session.set_error(error_for(AuthErrorCode.PROFILE_MISSING))
            return

        try:
            profile = UserProfile.model_validate(dict(document))
        except ValidationError as exc:
            self._logger.warning("Failed to decode profile %s: %s", user_id, exc)
            self._session.set_error(error_for(AuthErrorCode.PROFILE_DECODE_FAILURE))
            return

        self._session.set_profile(profile)

    # ==================================================================
    # Sign-in / sign-up / sign-out
    # ==================================================================

    async def sign_in(self, email: str, password: str) -> AuthResult:
        """Authenticate with email and password."""
        self._bind_loop()
        email = self.normalize_email(email)
        try:
            identity = await self._gateway.sign_in(email, password)
        except Exception as exc:
            return self._fail(exc, "sign_in")
        return await self._complete_sign_in(identity, email, "SIGN_IN")

    async def create_account(self, email: str, password: str) -> AuthResult:
        """Register a new identity and create its profile row.

        The returned result is what gates the one-time post-signup
        action (default habits).
        """
        self._bind_loop()
        email = self.normalize_email(email)
        try:
            identity = await self._gateway.create_user(email, password)
        except Exception as exc:
            return self._fail(exc, "create_account")
        return await self._complete_sign_in(identity, email, "ACCOUNT_CREATED")

    async def sign_in_with_federated_credential(
        self, credential: FederatedCredential
    ) -> AuthResult:
        """Authenticate with a third-party OIDC token."""
        self._bind_loop()
        try:
            identity = await self._gateway.sign_in_with_federated_credential(credential)
        except Exception as exc:
            return self._fail(exc, "sign_in_with_federated_credential")
        return await self._complete_sign_in(
            identity, identity.email or "", f"SIGN_IN_{credential.provider.upper()}"
        )

    async def _complete_sign_in(self, identity: Identity, email: str, action: str) -> AuthResult:
        await self._adopt_identity(identity, email, explicit=True)
        self._logger.info(
            "User authenticated: %s",
            identity.id,
            extra={"event": action, "user_id": identity.id},
        )
        log_audit_event(self._logger, action, "Identity", identity.id, identity.id)
        return AuthResult(success=True, user_id=identity.id, email=identity.email or email)

    async def sign_out(self) -> AuthResult:
        """Sign out; identity and profile are cleared before this returns."""
        previous = self._session.identity
        try:
            await self._gateway.sign_out()
        except Exception as exc:
            return self._fail(exc, "sign_out")

        self._profile_target_id = None
        self._profile_generation += 1
        subscription, self._profile_subscription = self._profile_subscription, None
        self._session.clear()
        if subscription is not None:
            await subscription.close()

        if previous is not None:
            log_audit_event(self._logger, "SIGN_OUT", "Identity", previous.id, previous.id)
        return AuthResult(success=True)

    # ==================================================================
    # Email flows
    # ==================================================================

    async def reset_password(self, email: str) -> AuthResult:
        email = self.normalize_email(email)
        try:
            await self._gateway.send_password_reset(email)
        except Exception as exc:
            return self._fail(exc, "reset_password")
        self._logger.info("Password reset email sent.", extra={"event": "PASSWORD_RESET"})
        return AuthResult(success=True, email=email)

    async def send_verification_email(self) -> AuthResult:
        identity = self._session.identity
        if identity is None or not identity.email:
            return self._fail_with(error_for(AuthErrorCode.ACCOUNT_NOT_FOUND), "send_verification_email")
        try:
            await self._gateway.send_email_verification(identity.email)
        except Exception as exc:
            return self._fail(exc, "send_verification_email")
        return AuthResult(success=True, user_id=identity.id, email=identity.email)

    # ==================================================================
    # Sensitive mutations (run through ReauthenticationFlow)
    # ==================================================================

    async def change_password(self, new_password: str) -> AuthResult:
        identity = self._session.identity
        if identity is None:
            return self._fail_with(error_for(AuthErrorCode.ACCOUNT_NOT_FOUND), "change_password")
        try:
            await self._gateway.update_password(new_password)
        except Exception as exc:
            return self._fail(exc, "change_password")
        log_audit_event(self._logger, "PASSWORD_CHANGED", "Identity", identity.id, identity.id)
        return AuthResult(success=True, user_id=identity.id, email=identity.email)

    async def change_email(self, new_email: str) -> AuthResult:
        """Change the identity's email, then mirror it into the profile row.

        The provider change is authoritative; a failure to update the
        profile row is recorded in ``last_error`` but does not fail the
        operation.
        """
        identity = self._session.identity
        if identity is None:
            return self._fail_with(error_for(AuthErrorCode.ACCOUNT_NOT_FOUND), "change_email")
        new_email = self.normalize_email(new_email)
        try:
            await self._gateway.update_email(new_email)
        except Exception as exc:
            return self._fail(exc, "change_email")

        try:
            await self._profiles.update_document(identity.id, {"email": new_email})
        except Exception as exc:
            self._record_failure(exc, "change_email (profile)")

        log_audit_event(
            self._logger,
            "EMAIL_CHANGED",
            "Identity",
            identity.id,
            identity.id,
            {"old_email": identity.email, "new_email": new_email},
        )
        return AuthResult(success=True, user_id=identity.id, email=new_email)

    async def delete_account(self) -> AuthResult:
        """Delete the profile row and then the identity.

        The profile listener is detached first so the deletion is not
        reported as a missing profile.  Profile deletion is best effort.
        If identity deletion fails, the default profile row is restored
        and re-attached, ``last_error`` carries the identity failure and
        the identity stays signed in so the whole flow can be retried.
        """
        identity = self._session.identity
        if identity is None:
            return self._fail_with(error_for(AuthErrorCode.ACCOUNT_NOT_FOUND), "delete_account")

        await self._detach_profile_listener()

        try:
            await self._profiles.delete_document(identity.id)
        except Exception as exc:
            self._logger.warning(
                "Profile deletion failed for %s, continuing: %s", identity.id, exc
            )

        try:
            await self._gateway.delete_current_identity(identity.id)
        except Exception as exc:
            error = classify_exception(exc)
            self._logger.warning(
                "Identity deletion failed for %s: %s",
                identity.id,
                exc,
                extra={"event": "ACCOUNT_DELETE_FAILED", "error_code": str(error.code)},
            )
            if self._is_current(identity):
                await self.create_or_verify_profile(identity, identity.email or "")
            if self._is_current(identity):
                await self.attach_profile_listener(identity)
            return self._fail_with(error, "delete_account")

        self._profile_target_id = None
        self._profile_generation += 1
        self._session.clear()
        log_audit_event(self._logger, "ACCOUNT_DELETED", "Identity", identity.id, identity.id)
        return AuthResult(success=True, user_id=identity.id, email=identity.email)

    # ==================================================================
    # Profile edits
    # ==================================================================

    async def update_display_name(self, display_name: str) -> AuthResult:
        return await self._update_profile_fields(
            {"display_name": display_name.strip()}, "update_display_name"
        )

    async def mark_default_habits_created(self) -> AuthResult:
        """Record that the one-time post-signup defaults were created."""
        return await self._update_profile_fields(
            {"default_habits_created": True}, "mark_default_habits_created"
        )

    async def award_points(self, points: int) -> AuthResult:
        return await self._increment(ProfileCounter.TOTAL_POINTS, points)

    async def award_meditation_time(self, minutes: int) -> AuthResult:
        return await self._increment(ProfileCounter.MEDITATION_TIME, minutes)

    async def award_deep_work_time(self, minutes: int) -> AuthResult:
        return await self._increment(ProfileCounter.DEEP_WORK_TIME, minutes)

    async def _update_profile_fields(
        self, fields: dict[str, JsonValue], operation_name: str
    ) -> AuthResult:
        identity = self._session.identity
        if identity is None:
            return self._fail_with(error_for(AuthErrorCode.ACCOUNT_NOT_FOUND), operation_name)
        try:
            await self._profiles.update_document(identity.id, fields)
        except Exception as exc:
            return self._fail(exc, operation_name)
        return AuthResult(success=True, user_id=identity.id, email=identity.email)

    async def _increment(self, counter: ProfileCounter, amount: int) -> AuthResult:
        """Atomically add *amount* to *counter* on the remote row.

        Raises:
            ValueError: If *amount* is not positive.
        """
        if amount <= 0:
            raise ValueError(f"{counter} increment must be positive, got {amount}.")
        identity = self._session.identity
        if identity is None:
            return self._fail_with(error_for(AuthErrorCode.ACCOUNT_NOT_FOUND), f"award {counter}")
        try:
            await self._profiles.increment_counter(identity.id, counter, amount)
        except Exception as exc:
            return self._fail(exc, f"award {counter}")
        return AuthResult(success=True, user_id=identity.id, email=identity.email)

    # ==================================================================
    # Teardown
    # ==================================================================

    async def close(self) -> None:
        """Stop the consumer and release every subscription.  Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._profile_generation += 1

        consumer, self._consumer = self._consumer, None
        identity_subscription, self._identity_subscription = self._identity_subscription, None
        profile_subscription, self._profile_subscription = self._profile_subscription, None

        if consumer is not None:
            consumer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await consumer
        if identity_subscription is not None:
            await identity_subscription.close()
        if profile_subscription is not None:
            await profile_subscription.close()
        self._logger.info("SessionController closed.")

    # ==================================================================
    # Helpers
    # ==================================================================

    @staticmethod
    def normalize_email(email: str) -> str:
        """Normalise an email address: strip whitespace and lowercase."""
        return email.strip().lower()

    def _is_current(self, identity: Identity) -> bool:
        current = self._session.identity
        return (
            not self._closed
            and current is not None
            and current.id == identity.id
            and self._profile_target_id == identity.id
        )

    def _bind_loop(self) -> None:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()

    def _dispatch(self, handler: Callable[..., None], *args: Any) -> None:
        """Run *handler* on the controller's loop.

        Called on the loop itself the handler runs inline; from any
        other thread it is scheduled with ``call_soon_threadsafe``.
        """
        loop = self._loop
        try:
            running: Optional[asyncio.AbstractEventLoop] = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if loop is None or running is loop:
            handler(*args)
        elif not loop.is_closed():
            loop.call_soon_threadsafe(handler, *args)

    def _record_failure(
        self,
        exc: BaseException,
        operation_name: str,
        store_default: AuthErrorCode = AuthErrorCode.PROFILE_WRITE_FAILURE,
    ) -> ClassifiedError:
        error = classify_exception(exc, store_default)
        if error.code == AuthErrorCode.UNCLASSIFIED:
            self._logger.error(
                "%s failed: %s", operation_name, exc, exc_info=exc,
                extra={"event": "SESSION_ERROR", "error_code": str(error.code)},
            )
        else:
            self._logger.warning(
                "%s failed (%s): %s", operation_name, error.code, exc,
                extra={"event": "SESSION_ERROR", "error_code": str(error.code)},
            )
        self._session.set_error(error)
        return error

    def _fail(self, exc: BaseException, operation_name: str) -> AuthResult:
        return AuthResult.failure(self._record_failure(exc, operation_name))

    def _fail_with(self, error: ClassifiedError, operation_name: str) -> AuthResult:
        self._logger.warning("%s failed (%s).", operation_name, error.code)
        self._session.set_error(error)
        return AuthResult.failure(error)
