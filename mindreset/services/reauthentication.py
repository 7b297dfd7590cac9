"""
Reauthentication Flow.

Gate in front of the sensitive account mutations (password change,
email change, account deletion).  The mutation is only executed after
the signed-in user re-enters their current password::

    IDLE --begin()--> AWAITING_CREDENTIAL
    AWAITING_CREDENTIAL --confirm() accepted--> CONFIRMED (mutation runs) --> IDLE
    AWAITING_CREDENTIAL --confirm() rejected--> FAILED --> AWAITING_CREDENTIAL
    AWAITING_CREDENTIAL --cancel()--> CANCELLED --> IDLE

The supplied password is passed straight to the gateway and never
stored.
"""

from __future__ import annotations

from typing import Optional

from mindreset.auth import SessionManager
from mindreset.exceptions import InvalidTransitionError
from mindreset.logger import StructuredLogger
from mindreset.models.auth_models import AuthResult, ClassifiedError
from mindreset.models.enums import AuthErrorCode, IntentKind, ReauthState
from mindreset.models.session_models import PendingIntent, ReauthOutcome
from mindreset.ports import CredentialGateway
from mindreset.services.base_service import BaseService
from mindreset.services.error_classifier import classify_exception, error_for
from mindreset.services.session_controller import SessionController

_INTENTS_WITH_VALUE: frozenset[IntentKind] = frozenset(
    {IntentKind.CHANGE_PASSWORD, IntentKind.CHANGE_EMAIL}
)


class ReauthenticationFlow(BaseService):
    """Credential re-verification state machine.

    Parameters
    ----------
    session:
        Shared session state (source of the signed-in email and sink
        for ``last_error``).
    gateway:
        Identity provider port used to re-verify the password.
    controller:
        Executes the pending mutation once the credential is accepted.
    logger:
        Structured JSON logger.
    """

    def __init__(
        self,
        session: SessionManager,
        gateway: CredentialGateway,
        controller: SessionController,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._session = session
        self._gateway = gateway
        self._controller = controller
        self._state: ReauthState = ReauthState.IDLE
        self._intent: Optional[PendingIntent] = None
        # Bumped by begin() and cancel(); a confirm() whose attempt is no
        # longer current never runs its mutation.
        self._attempt: int = 0
        self._confirming_attempt: Optional[int] = None

    @property
    def state(self) -> ReauthState:
        return self._state

    @property
    def pending_intent(self) -> Optional[PendingIntent]:
        return self._intent

    def begin(self, intent: PendingIntent) -> None:
        """Start the flow for *intent*.

        Raises:
            InvalidTransitionError: If a flow is already running or no
                identity with an email is signed in.
            ValueError: If a change intent carries no new value.
        """
        if self._state != ReauthState.IDLE:
            raise InvalidTransitionError(
                f"Cannot begin reauthentication while {self._state}."
            )
        identity = self._session.identity
        if identity is None or not identity.email:
            raise InvalidTransitionError(
                "Reauthentication requires a signed-in identity with an email."
            )
        if intent.kind in _INTENTS_WITH_VALUE and not (intent.new_value or "").strip():
            raise ValueError(f"{intent.kind} requires a new value.")

        self._attempt += 1
        self._intent = intent
        self._state = ReauthState.AWAITING_CREDENTIAL
        self._logger.info(
            "Reauthentication started for %s.",
            intent.kind,
            extra={"event": "REAUTH_BEGIN", "user_id": identity.id},
        )

    async def confirm(self, current_password: str) -> ReauthOutcome:
        """Verify *current_password* and, if accepted, run the pending
        mutation exactly once.

        A rejected credential leaves the flow in ``AWAITING_CREDENTIAL``
        so the user can retry.  If the flow is cancelled while the
        credential is being verified, the mutation is not run.

        Raises:
            InvalidTransitionError: If not awaiting a credential, or a
                confirmation is already in progress.
        """
        if self._state != ReauthState.AWAITING_CREDENTIAL or self._intent is None:
            raise InvalidTransitionError(f"Cannot confirm while {self._state}.")
        if self._confirming_attempt == self._attempt:
            raise InvalidTransitionError("A confirmation is already in progress.")

        identity = self._session.identity
        if identity is None or not identity.email:
            self._reset()
            error = error_for(AuthErrorCode.ACCOUNT_NOT_FOUND)
            self._session.set_error(error)
            return ReauthOutcome(state=ReauthState.FAILED, success=False, error=error)

        intent = self._intent
        attempt = self._attempt
        self._confirming_attempt = attempt
        try:
            try:
                await self._gateway.reauthenticate(identity.email, current_password)
            except Exception as exc:
                if attempt != self._attempt:
                    return self._cancelled_during_verification()
                error = classify_exception(exc)
                self._logger.warning(
                    "Reauthentication rejected (%s).",
                    error.code,
                    extra={"event": "REAUTH_FAILED", "user_id": identity.id},
                )
                self._session.set_error(error)
                return ReauthOutcome(state=ReauthState.FAILED, success=False, error=error)

            if attempt != self._attempt:
                return self._cancelled_during_verification()

            self._reset()
            result = await self._execute(intent)
        finally:
            if self._confirming_attempt == attempt:
                self._confirming_attempt = None

        if result.success:
            return ReauthOutcome(state=ReauthState.CONFIRMED, success=True)
        return ReauthOutcome(
            state=ReauthState.CONFIRMED,
            success=False,
            error=ClassifiedError(
                code=result.error_code or AuthErrorCode.UNCLASSIFIED,
                message=result.error_message or "",
            ),
        )

    def cancel(self) -> ReauthOutcome:
        """Abort the flow; nothing is mutated.  A no-op when idle."""
        if self._state == ReauthState.AWAITING_CREDENTIAL:
            self._logger.info("Reauthentication cancelled.", extra={"event": "REAUTH_CANCEL"})
        self._attempt += 1
        self._reset()
        return ReauthOutcome(state=ReauthState.CANCELLED, success=False)

    def _cancelled_during_verification(self) -> ReauthOutcome:
        self._logger.info("Reauthentication cancelled during verification.")
        return ReauthOutcome(state=ReauthState.CANCELLED, success=False)

    def _reset(self) -> None:
        self._intent = None
        self._state = ReauthState.IDLE

    async def _execute(self, intent: PendingIntent) -> AuthResult:
        if intent.kind == IntentKind.CHANGE_PASSWORD:
            return await self._controller.change_password(intent.new_value or "")
        if intent.kind == IntentKind.CHANGE_EMAIL:
            return await self._controller.change_email(intent.new_value or "")
        return await self._controller.delete_account()
