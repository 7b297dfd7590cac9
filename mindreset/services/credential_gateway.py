"""
Supabase Credential Gateway.

Adapter between the session core and Supabase Auth (GoTrue).  Every
method either completes or raises ``ProviderError`` whose ``code`` is
the provider's machine-readable error code; transport failures and
offline mode use ``network_error``.

Account deletion uses the admin API and therefore the service-role
client held by ``DatabaseManager``.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, Optional, TypeVar

import httpx
from supabase import AuthError, AuthRetryableError

from mindreset.database import DatabaseManager
from mindreset.exceptions import ConfigurationError, ProviderError
from mindreset.logger import StructuredLogger
from mindreset.models.auth_models import FederatedCredential
from mindreset.models.user import Identity
from mindreset.ports import AuthStateCallback
from mindreset.services.base_service import BaseService

T = TypeVar("T")

_NETWORK_ERROR_CODE: str = "network_error"
_NOT_CONFIGURED_CODE: str = "not_configured"
_SIGNED_OUT_EVENTS: frozenset[str] = frozenset({"SIGNED_OUT", "USER_DELETED"})


def _to_identity(user: Any) -> Optional[Identity]:
    """Convert a GoTrue ``User`` into an ``Identity``."""
    if user is None:
        return None
    return Identity(
        id=str(user.id),
        email=user.email or None,
        email_verified=getattr(user, "email_confirmed_at", None) is not None,
    )


class AuthStateSubscription:
    """Handle for a GoTrue auth-state listener."""

    def __init__(self, unsubscribe: Callable[[], None]) -> None:
        self._unsubscribe = unsubscribe
        self._closed: bool = False

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._unsubscribe()


class SupabaseCredentialGateway(BaseService):
    """Identity provider operations backed by ``supabase.AsyncClient.auth``.

    Parameters
    ----------
    db:
        Database manager exposing the anon and service-role clients.
    logger:
        Structured JSON logger.
    """

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        super().__init__(logger)
        self._db: DatabaseManager = db

    # ------------------------------------------------------------------
    # Sign-in / sign-up
    # ------------------------------------------------------------------

    async def sign_in(self, email: str, password: str) -> Identity:
        response = await self._call(
            "sign_in",
            lambda: self._db.supabase.auth.sign_in_with_password(
                {"email": email, "password": password}
            ),
        )
        return self._require_identity(response.user, "sign_in")

    async def create_user(self, email: str, password: str) -> Identity:
        response = await self._call(
            "create_user",
            lambda: self._db.supabase.auth.sign_up({"email": email, "password": password}),
        )
        return self._require_identity(response.user, "create_user")

    async def sign_in_with_federated_credential(
        self, credential: FederatedCredential
    ) -> Identity:
        """Exchange a third-party OIDC token for a Supabase session."""
        params: dict[str, str] = {
            "provider": credential.provider,
            "token": credential.id_token,
        }
        if credential.nonce:
            params["nonce"] = credential.nonce
        if credential.access_token:
            params["access_token"] = credential.access_token

        response = await self._call(
            "sign_in_with_federated_credential",
            lambda: self._db.supabase.auth.sign_in_with_id_token(params),
        )
        return self._require_identity(response.user, "sign_in_with_federated_credential")

    async def sign_out(self) -> None:
        await self._call("sign_out", lambda: self._db.supabase.auth.sign_out())

    # ------------------------------------------------------------------
    # Email flows
    # ------------------------------------------------------------------

    async def send_password_reset(self, email: str) -> None:
        await self._call(
            "send_password_reset",
            lambda: self._db.supabase.auth.reset_password_for_email(email),
        )

    async def send_email_verification(self, email: str) -> None:
        await self._call(
            "send_email_verification",
            lambda: self._db.supabase.auth.resend({"type": "signup", "email": email}),
        )

    # ------------------------------------------------------------------
    # Sensitive mutations
    # ------------------------------------------------------------------

    async def reauthenticate(self, email: str, current_password: str) -> None:
        """Re-verify *current_password* for *email*.

        GoTrue has no dedicated re-verification endpoint for password
        users, so this performs a password sign-in for the same account.
        """
        await self.sign_in(email, current_password)

    async def update_password(self, new_password: str) -> None:
        await self._call(
            "update_password",
            lambda: self._db.supabase.auth.update_user({"password": new_password}),
        )

    async def update_email(self, new_email: str) -> None:
        await self._call(
            "update_email",
            lambda: self._db.supabase.auth.update_user({"email": new_email}),
        )

    async def delete_current_identity(self, user_id: str) -> None:
        """Delete *user_id* through the admin API, then drop the local session."""
        await self._call(
            "delete_current_identity",
            lambda: self._db.supabase_admin.auth.admin.delete_user(user_id),
        )
        try:
            await self._db.supabase.auth.sign_out()
        except AuthError as exc:
            # The identity no longer exists; the stale local session is harmless.
            self._logger.warning("Local sign-out after deletion failed: %s", exc)

    # ------------------------------------------------------------------
    # Session state
    # ------------------------------------------------------------------

    async def current_identity(self) -> Optional[Identity]:
        session = await self._call(
            "current_identity", lambda: self._db.supabase.auth.get_session()
        )
        return _to_identity(session.user) if session is not None else None

    def subscribe_to_auth_state(self, callback: AuthStateCallback) -> AuthStateSubscription:
        """Register *callback* for every auth-state change.

        GoTrue invokes listeners synchronously from whichever task
        changed the session; consumers must marshal onto their own
        sequence before touching shared state.
        """
        def _listener(event: Any, session: Any) -> None:
            if str(event) in _SIGNED_OUT_EVENTS or session is None:
                callback(None)
            else:
                callback(_to_identity(session.user))

        subscription = self._db.supabase.auth.on_auth_state_change(_listener)
        return AuthStateSubscription(subscription.unsubscribe)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _call(self, operation_name: str, operation: Callable[[], Awaitable[T]]) -> T:
        """Await *operation*, translating library errors into ``ProviderError``."""
        try:
            return await operation()
        except ConfigurationError as exc:
            self._logger.error("Auth misconfigured for %s: %s", operation_name, exc)
            raise ProviderError(_NOT_CONFIGURED_CODE, exc.message, original_error=exc) from exc
        except RuntimeError as exc:
            # Offline mode: DatabaseManager raised before any request.
            self._logger.warning("Auth unavailable for %s: %s", operation_name, exc)
            raise ProviderError(_NETWORK_ERROR_CODE, str(exc), original_error=exc) from exc
        except (AuthRetryableError, httpx.TransportError, ConnectionError, TimeoutError) as exc:
            self._logger.warning(
                "Network error during %s: %s",
                operation_name,
                exc,
                extra={"event": "AUTH_NETWORK_ERROR"},
            )
            raise ProviderError(_NETWORK_ERROR_CODE, str(exc), original_error=exc) from exc
        except AuthError as exc:
            code = str(getattr(exc, "code", "") or "")
            self._logger.warning(
                "Auth error during %s (%s): %s",
                operation_name,
                code or "no code",
                exc.message,
                extra={"event": "AUTH_FAILED", "error_code": code},
            )
            raise ProviderError(code, exc.message, original_error=exc) from exc

    @staticmethod
    def _require_identity(user: Any, operation_name: str) -> Identity:
        identity = _to_identity(user)
        if identity is None:
            raise ProviderError("", f"{operation_name} returned no user.")
        return identity
