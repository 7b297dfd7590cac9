"""
Authentication Pipeline Models.

Pydantic models for the auth request/response contracts between the
session controller and the UI layer, plus the provider error-code
mapping consumed by the error classifier.

Every auth operation returns a structured, inspectable result rather
than raw strings or exception side-channels.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel

from mindreset.models.enums import AuthErrorCode


# ---------------------------------------------------------------------------
# Human-readable messages (stable, shown verbatim by the UI)
# ---------------------------------------------------------------------------

ERROR_MESSAGES: dict[AuthErrorCode, str] = {
    AuthErrorCode.INVALID_EMAIL_FORMAT: "The email address is badly formatted.",
    AuthErrorCode.EMAIL_ALREADY_IN_USE: (
        "The email address is already in use by another account."
    ),
    AuthErrorCode.WEAK_PASSWORD: (
        "The password is too weak. Please choose a stronger password."
    ),
    AuthErrorCode.WRONG_CREDENTIALS: (
        "The email address or password you entered is incorrect. "
        "Please double-check your credentials and try again."
    ),
    AuthErrorCode.ACCOUNT_NOT_FOUND: (
        "No account found with this email. Please sign up."
    ),
    AuthErrorCode.NETWORK_UNREACHABLE: (
        "Network error. Please check your internet connection and try again."
    ),
    AuthErrorCode.PROFILE_DECODE_FAILURE: (
        "Your profile could not be read. Some details may be out of date."
    ),
    AuthErrorCode.PROFILE_WRITE_FAILURE: (
        "Your changes could not be saved. Please try again."
    ),
    AuthErrorCode.PROFILE_MISSING: (
        "Your profile is missing. Please sign out and sign in again."
    ),
}


# ---------------------------------------------------------------------------
# Provider error-code mapping
# ---------------------------------------------------------------------------

PROVIDER_ERROR_MAP: dict[str, AuthErrorCode] = {
    # Supabase GoTrue codes
    "email_address_invalid": AuthErrorCode.INVALID_EMAIL_FORMAT,
    "email_exists": AuthErrorCode.EMAIL_ALREADY_IN_USE,
    "user_already_exists": AuthErrorCode.EMAIL_ALREADY_IN_USE,
    "weak_password": AuthErrorCode.WEAK_PASSWORD,
    "invalid_credentials": AuthErrorCode.WRONG_CREDENTIALS,
    "invalid_grant": AuthErrorCode.WRONG_CREDENTIALS,
    "user_not_found": AuthErrorCode.ACCOUNT_NOT_FOUND,
    "network_error": AuthErrorCode.NETWORK_UNREACHABLE,
    "request_timeout": AuthErrorCode.NETWORK_UNREACHABLE,
    # Firebase-style codes used by the mobile client
    "invalid-email": AuthErrorCode.INVALID_EMAIL_FORMAT,
    "email-already-in-use": AuthErrorCode.EMAIL_ALREADY_IN_USE,
    "weak-password": AuthErrorCode.WEAK_PASSWORD,
    "wrong-password": AuthErrorCode.WRONG_CREDENTIALS,
    "invalid-credential": AuthErrorCode.WRONG_CREDENTIALS,
    "user-not-found": AuthErrorCode.ACCOUNT_NOT_FOUND,
    "network-request-failed": AuthErrorCode.NETWORK_UNREACHABLE,
}


# ---------------------------------------------------------------------------
# Classified error
# ---------------------------------------------------------------------------

class ClassifiedError(BaseModel):
    """An error reduced to a taxonomy member plus a display sentence.

    Attributes
    ----------
    code:
        Category from the closed ``AuthErrorCode`` taxonomy.
    message:
        Short, stable sentence for the UI.  For ``UNCLASSIFIED`` this is
        the raw provider message.
    """

    code: AuthErrorCode
    message: str

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------

class FederatedCredential(BaseModel):
    """An OpenID Connect token obtained from a third-party sign-in SDK.

    Attributes
    ----------
    provider:
        Provider name understood by Supabase (``google``, ``apple``, ...).
    id_token:
        The signed ID token returned by the provider.
    nonce:
        Raw nonce used when requesting the token, if any.
    access_token:
        Provider access token, required by some providers.
    """

    provider: str
    id_token: str
    nonce: Optional[str] = None
    access_token: Optional[str] = None


# ---------------------------------------------------------------------------
# Unified auth response
# ---------------------------------------------------------------------------

class AuthResult(BaseModel):
    """Explicit completion signal for every session-controller operation.

    The UI layer inspects ``success`` to decide the happy-path vs.
    error-path rendering, and uses ``error_code`` to conditionally
    show extra controls.
    """

    success: bool
    error_code: Optional[AuthErrorCode] = None
    error_message: Optional[str] = None
    user_id: Optional[str] = None
    email: Optional[str] = None

    model_config = {"from_attributes": True}

    @classmethod
    def failure(cls, error: ClassifiedError) -> "AuthResult":
        """Build a failed result from a classified error."""
        return cls(success=False, error_code=error.code, error_message=error.message)
