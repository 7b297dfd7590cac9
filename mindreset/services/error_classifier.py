"""
Error Classifier.

Pure mapping from provider error codes (or adapter exceptions) to the
closed ``AuthErrorCode`` taxonomy.  Every input yields a
``ClassifiedError``; unknown codes become ``UNCLASSIFIED`` carrying the
raw provider message.
"""

from __future__ import annotations

from typing import Optional

import httpx

from mindreset.exceptions import ProviderError, StoreError
from mindreset.models.auth_models import ERROR_MESSAGES, PROVIDER_ERROR_MAP, ClassifiedError
from mindreset.models.enums import AuthErrorCode

__all__ = ["classify_code", "classify_exception", "error_for"]

# Older GoTrue releases report some failures without a machine code;
# the message text is matched case-insensitively as a fallback.
_MESSAGE_HINTS: tuple[tuple[str, AuthErrorCode], ...] = (
    ("invalid login credentials", AuthErrorCode.WRONG_CREDENTIALS),
    ("user already registered", AuthErrorCode.EMAIL_ALREADY_IN_USE),
    ("password should be at least", AuthErrorCode.WEAK_PASSWORD),
    ("unable to validate email address", AuthErrorCode.INVALID_EMAIL_FORMAT),
    ("user not found", AuthErrorCode.ACCOUNT_NOT_FOUND),
)

_DEFAULT_UNCLASSIFIED_MESSAGE: str = "An unexpected error occurred. Please try again later."


def error_for(code: AuthErrorCode, message: Optional[str] = None) -> ClassifiedError:
    """Build a ``ClassifiedError`` with the stable sentence for *code*."""
    if code == AuthErrorCode.UNCLASSIFIED:
        return ClassifiedError(code=code, message=message or _DEFAULT_UNCLASSIFIED_MESSAGE)
    return ClassifiedError(code=code, message=ERROR_MESSAGES[code])


def classify_code(code: Optional[str], message: str = "") -> ClassifiedError:
    """Map a provider error code to the taxonomy.

    Codes are matched case-insensitively; a Firebase ``auth/`` prefix is
    ignored.  Wrong-password codes map to ``WRONG_CREDENTIALS`` whatever
    the call site.

    Parameters
    ----------
    code:
        Machine-readable provider code, e.g. ``invalid_credentials``.
    message:
        Raw provider message, used for hint matching and as the
        ``UNCLASSIFIED`` display text.
    """
    normalized = (code or "").strip().lower()
    if normalized.startswith("auth/"):
        normalized = normalized[len("auth/"):]

    mapped = PROVIDER_ERROR_MAP.get(normalized)
    if mapped is not None:
        return error_for(mapped)

    lowered = message.lower()
    for hint, hinted_code in _MESSAGE_HINTS:
        if hint in lowered:
            return error_for(hinted_code)

    return error_for(AuthErrorCode.UNCLASSIFIED, message)


def classify_exception(
    exc: BaseException,
    store_default: AuthErrorCode = AuthErrorCode.PROFILE_WRITE_FAILURE,
) -> ClassifiedError:
    """Map an adapter exception to the taxonomy.

    ``StoreError`` instances that are not network failures map to
    *store_default*, which lets callers distinguish read and write
    paths.
    """
    if isinstance(exc, ProviderError):
        return classify_code(exc.code, exc.message)
    if isinstance(exc, StoreError):
        if exc.is_network:
            return error_for(AuthErrorCode.NETWORK_UNREACHABLE)
        return error_for(store_default)
    if isinstance(exc, (httpx.TransportError, ConnectionError, TimeoutError)):
        return error_for(AuthErrorCode.NETWORK_UNREACHABLE)
    return error_for(AuthErrorCode.UNCLASSIFIED, str(exc))
