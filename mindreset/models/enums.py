"""
Shared Enumerations for Mind Reset Models.

All string enumerations for type-safe field constraints.
StrEnum values compare equal to their string equivalents.
"""

from __future__ import annotations
from enum import StrEnum


class AuthErrorCode(StrEnum):
    """Closed taxonomy of user-facing error categories.

    The first seven members classify identity-provider failures; the
    ``PROFILE_*`` members are raised by the session controller for
    document-store problems.
    """

    INVALID_EMAIL_FORMAT = "invalid_email_format"
    EMAIL_ALREADY_IN_USE = "email_already_in_use"
    WEAK_PASSWORD = "weak_password"
    WRONG_CREDENTIALS = "wrong_credentials"
    ACCOUNT_NOT_FOUND = "account_not_found"
    NETWORK_UNREACHABLE = "network_unreachable"
    PROFILE_DECODE_FAILURE = "profile_decode_failure"
    PROFILE_WRITE_FAILURE = "profile_write_failure"
    PROFILE_MISSING = "profile_missing"
    UNCLASSIFIED = "unclassified"


class ReauthState(StrEnum):
    """States of the reauthentication gate.

    ``IDLE`` and ``AWAITING_CREDENTIAL`` are resting states.  The other
    three are transitions reported through ``ReauthOutcome``.
    """

    IDLE = "IDLE"
    AWAITING_CREDENTIAL = "AWAITING_CREDENTIAL"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"


class IntentKind(StrEnum):
    """Sensitive mutations that require a fresh credential."""

    CHANGE_PASSWORD = "CHANGE_PASSWORD"
    CHANGE_EMAIL = "CHANGE_EMAIL"
    DELETE_ACCOUNT = "DELETE_ACCOUNT"


class ProfileCounter(StrEnum):
    """Profile columns that may be incremented server-side."""

    TOTAL_POINTS = "total_points"
    MEDITATION_TIME = "meditation_time"
    DEEP_WORK_TIME = "deep_work_time"
