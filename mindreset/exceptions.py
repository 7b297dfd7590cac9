"""
Exception Types.

Raised by the infrastructure adapters (credential gateway, Supabase
repositories) and by the state machines on illegal transitions.  The
service layer converts adapter exceptions into ``AuthResult`` /
``ClassifiedError`` values; they never reach the UI layer.
"""

from __future__ import annotations

from typing import Optional


class MindResetError(Exception):
    """Base class for all session-core exceptions."""

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        self.message: str = message
        self.original_error: Optional[Exception] = original_error
        super().__init__(self.message)


class ProviderError(MindResetError):
    """The identity provider rejected a request.

    ``code`` is the provider's machine-readable error code (for Supabase
    GoTrue e.g. ``invalid_credentials`` or ``weak_password``) and is the
    input of the error classifier.  ``network_error`` is used for
    transport failures and ``not_configured`` for missing settings.
    """

    def __init__(
        self,
        code: str,
        message: str,
        original_error: Optional[Exception] = None,
    ) -> None:
        self.code: str = code
        super().__init__(message, original_error)


class StoreError(MindResetError):
    """A remote document-store read or write failed."""

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None,
        is_network: bool = False,
    ) -> None:
        self.is_network: bool = is_network
        super().__init__(message, original_error)


class InvalidTransitionError(MindResetError, RuntimeError):
    """A state-machine operation was called in a state that forbids it."""


class ConfigurationError(MindResetError, RuntimeError):
    """A required setting is missing, so the operation can never succeed
    until the configuration changes."""
