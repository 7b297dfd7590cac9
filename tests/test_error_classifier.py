"""Unit tests for the error classifier."""

import httpx
import pytest

from mindreset.exceptions import ProviderError, StoreError
from mindreset.models import AuthErrorCode
from mindreset.models.auth_models import ERROR_MESSAGES
from mindreset.services.error_classifier import classify_code, classify_exception, error_for


class TestClassifyCode:
    @pytest.mark.parametrize(
        "code, expected",
        [
            ("email_address_invalid", AuthErrorCode.INVALID_EMAIL_FORMAT),
            ("email_exists", AuthErrorCode.EMAIL_ALREADY_IN_USE),
            ("user_already_exists", AuthErrorCode.EMAIL_ALREADY_IN_USE),
            ("weak_password", AuthErrorCode.WEAK_PASSWORD),
            ("invalid_credentials", AuthErrorCode.WRONG_CREDENTIALS),
            ("user_not_found", AuthErrorCode.ACCOUNT_NOT_FOUND),
            ("network_error", AuthErrorCode.NETWORK_UNREACHABLE),
            ("invalid-email", AuthErrorCode.INVALID_EMAIL_FORMAT),
            ("auth/email-already-in-use", AuthErrorCode.EMAIL_ALREADY_IN_USE),
            ("network-request-failed", AuthErrorCode.NETWORK_UNREACHABLE),
        ],
    )
    def test_known_codes(self, code, expected):
        error = classify_code(code, "raw provider text")

        assert error.code == expected
        assert error.message == ERROR_MESSAGES[expected]

    @pytest.mark.parametrize("code", ["wrong-password", "auth/wrong-password", "WRONG-PASSWORD"])
    def test_wrong_password_always_maps_to_wrong_credentials(self, code):
        assert classify_code(code).code == AuthErrorCode.WRONG_CREDENTIALS

    def test_unknown_code_keeps_raw_message(self):
        error = classify_code("over_request_rate_limit", "Too many requests")

        assert error.code == AuthErrorCode.UNCLASSIFIED
        assert error.message == "Too many requests"

    def test_missing_code_falls_back_to_message_hints(self):
        assert classify_code(None, "Invalid login credentials").code == AuthErrorCode.WRONG_CREDENTIALS
        assert classify_code("", "User already registered").code == AuthErrorCode.EMAIL_ALREADY_IN_USE

    def test_empty_input_is_still_classified(self):
        error = classify_code(None, "")

        assert error.code == AuthErrorCode.UNCLASSIFIED
        assert error.message


class TestClassifyException:
    def test_provider_error(self):
        error = classify_exception(ProviderError("invalid_credentials", "nope"))

        assert error.code == AuthErrorCode.WRONG_CREDENTIALS

    def test_store_error_uses_default(self):
        assert classify_exception(StoreError("x")).code == AuthErrorCode.PROFILE_WRITE_FAILURE
        assert (
            classify_exception(StoreError("x"), AuthErrorCode.PROFILE_DECODE_FAILURE).code
            == AuthErrorCode.PROFILE_DECODE_FAILURE
        )

    def test_network_store_error(self):
        error = classify_exception(StoreError("x", is_network=True))

        assert error.code == AuthErrorCode.NETWORK_UNREACHABLE

    def test_transport_errors(self):
        assert classify_exception(httpx.ConnectError("down")).code == AuthErrorCode.NETWORK_UNREACHABLE
        assert classify_exception(TimeoutError()).code == AuthErrorCode.NETWORK_UNREACHABLE

    def test_anything_else_is_unclassified(self):
        error = classify_exception(KeyError("surprise"))

        assert error.code == AuthErrorCode.UNCLASSIFIED
        assert "surprise" in error.message


def test_error_for_profile_codes():
    for code in (
        AuthErrorCode.PROFILE_DECODE_FAILURE,
        AuthErrorCode.PROFILE_WRITE_FAILURE,
        AuthErrorCode.PROFILE_MISSING,
    ):
        assert error_for(code).message == ERROR_MESSAGES[code]
