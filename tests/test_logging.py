"""Tests for the JSON logger and audit trail."""

import io
import json
import logging

import pytest
from pydantic import ValidationError

from mindreset.logger import REDACTED, StructuredLogger, resolve_level
from mindreset.utils.audit import AuditEvent, log_audit_event


@pytest.fixture
def stream_logger(request):
    stream = io.StringIO()
    log = StructuredLogger(name=f"mindreset.tests.{request.node.name}", stream=stream, log_file="")
    yield log, stream
    for handler in list(log.logger.handlers):
        log.logger.removeHandler(handler)


def _lines(stream):
    return [json.loads(line) for line in stream.getvalue().splitlines()]


class TestJSONFormatter:
    def test_entry_shape(self, stream_logger):
        log, stream = stream_logger

        log.info("hello %s", "world", extra={"event": "SIGN_IN", "user_id": "u1", "attempt": 2})

        (entry,) = _lines(stream)
        assert entry["message"] == "hello world"
        assert entry["level"] == "INFO"
        assert entry["event"] == "SIGN_IN"
        assert entry["user_id"] == "u1"
        assert entry["extra"] == {"attempt": "2"}

    def test_credentials_are_redacted(self, stream_logger):
        log, stream = stream_logger

        log.warning("reauth", extra={"password": "hunter2", "id_token": "abc"})

        (entry,) = _lines(stream)
        assert entry["extra"] == {"password": REDACTED, "id_token": REDACTED}
        assert "hunter2" not in stream.getvalue()

    def test_exception_is_included(self, stream_logger):
        log, stream = stream_logger

        try:
            raise KeyError("boom")
        except KeyError:
            log.error("failed", exc_info=True)

        (entry,) = _lines(stream)
        assert "KeyError" in entry["exception"]


class TestLevels:
    @pytest.mark.parametrize(
        "value, expected",
        [("debug", logging.DEBUG), ("WARNING", logging.WARNING), (30, 30), ("nonsense", logging.INFO)],
    )
    def test_resolve_level(self, value, expected):
        assert resolve_level(value) == expected

    def test_threshold_applies(self, request):
        stream = io.StringIO()
        log = StructuredLogger(
            name=f"mindreset.tests.{request.node.name}", level="warning", stream=stream, log_file=""
        )

        log.info("quiet")
        log.warning("loud")

        assert [e["message"] for e in _lines(stream)] == ["loud"]


class TestAudit:
    def test_audit_line(self, stream_logger):
        log, stream = stream_logger

        event = log_audit_event(log, "sign_in", "Identity", "u1", "u1", {"provider": "password"})

        (entry,) = _lines(stream)
        assert event.action == "SIGN_IN"
        assert entry["event"] == "SIGN_IN"
        assert entry["user_id"] == "u1"
        payload = json.loads(entry["message"].removeprefix("AUDIT: "))
        assert payload["entity_type"] == "Identity"
        assert payload["details"] == {"provider": "password"}

    def test_empty_action_rejected(self):
        with pytest.raises(ValidationError):
            AuditEvent(action="  ", entity_type="Identity", entity_id="u1", user_id="u1")
