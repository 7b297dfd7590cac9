"""Shared utility functions and models for the Mind Reset session core.

Convenience re-exports so that consumers can import directly from
``mindreset.utils`` while full absolute imports remain supported.
"""

from mindreset.utils.audit import AuditEvent, log_audit_event
from mindreset.utils.general import JsonValue, convert_to_json_safe, format_time_of_day

__all__ = [
    "AuditEvent",
    "JsonValue",
    "convert_to_json_safe",
    "format_time_of_day",
    "log_audit_event",
]
