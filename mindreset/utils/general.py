"""General Utility Functions."""

from __future__ import annotations

from datetime import date, datetime, time
from typing import Union

__all__ = ["JsonValue", "convert_to_json_safe", "format_time_of_day"]


# ---------------------------------------------------------------------------
# Type definitions
# ---------------------------------------------------------------------------

JsonValue = Union[
    str,
    int,
    float,
    bool,
    None,
    dict[str, "JsonValue"],
    list["JsonValue"],
]
"""The set of types that are natively representable in JSON."""

JsonInputType = Union[
    None,
    str,
    int,
    bool,
    float,
    datetime,
    date,
    time,
    dict[str, "JsonInputType"],
    list["JsonInputType"],
]
"""All types accepted as input to :func:`convert_to_json_safe`."""


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def convert_to_json_safe(data: JsonInputType) -> JsonValue:
    """Recursively convert a payload to JSON-safe types for PostgREST.

    Handles:
    - ``datetime`` / ``date`` / ``time`` objects -> ISO-format strings
    - Nested dicts and lists
    """
    if data is None or isinstance(data, (str, int, bool, float)):
        return data

    # datetime MUST be checked before date because datetime is a subclass of date.
    if isinstance(data, datetime):
        return data.isoformat()

    if isinstance(data, (date, time)):
        return data.isoformat()

    if isinstance(data, dict):
        return {key: convert_to_json_safe(value) for key, value in data.items()}

    if isinstance(data, (list, tuple)):
        return [convert_to_json_safe(item) for item in data]

    return str(data)


def format_time_of_day(value: time) -> str:
    """Render a wall-clock time as ``HH:MM`` for local settings storage."""
    return value.strftime("%H:%M")

