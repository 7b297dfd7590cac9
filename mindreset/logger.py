"""
Structured JSON Logging.

Every record is rendered as one JSON object per line.  The ``event`` and
``user_id`` extras used throughout the session core are promoted to
top-level keys so log pipelines can filter on them without parsing the
``extra`` mapping.  Credential-bearing extras (passwords, tokens) are
redacted before they reach any handler.

Usage::

    log = StructuredLogger(name="mindreset.session")
    log.info("Signed in", extra={"event": "SIGN_IN", "user_id": "abc-123"})
"""

import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional, TextIO

REDACTED: str = "[REDACTED]"

# Extra keys whose values are never written to a log line.
_SENSITIVE_KEYS: frozenset[str] = frozenset(
    {"password", "current_password", "new_password", "token", "id_token", "access_token"}
)

# Extras lifted out of ``extra`` into the top level of the JSON entry.
_PROMOTED_KEYS: tuple[str, ...] = ("event", "user_id")

_RESERVED_ATTRS: frozenset[str] = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime"}


def resolve_level(level: object) -> int:
    """Turn ``"debug"`` / ``"INFO"`` / ``10`` into a ``logging`` level.

    Unknown names fall back to ``INFO``.
    """
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


class JSONFormatter(logging.Formatter):
    """Render a ``LogRecord`` as a single-line JSON object.

    Keys: ``timestamp`` (UTC ISO-8601), ``level``, ``logger_name``,
    ``message``, the promoted ``event`` / ``user_id`` when present,
    ``extra`` for remaining caller fields, and ``exception``.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger_name": record.name,
            "message": record.getMessage(),
        }

        extra = {
            key: (REDACTED if key in _SENSITIVE_KEYS else str(value))
            for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS
        }
        for key in _PROMOTED_KEYS:
            if key in extra:
                entry[key] = extra.pop(key)
        if extra:
            entry["extra"] = extra

        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            entry["exception"] = record.exc_text

        return json.dumps(entry, ensure_ascii=False)


def _file_handler(path: str, max_bytes: int, backup_count: int) -> RotatingFileHandler:
    log_path = Path(path)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    return RotatingFileHandler(
        filename=str(log_path),
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )


class StructuredLogger:
    """Injectable wrapper around a JSON-configured ``logging.Logger``.

    Parameters
    ----------
    name:
        Logger name; handlers are attached only the first time a name
        is used.
    level:
        Threshold as an int or level name.  Defaults to ``LOG_LEVEL``
        from ``AppConfig``.
    stream:
        Console stream, ``sys.stdout`` by default.
    log_file:
        Rotating log file path.  ``None`` uses ``LOG_FILE`` from
        ``AppConfig``; an empty string disables file output (tests).
    max_bytes, backup_count:
        Rotation limits; default to the ``AppConfig`` values.
    """

    def __init__(
        self,
        name: str = "mindreset",
        level: Optional[object] = None,
        stream: Optional[TextIO] = None,
        log_file: Optional[str] = None,
        max_bytes: Optional[int] = None,
        backup_count: Optional[int] = None,
    ) -> None:
        # Deferred: config itself logs through the stdlib during validation.
        from mindreset.config import get_config
        cfg = get_config()

        threshold = resolve_level(cfg.LOG_LEVEL if level is None else level)
        self._logger: logging.Logger = logging.getLogger(name)
        self._logger.setLevel(threshold)

        if self._logger.handlers:
            return

        formatter = JSONFormatter()
        handlers: list[logging.Handler] = [logging.StreamHandler(stream or sys.stdout)]

        path = cfg.LOG_FILE if log_file is None else log_file
        path_error: Optional[OSError] = None
        if path:
            try:
                handlers.append(
                    _file_handler(
                        path,
                        cfg.LOG_MAX_BYTES if max_bytes is None else max_bytes,
                        cfg.LOG_BACKUP_COUNT if backup_count is None else backup_count,
                    )
                )
            except OSError as exc:
                path_error = exc

        for handler in handlers:
            handler.setLevel(threshold)
            handler.setFormatter(formatter)
            self._logger.addHandler(handler)

        if path_error is not None:
            self._logger.warning(
                "Could not open log file '%s': %s. Logging to console only.",
                path,
                path_error,
            )

    @property
    def logger(self) -> logging.Logger:
        """The underlying ``logging.Logger``."""
        return self._logger

    def debug(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.debug(msg, *args, **kwargs)

    def info(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.info(msg, *args, **kwargs)

    def warning(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.warning(msg, *args, **kwargs)

    def error(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.error(msg, *args, **kwargs)

    def critical(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.critical(msg, *args, **kwargs)


def get_logger(name: str = "mindreset") -> StructuredLogger:
    """Shorthand for ``StructuredLogger(name=name)`` with config defaults."""
    return StructuredLogger(name=name)
