"""
Schedule Propagation Service.

Applies a new default wake / sleep time: the in-memory session defaults
and the local ``app_settings`` are updated first, then every day
schedule of the signed-in identity dated today or later is rewritten in
one atomic batch.  Past schedules are never touched.

Only one batch may be in flight; a call made meanwhile is dropped
without touching anything.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date, time
from typing import Optional, cast

from mindreset.auth import SessionManager
from mindreset.logger import StructuredLogger
from mindreset.models.auth_models import ClassifiedError
from mindreset.models.enums import AuthErrorCode
from mindreset.models.session_models import PropagationResult
from mindreset.ports import ScheduleStore
from mindreset.services.app_settings_service import AppSettingsService
from mindreset.services.base_service import BaseService
from mindreset.services.error_classifier import classify_exception, error_for
from mindreset.utils.audit import log_audit_event
from mindreset.utils.general import JsonValue, convert_to_json_safe, format_time_of_day


class SchedulePropagationService(BaseService):
    """Forward-only propagation of the default schedule times.

    Parameters
    ----------
    session:
        Shared session state holding the in-memory defaults.
    settings:
        Local settings persistence.
    schedules:
        Day schedule store port.
    logger:
        Structured JSON logger.
    today_provider:
        Returns the local calendar date used as the inclusive lower
        bound of the batch.  Injectable for tests.
    """

    def __init__(
        self,
        session: SessionManager,
        settings: AppSettingsService,
        schedules: ScheduleStore,
        logger: StructuredLogger,
        today_provider: Callable[[], date] = date.today,
    ) -> None:
        super().__init__(logger)
        self._session = session
        self._settings = settings
        self._schedules = schedules
        self._today = today_provider
        self._in_flight: bool = False

    @property
    def in_flight(self) -> bool:
        """``True`` while a remote batch is running."""
        return self._in_flight

    async def set_default_times(self, wake: time, sleep: time) -> PropagationResult:
        """Store new defaults and rewrite today's and future schedules.

        With no identity signed in only the local defaults change.
        """
        if self._in_flight:
            self._logger.info(
                "Default-time update dropped: previous batch still running.",
                extra={"event": "PROPAGATION_DROPPED"},
            )
            return PropagationResult(success=False, dropped=True)

        self._in_flight = True
        try:
            self._session.set_default_times(wake, sleep)
            local_error: Optional[ClassifiedError] = None
            if not self._settings.set_default_times(wake, sleep):
                local_error = error_for(AuthErrorCode.PROFILE_WRITE_FAILURE)
                self._session.set_error(local_error)

            identity = self._session.identity
            if identity is None:
                return PropagationResult(success=local_error is None, error=local_error)

            on_or_after = self._today()
            fields = cast(
                dict[str, JsonValue],
                convert_to_json_safe({"wake_time": wake, "sleep_time": sleep}),
            )
            try:
                updated = await self._schedules.batch_update_where(
                    identity.id, on_or_after, fields
                )
            except Exception as exc:
                error = classify_exception(exc, AuthErrorCode.PROFILE_WRITE_FAILURE)
                self._logger.warning(
                    "Default-time propagation failed for %s: %s",
                    identity.id,
                    exc,
                    extra={"event": "PROPAGATION_FAILED", "error_code": str(error.code)},
                )
                self._session.set_error(error)
                return PropagationResult(success=False, error=error)

            log_audit_event(
                self._logger,
                "DEFAULT_TIMES_PROPAGATED",
                "DaySchedule",
                identity.id,
                identity.id,
                {
                    "wake_time": format_time_of_day(wake),
                    "sleep_time": format_time_of_day(sleep),
                    "on_or_after": on_or_after.isoformat(),
                    "updated_count": updated,
                },
            )
            return PropagationResult(
                success=local_error is None, updated_count=updated, error=local_error
            )
        finally:
            self._in_flight = False
