"""
Application Configuration.

Pydantic Settings model for the Mind Reset session core.
All configuration is loaded from environment variables and .env files.
Inject an AppConfig instance via dependency injection where needed.
"""

from __future__ import annotations

import logging
import threading
from datetime import time
from pathlib import Path
from typing import Optional

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings


class AppConfig(BaseSettings):
    """Central configuration loaded from environment variables and defaults."""

    # --- Supabase ---
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: SecretStr = SecretStr("")
    SUPABASE_SERVICE_ROLE_KEY: SecretStr = SecretStr("")  # admin API, identity deletion only

    # --- Remote tables ---
    PROFILES_TABLE: str = "users"
    DAY_SCHEDULES_TABLE: str = "day_schedules"
    PROFILE_COUNTER_RPC: str = "increment_profile_counter"

    # --- Local settings database ---
    LOCAL_DB_PATH: str = "mindreset_local.db"

    # --- Default schedule fallbacks ---
    FALLBACK_WAKE_TIME: time = time(7, 0)
    FALLBACK_SLEEP_TIME: time = time(23, 0)

    # --- Logging ---
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "mindreset.log"
    LOG_MAX_BYTES: int = 5_242_880  # 5 MB
    LOG_BACKUP_COUNT: int = 3

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @model_validator(mode="after")
    def _warn_missing_env(self) -> "AppConfig":
        """Emit a startup warning when critical configuration is empty.

        Pydantic silently falls back to defaults when ``.env`` is missing.
        This validator logs a warning so operators know the app is running
        with placeholder values.
        """
        _log = logging.getLogger("mindreset.config")

        if not Path(".env").exists():
            _log.warning(
                "No .env file found: all configuration loaded from "
                "environment variables or defaults."
            )

        if not self.SUPABASE_URL:
            _log.warning(
                "SUPABASE_URL is empty: sign-in and profile sync are "
                "unavailable until it is configured."
            )

        if not self.SUPABASE_SERVICE_ROLE_KEY.get_secret_value():
            _log.warning(
                "SUPABASE_SERVICE_ROLE_KEY is empty: account deletion "
                "is unavailable until it is configured."
            )

        return self


# ---------------------------------------------------------------------------
# Module-level singleton factory
# ---------------------------------------------------------------------------

_config_instance: Optional[AppConfig] = None
_config_lock: threading.Lock = threading.Lock()


def get_config() -> AppConfig:
    """Return a cached ``AppConfig`` singleton.

    On first call, creates an ``AppConfig`` instance (reading from ``.env``).
    Subsequent calls return the same instance.  Uses a check-lock-check
    pattern so the fast path never takes the lock.
    """
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = AppConfig()
    return _config_instance
