"""
Mind Reset Session Core Entry Point.

Bootstraps the dependency graph via constructor injection, initialises
the local SQLite schema, subscribes to identity changes and logs every
session snapshot until interrupted.  Every subsystem is wired here; no
module-level globals.

Usage::

    python main.py
"""

from __future__ import annotations

import asyncio
import atexit
import sys
import traceback
from pathlib import Path

from mindreset.auth import SessionManager
from mindreset.config import get_config
from mindreset.database import DatabaseManager
from mindreset.logger import StructuredLogger, get_logger
from mindreset.models.session_models import SessionSnapshot
from mindreset.schema import initialize_schema
from mindreset.services import create_services
from mindreset.services.app_settings_service import AppSettingsService


async def run() -> None:
    """Wire dependencies and run until cancelled."""
    logger: StructuredLogger = get_logger("mindreset.main")
    logger.info("Starting Mind Reset session core...")

    # ------------------------------------------------------------------
    # 1. Configuration (from .env / environment variables)
    # ------------------------------------------------------------------
    config = get_config()

    # ------------------------------------------------------------------
    # 2. Database Manager (Supabase optional, SQLite always)
    # ------------------------------------------------------------------
    db = await DatabaseManager.connect(
        supabase_url=config.SUPABASE_URL,
        supabase_key=config.SUPABASE_ANON_KEY.get_secret_value(),
        service_role_key=config.SUPABASE_SERVICE_ROLE_KEY.get_secret_value(),
        sqlite_path=Path(config.LOCAL_DB_PATH),
        logger=StructuredLogger(name="mindreset.database"),
    )

    # DatabaseManager.close() is safe to call multiple times.
    atexit.register(db.close)

    # ------------------------------------------------------------------
    # 3. SQLite Schema Initialization (idempotent)
    # ------------------------------------------------------------------
    initialize_schema(db.sqlite, StructuredLogger(name="mindreset.schema"))

    # ------------------------------------------------------------------
    # 4. Session Manager, seeded with the persisted default times
    # ------------------------------------------------------------------
    settings = AppSettingsService(db=db, logger=get_logger("mindreset.settings"))
    session = SessionManager(
        default_wake_time=settings.get_default_wake_time() or config.FALLBACK_WAKE_TIME,
        default_sleep_time=settings.get_default_sleep_time() or config.FALLBACK_SLEEP_TIME,
        logger=get_logger("mindreset.session"),
    )

    # ------------------------------------------------------------------
    # 5. Service Container (single composition root)
    # ------------------------------------------------------------------
    services = create_services(db=db, config=config, session=session)
    controller = services["session_controller"]

    def _log_snapshot(snapshot: SessionSnapshot) -> None:
        logger.info(
            "Session: identity=%s profile=%s error=%s",
            snapshot.identity.id if snapshot.identity else None,
            snapshot.profile.display_name if snapshot.profile else None,
            snapshot.last_error.code if snapshot.last_error else None,
        )

    unsubscribe = session.subscribe(_log_snapshot)

    # ------------------------------------------------------------------
    # 6. Identity stream (runs until cancelled)
    # ------------------------------------------------------------------
    try:
        if db.is_online:
            await controller.subscribe_to_identity_changes()
        else:
            logger.warning("Offline: identity changes will not be observed.")
        await asyncio.Event().wait()
    finally:
        unsubscribe()
        await controller.close()
        db.close()
        logger.info("Mind Reset session core shut down.")


def main() -> None:
    """Application entry point."""
    asyncio.run(run())


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        pass
    except Exception as exc:
        detail = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        sys.stderr.write(f"FATAL: {type(exc).__name__}: {exc}\n{detail}")
        sys.exit(1)
