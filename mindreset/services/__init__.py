"""
Business Logic Services Package.

Contains the session state machines and their infrastructure adapters.
Services depend on the port protocols in ``mindreset.ports``; the
Supabase-backed implementations are wired here.

The ``create_services()`` factory wires every repository and service together,
returning a typed dict that the application layer can consume without
knowing the internal dependency graph.
"""

from __future__ import annotations

from typing import TypedDict

from mindreset.auth import SessionManager
from mindreset.config import AppConfig
from mindreset.database import DatabaseManager
from mindreset.logger import get_logger
from mindreset.repositories.day_schedule_repository import DayScheduleRepository
from mindreset.repositories.profile_repository import ProfileRepository
from mindreset.services.app_settings_service import AppSettingsService
from mindreset.services.credential_gateway import SupabaseCredentialGateway
from mindreset.services.reauthentication import ReauthenticationFlow
from mindreset.services.schedule_propagation import SchedulePropagationService
from mindreset.services.session_controller import SessionController


class ServiceContainer(TypedDict):
    """Typed container for all application services."""

    # --- Adapters ---
    credential_gateway: SupabaseCredentialGateway
    profile_repository: ProfileRepository
    day_schedule_repository: DayScheduleRepository

    # --- Infrastructure ---
    app_settings_service: AppSettingsService

    # --- Session core ---
    session_controller: SessionController
    reauthentication_flow: ReauthenticationFlow
    schedule_propagation_service: SchedulePropagationService


def create_services(
    db: DatabaseManager,
    config: AppConfig,
    session: SessionManager,
) -> ServiceContainer:
    """
    Wire all repositories and services together.

    This is the single composition root for the service layer.  The
    application entry-point calls this once at startup.

    Args:
        db: Initialised DatabaseManager with Supabase + SQLite ready.
        config: Application configuration (table names, RPC name).
        session: The process-wide session state.

    Returns:
        ServiceContainer mapping service names to fully-wired instances.
    """
    logger = get_logger("mindreset.services")

    # ------------------------------------------------------------------
    # 1. Adapters (identity provider + remote tables)
    # ------------------------------------------------------------------
    credential_gateway = SupabaseCredentialGateway(db=db, logger=logger)
    profile_repo = ProfileRepository(
        db=db,
        logger=logger,
        table=config.PROFILES_TABLE,
        counter_rpc=config.PROFILE_COUNTER_RPC,
    )
    day_schedule_repo = DayScheduleRepository(
        db=db,
        logger=logger,
        table=config.DAY_SCHEDULES_TABLE,
    )

    # ------------------------------------------------------------------
    # 2. Infrastructure: persistent app settings
    # ------------------------------------------------------------------
    app_settings_service = AppSettingsService(db=db, logger=logger)

    # ------------------------------------------------------------------
    # 3. Session core
    # ------------------------------------------------------------------
    session_controller = SessionController(
        session=session,
        gateway=credential_gateway,
        profiles=profile_repo,
        logger=logger,
    )
    reauthentication_flow = ReauthenticationFlow(
        session=session,
        gateway=credential_gateway,
        controller=session_controller,
        logger=logger,
    )
    schedule_propagation_service = SchedulePropagationService(
        session=session,
        settings=app_settings_service,
        schedules=day_schedule_repo,
        logger=logger,
    )

    return ServiceContainer(
        credential_gateway=credential_gateway,
        profile_repository=profile_repo,
        day_schedule_repository=day_schedule_repo,
        app_settings_service=app_settings_service,
        session_controller=session_controller,
        reauthentication_flow=reauthentication_flow,
        schedule_propagation_service=schedule_propagation_service,
    )
