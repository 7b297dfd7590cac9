"""
Audit Trail.

Session state changes (sign-in, sign-out, profile creation, credential
changes, account deletion, default-time propagation) are written as
``AUDIT:`` lines whose payload is a validated ``AuditEvent`` serialised
to JSON.  The action and user are also attached as the ``event`` /
``user_id`` extras so they surface as top-level log keys.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Union

from pydantic import BaseModel, Field, field_validator

from mindreset.logger import StructuredLogger

__all__ = ["AuditEvent", "DetailValue", "log_audit_event"]

# Flat scalars only; nested structures belong in a dedicated model.
DetailValue = Union[str, int, float, bool, None]


class AuditEvent(BaseModel):
    """One audit trail entry.

    ``action`` is an upper-case verb such as ``SIGN_IN`` or
    ``ACCOUNT_DELETED``; ``entity_type`` names the record kind touched
    (``Identity``, ``UserProfile``, ``DaySchedule``).
    """

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    action: str
    entity_type: str
    entity_id: str
    user_id: str
    details: dict[str, DetailValue] = Field(default_factory=dict)

    @field_validator("action")
    @classmethod
    def _upper_action(cls, value: str) -> str:
        value = value.strip().upper()
        if not value:
            raise ValueError("action must not be empty")
        return value


def log_audit_event(
    logger: StructuredLogger,
    action: str,
    entity_type: str,
    entity_id: str,
    user_id: str,
    details: Optional[dict[str, DetailValue]] = None,
) -> AuditEvent:
    """Validate and log one audit event, returning it.

    Args:
        logger: Destination logger.
        action: What happened, e.g. ``"SIGN_OUT"``.
        entity_type: Kind of record affected.
        entity_id: Key of the affected record.
        user_id: Identity that performed the action.
        details: Optional flat context (old/new values, counts).
    """
    event = AuditEvent(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
        details=details or {},
    )
    logger.info(
        "AUDIT: %s",
        event.model_dump_json(),
        extra={"event": event.action, "user_id": event.user_id},
    )
    return event
