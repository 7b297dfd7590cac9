"""
Identity and User Profile Models.

``Identity`` is the provider-issued principal; ``UserProfile`` is the
application's per-identity row in the ``users`` table, mirrored locally
by the session controller.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from mindreset.utils.general import JsonValue


class Identity(BaseModel):
    """An authenticated principal issued by the identity provider."""

    id: str  # Supabase UUID
    email: Optional[str] = None
    email_verified: bool = False

    model_config = {"from_attributes": True, "frozen": True}


class UserProfile(BaseModel):
    """Represents the remote profile document for one identity.

    ``created_at`` is assigned by the database (column default) and is
    therefore absent from the document the client writes on creation.
    """

    id: str
    email: str
    display_name: str = ""
    created_at: Optional[datetime] = None
    total_points: int = Field(default=0, ge=0)
    meditation_time: int = Field(default=0, ge=0)
    deep_work_time: int = Field(default=0, ge=0)
    default_habits_created: bool = False

    model_config = {"from_attributes": True, "extra": "ignore"}

    @staticmethod
    def default_document(user_id: str, email: str) -> dict[str, JsonValue]:
        """Return the fields written when a profile is created lazily."""
        return {
            "id": user_id,
            "email": email,
            "display_name": "",
            "total_points": 0,
            "meditation_time": 0,
            "deep_work_time": 0,
            "default_habits_created": False,
        }
