"""Collaboration session and participant models."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class SessionStatus(str, Enum):
    """Session lifecycle status."""

    active = "active"
    ended = "ended"


class ParticipantRole(str, Enum):
    """Role of a participant within a session."""

    owner = "owner"
    admin = "admin"
    member = "member"
    viewer = "viewer"


class CollaborationSession(BaseModel):
    """A bounded collaboration context over one resource.

    At most one session per (org_id, resource_id, resource_type) may be
    active at a time.
    """

    id: UUID
    session_key: str = Field(..., description="Externally visible session token")
    org_id: UUID
    resource_id: str
    resource_type: str
    type: str
    title: str | None = None
    description: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    status: SessionStatus = SessionStatus.active
    created_by: UUID
    created_at: datetime
    updated_at: datetime
    ended_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.active


class Participant(BaseModel):
    """A user's membership and role within a session."""

    id: UUID
    session_id: UUID
    user_id: UUID
    role: ParticipantRole = ParticipantRole.member
    permissions: dict[str, Any] = Field(default_factory=dict)
    joined_at: datetime
    left_at: datetime | None = None
    last_activity: datetime
    event_count: int = Field(default=0, ge=0)

    @property
    def is_active(self) -> bool:
        return self.left_at is None


class ParticipantSpec(BaseModel):
    """Participant supplied when creating a session."""

    user_id: UUID
    role: ParticipantRole = ParticipantRole.member


class SessionUpdate(BaseModel):
    """Partial session update. Unset fields are left untouched."""

    title: str | None = None
    description: str | None = None
    metadata: dict[str, Any] | None = None
    status: SessionStatus | None = None

    def changes(self) -> dict[str, Any]:
        """Fields explicitly set on this update."""
        return self.model_dump(exclude_none=True, mode="json")


class SessionDetail(BaseModel):
    """Session together with its participant roster."""

    session: CollaborationSession
    participants: list[Participant] = Field(default_factory=list)

    @property
    def active_participants(self) -> list[Participant]:
        return [p for p in self.participants if p.is_active]
