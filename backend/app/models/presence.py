"""User presence models."""

from datetime import datetime, timedelta
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class PresenceStatus(str, Enum):
    """Cross-session presence status."""

    online = "online"
    away = "away"
    busy = "busy"
    offline = "offline"


class PresenceRecord(BaseModel):
    """One presence record per user, independent of any session."""

    user_id: UUID
    status: PresenceStatus = PresenceStatus.online
    location: str | None = None
    last_seen: datetime
    online_since: datetime | None = None
    device_type: str | None = None
    browser_info: str | None = None
    created_at: datetime
    updated_at: datetime

    def is_active(self, now: datetime, window: timedelta) -> bool:
        """Online and seen within the activity window."""
        return self.status == PresenceStatus.online and (now - self.last_seen) < window


class PresenceView(BaseModel):
    """Presence record enriched with the derived activity flag."""

    user_id: UUID
    status: PresenceStatus
    location: str | None = None
    last_seen: datetime
    online_since: datetime | None = None
    is_active: bool


class PresenceSummary(BaseModel):
    """Counts of users per presence status."""

    total: int = 0
    online: int = 0
    away: int = 0
    busy: int = 0
    offline: int = 0


class PresenceListing(BaseModel):
    """Presence of a set of users, grouped by status."""

    users: list[PresenceView]
    grouped: dict[PresenceStatus, list[PresenceView]] = Field(default_factory=dict)
    summary: PresenceSummary = Field(default_factory=PresenceSummary)
