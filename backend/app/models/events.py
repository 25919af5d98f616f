"""Collaboration event models - what happened inside a session."""

from datetime import datetime, timedelta
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Kinds of collaboration actions recorded in the event log."""

    session_create = "session_create"
    session_update = "session_update"
    session_end = "session_end"
    user_join = "user_join"
    user_leave = "user_leave"
    presence_update = "presence_update"
    document_change = "document_change"
    cursor_move = "cursor_move"
    selection_change = "selection_change"
    typing_start = "typing_start"
    typing_stop = "typing_stop"
    comment_add = "comment_add"
    comment_reply = "comment_reply"
    comment_update = "comment_update"
    comment_resolve = "comment_resolve"
    comment_delete = "comment_delete"
    document_lock = "document_lock"
    document_unlock = "document_unlock"
    version_create = "version_create"
    version_restore = "version_restore"
    conflict_detected = "conflict_detected"
    sync_request = "sync_request"
    sync_response = "sync_response"


# Types surfaced in the recent-activity feed
FEED_EVENT_TYPES: frozenset[EventType] = frozenset(
    {
        EventType.document_change,
        EventType.comment_add,
        EventType.user_join,
        EventType.user_leave,
        EventType.conflict_detected,
        EventType.version_create,
    }
)


class CollaborationEvent(BaseModel):
    """Immutable record of one collaborative action.

    Events are appended in creation order per session and never mutated.
    """

    id: UUID
    session_id: UUID
    type: EventType
    payload: dict[str, Any] | None = Field(default_factory=dict)
    actor_user_id: UUID
    document_id: UUID | None = None
    version: int | None = None
    position: int | None = None
    timestamp: datetime


class SummaryWindow(str, Enum):
    """Look-back window for event summaries."""

    hour = "hour"
    day = "day"
    week = "week"

    @property
    def span(self) -> timedelta:
        return {
            SummaryWindow.hour: timedelta(hours=1),
            SummaryWindow.day: timedelta(days=1),
            SummaryWindow.week: timedelta(weeks=1),
        }[self]


class EventSummary(BaseModel):
    """Aggregate view of a session's recent events."""

    window: SummaryWindow
    since: datetime
    total_events: int = 0
    active_users: int = 0
    document_changes: int = 0
    comments: int = 0
    conflicts: int = 0
    events_by_type: dict[str, int] = Field(default_factory=dict)
    events_by_user: dict[str, int] = Field(default_factory=dict)
    timeline: dict[str, int] = Field(default_factory=dict, description="Keyed YYYY-MM-DDTHH")


class EventMetrics(BaseModel):
    """Analytics over a session's events in a closed time range."""

    start: datetime
    end: datetime
    total_events: int = 0
    unique_users: int = 0
    average_events_per_user: float = 0.0
    event_types: dict[str, int] = Field(default_factory=dict)
    hourly_distribution: dict[int, int] = Field(default_factory=dict)
    daily_distribution: dict[str, int] = Field(default_factory=dict)
    peak_hour: int | None = None
    peak_day: str | None = None
