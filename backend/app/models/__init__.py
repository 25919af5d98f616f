"""Models package - re-exports for convenience."""

from backend.app.models.comments import Comment, CommentThread
from backend.app.models.common import Page
from backend.app.models.events import (
    FEED_EVENT_TYPES,
    CollaborationEvent,
    EventMetrics,
    EventSummary,
    EventType,
    SummaryWindow,
)
from backend.app.models.presence import (
    PresenceListing,
    PresenceRecord,
    PresenceStatus,
    PresenceSummary,
    PresenceView,
)
from backend.app.models.sessions import (
    CollaborationSession,
    Participant,
    ParticipantRole,
    ParticipantSpec,
    SessionDetail,
    SessionStatus,
    SessionUpdate,
)
from backend.app.models.versions import (
    Change,
    ChangeType,
    DiffStats,
    Document,
    DocumentVersion,
    RestoreResult,
    VersionDiff,
    VersionHistoryEntry,
)

__all__ = [
    # Common
    "Page",
    # Sessions
    "CollaborationSession",
    "Participant",
    "ParticipantRole",
    "ParticipantSpec",
    "SessionDetail",
    "SessionStatus",
    "SessionUpdate",
    # Presence
    "PresenceRecord",
    "PresenceStatus",
    "PresenceView",
    "PresenceSummary",
    "PresenceListing",
    # Events
    "CollaborationEvent",
    "EventType",
    "FEED_EVENT_TYPES",
    "SummaryWindow",
    "EventSummary",
    "EventMetrics",
    # Versions
    "Change",
    "ChangeType",
    "Document",
    "DocumentVersion",
    "DiffStats",
    "VersionHistoryEntry",
    "VersionDiff",
    "RestoreResult",
    # Comments
    "Comment",
    "CommentThread",
]
