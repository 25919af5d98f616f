"""Repository protocol interfaces for the collaboration store.

Each method maps to a single atomic store write or read. Methods that must
touch more than one row (active-session creation, version append, restore)
are still one call so the implementation can wrap them in one transaction.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol
from uuid import UUID

from backend.app.models.comments import Comment
from backend.app.models.events import CollaborationEvent, EventType
from backend.app.models.presence import PresenceRecord
from backend.app.models.sessions import CollaborationSession, Participant
from backend.app.models.versions import ChangeType, Document, DocumentVersion


@dataclass
class SessionQuery:
    """Filters for listing the sessions a user participates in."""

    org_id: UUID
    user_id: UUID
    type: str | None = None
    active_only: bool = False
    limit: int = 50
    offset: int = 0


@dataclass
class EventQuery:
    """Filters for reading a session's event log."""

    session_id: UUID | None
    types: list[EventType] = field(default_factory=list)
    actor_user_id: UUID | None = None
    since: datetime | None = None
    until: datetime | None = None
    limit: int = 100
    offset: int = 0
    include_payload: bool = True


@dataclass
class HistoryQuery:
    """Filters for a document's version history."""

    author_id: UUID | None = None
    since: datetime | None = None
    until: datetime | None = None
    change_type: ChangeType | None = None
    limit: int = 20
    offset: int = 0
    include_content: bool = False


@dataclass
class CommentQuery:
    """Filters for listing root comments of a document."""

    document_id: UUID
    resolved: bool | None = None
    sort_by: str = "created_at"
    sort_order: str = "desc"
    limit: int = 50
    offset: int = 0


class SessionRepository(Protocol):
    """Repository for sessions and their participants."""

    def create_active(
        self, session: CollaborationSession, participants: list[Participant]
    ) -> CollaborationSession:
        """Insert an active session together with its initial roster.

        Args:
            session: Session to insert (status must be active)
            participants: Initial participants

        Returns:
            The stored session

        Raises:
            ConflictError: If another active session exists for the resource
        """
        ...

    def get(self, session_id: UUID, org_id: UUID | None = None) -> CollaborationSession | None:
        """Get a session by ID, optionally scoped to an organization."""
        ...

    def update(self, session: CollaborationSession) -> CollaborationSession:
        """Persist changed session fields.

        Raises:
            ConflictError: If reactivating would create a second active session
        """
        ...

    def list_for_user(self, query: SessionQuery) -> tuple[list[CollaborationSession], int]:
        """List sessions where the user is an active participant, newest update first.

        Returns:
            Tuple of (page of sessions, total matching)
        """
        ...

    def list_active_for_resource(
        self, resource_id: str, resource_type: str, org_id: UUID | None = None
    ) -> list[CollaborationSession]:
        """List active sessions bound to a resource."""
        ...

    def list_for_resource(
        self, resource_id: str, resource_type: str, org_id: UUID | None = None
    ) -> list[CollaborationSession]:
        """List all sessions, active or ended, bound to a resource."""
        ...

    def list_org_sessions(self, org_id: UUID) -> list[CollaborationSession]:
        """List every session of an organization."""
        ...

    def upsert_participant(self, participant: Participant) -> Participant:
        """Insert a participant, or reactivate the existing (session_id, user_id) row.

        Reactivation clears left_at and refreshes last_activity; role and
        counters of the existing row are kept.
        """
        ...

    def get_participant(self, session_id: UUID, user_id: UUID) -> Participant | None:
        """Get a participant row."""
        ...

    def update_participant(self, participant: Participant) -> Participant:
        """Persist changed participant fields."""
        ...

    def list_participants(self, session_id: UUID, active_only: bool = False) -> list[Participant]:
        """List participants of a session, oldest join first."""
        ...

    def list_participations(self, user_id: UUID, active_only: bool = True) -> list[Participant]:
        """List a user's participant rows across sessions."""
        ...


class PresenceRepository(Protocol):
    """Repository for per-user presence records."""

    def get(self, user_id: UUID) -> PresenceRecord | None:
        """Get a user's presence record."""
        ...

    def upsert(self, record: PresenceRecord) -> PresenceRecord:
        """Insert or replace the user's presence record."""
        ...

    def list_records(
        self,
        user_ids: set[UUID] | None = None,
        include_offline: bool = False,
        limit: int = 50,
    ) -> list[PresenceRecord]:
        """List presence records, online first then most recently seen.

        Args:
            user_ids: Restrict to these users (None for all)
            include_offline: Include offline records
            limit: Maximum number of results
        """
        ...

    def mark_stale_offline(self, cutoff: datetime, at: datetime) -> int:
        """Force offline every non-offline record last seen before cutoff.

        Returns:
            Number of records changed
        """
        ...


class EventRepository(Protocol):
    """Append-only store for collaboration events."""

    def append(self, event: CollaborationEvent) -> CollaborationEvent:
        """Append an event."""
        ...

    def query(self, query: EventQuery) -> tuple[list[CollaborationEvent], int]:
        """Read events newest first.

        Returns:
            Tuple of (page of events, total matching)
        """
        ...

    def in_range(
        self, session_id: UUID, since: datetime, until: datetime | None = None
    ) -> list[CollaborationEvent]:
        """All events of a session with since <= timestamp (<= until)."""
        ...

    def for_user(
        self, user_id: UUID, session_id: UUID | None = None, limit: int = 50
    ) -> list[CollaborationEvent]:
        """Latest events performed by a user."""
        ...

    def delete(self, session_id: UUID, older_than: datetime | None = None) -> int:
        """Delete a session's events, optionally only those older than a cutoff.

        Returns:
            Number of events deleted
        """
        ...


class DocumentRepository(Protocol):
    """Repository for documents and their version snapshots."""

    def create_document(self, document: Document) -> Document:
        """Insert a document."""
        ...

    def get_document(self, document_id: UUID, org_id: UUID | None = None) -> Document | None:
        """Get a document, optionally scoped to an organization."""
        ...

    def append_version(self, version: DocumentVersion) -> tuple[Document, DocumentVersion]:
        """Insert a version and move the document pointer and content to it.

        Raises:
            ConflictError: If the version number already exists
            NotFoundError: If the document does not exist
        """
        ...

    def apply_restore(
        self, backup: DocumentVersion | None, restore: DocumentVersion
    ) -> Document:
        """Insert an optional backup and the restore version, then move the pointer.

        All writes succeed or none do.
        """
        ...

    def set_pointer(self, document_id: UUID, version: int, content: str | None, at: datetime) -> Document:
        """Force the document pointer and live content (reconciliation)."""
        ...

    def get_version(self, version_id: UUID) -> DocumentVersion | None:
        """Get a version by ID."""
        ...

    def latest_version(self, document_id: UUID) -> DocumentVersion | None:
        """Version with the highest number, if any."""
        ...

    def max_version(self, document_id: UUID) -> int:
        """Highest version number, 0 when the document has none."""
        ...

    def list_versions(
        self, document_id: UUID, query: HistoryQuery
    ) -> tuple[list[DocumentVersion], int]:
        """List versions, highest number first.

        Returns:
            Tuple of (page of versions, total matching)
        """
        ...

    def delete_versions(self, version_ids: list[UUID]) -> int:
        """Delete versions by ID.

        Returns:
            Number of rows removed
        """
        ...


class CommentRepository(Protocol):
    """Repository for document comments."""

    def create(self, comment: Comment) -> Comment:
        """Insert a comment."""
        ...

    def get(self, comment_id: UUID) -> Comment | None:
        """Get a comment by ID."""
        ...

    def update(self, comment: Comment) -> Comment:
        """Persist changed comment fields."""
        ...

    def delete(self, comment_id: UUID) -> bool:
        """Hard-delete a comment row."""
        ...

    def count_replies(self, comment_id: UUID) -> int:
        """Number of direct replies to a comment."""
        ...

    def list_roots(self, query: CommentQuery) -> tuple[list[Comment], int]:
        """List root comments of a document.

        Returns:
            Tuple of (page of roots, total matching)
        """
        ...

    def list_replies(self, parent_ids: list[UUID]) -> list[Comment]:
        """Direct replies to any of the given comments, oldest first."""
        ...
