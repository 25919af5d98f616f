"""In-memory implementations of repository interfaces.

Each repository guards its state with a lock so multi-row writes are
atomic, matching the transactional SQL implementations.
"""

import threading
import uuid
from datetime import datetime

from backend.app.collaboration.errors import ConflictError, NotFoundError
from backend.app.db.repositories import (
    CommentQuery,
    EventQuery,
    HistoryQuery,
    SessionQuery,
)
from backend.app.models.comments import Comment
from backend.app.models.events import CollaborationEvent
from backend.app.models.presence import PresenceRecord, PresenceStatus
from backend.app.models.sessions import CollaborationSession, Participant, SessionStatus
from backend.app.models.versions import Document, DocumentVersion


def _resource_key(session: CollaborationSession) -> tuple[uuid.UUID, str, str]:
    return (session.org_id, session.resource_id, session.resource_type)


class InMemorySessionRepository:
    """In-memory implementation of SessionRepository."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sessions: dict[uuid.UUID, CollaborationSession] = {}
        self._participants: dict[tuple[uuid.UUID, uuid.UUID], Participant] = {}

    def _active_for(self, key: tuple[uuid.UUID, str, str]) -> CollaborationSession | None:
        for stored in self._sessions.values():
            if stored.status == SessionStatus.active and _resource_key(stored) == key:
                return stored
        return None

    def create_active(
        self, session: CollaborationSession, participants: list[Participant]
    ) -> CollaborationSession:
        """Insert an active session and its roster under one lock."""
        with self._lock:
            existing = self._active_for(_resource_key(session))
            if existing is not None:
                raise ConflictError(
                    "Active session already exists for this resource",
                    session_id=existing.id,
                )
            self._sessions[session.id] = session.model_copy(deep=True)
            for participant in participants:
                self._participants[(participant.session_id, participant.user_id)] = (
                    participant.model_copy(deep=True)
                )
            return session.model_copy(deep=True)

    def get(
        self, session_id: uuid.UUID, org_id: uuid.UUID | None = None
    ) -> CollaborationSession | None:
        """Get a session by ID."""
        stored = self._sessions.get(session_id)
        if stored is None:
            return None

        # Enforce tenancy
        if org_id is not None and stored.org_id != org_id:
            return None

        return stored.model_copy(deep=True)

    def update(self, session: CollaborationSession) -> CollaborationSession:
        """Persist changed session fields."""
        with self._lock:
            if session.id not in self._sessions:
                raise NotFoundError("Session", session.id)
            if session.status == SessionStatus.active:
                existing = self._active_for(_resource_key(session))
                if existing is not None and existing.id != session.id:
                    raise ConflictError(
                        "Active session already exists for this resource",
                        session_id=existing.id,
                    )
            self._sessions[session.id] = session.model_copy(deep=True)
            return session.model_copy(deep=True)

    def list_for_user(self, query: SessionQuery) -> tuple[list[CollaborationSession], int]:
        """List sessions where the user is an active participant."""
        with self._lock:
            participants = list(self._participants.items())
            sessions = list(self._sessions.values())
        member_of = {
            session_id
            for (session_id, user_id), participant in participants
            if user_id == query.user_id and participant.is_active
        }

        matches = [
            s
            for s in sessions
            if s.org_id == query.org_id
            and s.id in member_of
            and (query.type is None or s.type == query.type)
            and (not query.active_only or s.status == SessionStatus.active)
        ]
        matches.sort(key=lambda s: s.updated_at, reverse=True)

        page = matches[query.offset : query.offset + query.limit]
        return [s.model_copy(deep=True) for s in page], len(matches)

    def list_active_for_resource(
        self, resource_id: str, resource_type: str, org_id: uuid.UUID | None = None
    ) -> list[CollaborationSession]:
        """List active sessions bound to a resource."""
        return [
            s
            for s in self.list_for_resource(resource_id, resource_type, org_id)
            if s.status == SessionStatus.active
        ]

    def list_for_resource(
        self, resource_id: str, resource_type: str, org_id: uuid.UUID | None = None
    ) -> list[CollaborationSession]:
        """List all sessions bound to a resource."""
        with self._lock:
            sessions = list(self._sessions.values())
        return [
            s.model_copy(deep=True)
            for s in sessions
            if s.resource_id == resource_id
            and s.resource_type == resource_type
            and (org_id is None or s.org_id == org_id)
        ]

    def list_org_sessions(self, org_id: uuid.UUID) -> list[CollaborationSession]:
        """List every session of an organization."""
        with self._lock:
            sessions = list(self._sessions.values())
        return [s.model_copy(deep=True) for s in sessions if s.org_id == org_id]

    def upsert_participant(self, participant: Participant) -> Participant:
        """Insert or reactivate a participant."""
        key = (participant.session_id, participant.user_id)
        with self._lock:
            existing = self._participants.get(key)
            if existing is None:
                stored = participant.model_copy(deep=True)
            else:
                stored = existing.model_copy(
                    update={"left_at": None, "last_activity": participant.last_activity}
                )
            self._participants[key] = stored
            return stored.model_copy(deep=True)

    def get_participant(self, session_id: uuid.UUID, user_id: uuid.UUID) -> Participant | None:
        """Get a participant row."""
        stored = self._participants.get((session_id, user_id))
        return stored.model_copy(deep=True) if stored else None

    def update_participant(self, participant: Participant) -> Participant:
        """Persist changed participant fields."""
        key = (participant.session_id, participant.user_id)
        with self._lock:
            if key not in self._participants:
                raise NotFoundError("Participant", participant.user_id)
            self._participants[key] = participant.model_copy(deep=True)
            return participant.model_copy(deep=True)

    def list_participants(
        self, session_id: uuid.UUID, active_only: bool = False
    ) -> list[Participant]:
        """List participants of a session, oldest join first."""
        with self._lock:
            participants = list(self._participants.items())
        rows = [
            p
            for (sid, _), p in participants
            if sid == session_id and (not active_only or p.is_active)
        ]
        rows.sort(key=lambda p: p.joined_at)
        return [p.model_copy(deep=True) for p in rows]

    def list_participations(
        self, user_id: uuid.UUID, active_only: bool = True
    ) -> list[Participant]:
        """List a user's participant rows."""
        with self._lock:
            participants = list(self._participants.items())
        return [
            p.model_copy(deep=True)
            for (_, uid), p in participants
            if uid == user_id and (not active_only or p.is_active)
        ]


class InMemoryPresenceRepository:
    """In-memory implementation of PresenceRepository."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[uuid.UUID, PresenceRecord] = {}

    def get(self, user_id: uuid.UUID) -> PresenceRecord | None:
        """Get a user's presence record."""
        stored = self._records.get(user_id)
        return stored.model_copy() if stored else None

    def upsert(self, record: PresenceRecord) -> PresenceRecord:
        """Insert or replace a presence record."""
        with self._lock:
            existing = self._records.get(record.user_id)
            if existing is not None:
                record = record.model_copy(update={"created_at": existing.created_at})
            self._records[record.user_id] = record
            return record.model_copy()

    def list_records(
        self,
        user_ids: set[uuid.UUID] | None = None,
        include_offline: bool = False,
        limit: int = 50,
    ) -> list[PresenceRecord]:
        """List presence records, online first then most recently seen."""
        order = list(PresenceStatus)
        with self._lock:
            records = list(self._records.values())
        rows = [
            r
            for r in records
            if (user_ids is None or r.user_id in user_ids)
            and (include_offline or r.status != PresenceStatus.offline)
        ]
        rows.sort(key=lambda r: r.last_seen, reverse=True)
        rows.sort(key=lambda r: order.index(r.status))
        return [r.model_copy() for r in rows[:limit]]

    def mark_stale_offline(self, cutoff: datetime, at: datetime) -> int:
        """Force stale records offline."""
        changed = 0
        with self._lock:
            for user_id, record in self._records.items():
                if record.status != PresenceStatus.offline and record.last_seen <= cutoff:
                    self._records[user_id] = record.model_copy(
                        update={
                            "status": PresenceStatus.offline,
                            "online_since": None,
                            "updated_at": at,
                        }
                    )
                    changed += 1
        return changed


class InMemoryEventRepository:
    """In-memory implementation of EventRepository."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._events: list[CollaborationEvent] = []

    def append(self, event: CollaborationEvent) -> CollaborationEvent:
        """Append an event."""
        with self._lock:
            self._events.append(event.model_copy(deep=True))
        return event

    def _newest_first(self, events: list[CollaborationEvent]) -> list[CollaborationEvent]:
        # Stable on insertion order for identical timestamps
        indexed = list(enumerate(events))
        indexed.sort(key=lambda pair: (pair[1].timestamp, pair[0]), reverse=True)
        return [e for _, e in indexed]

    def query(self, query: EventQuery) -> tuple[list[CollaborationEvent], int]:
        """Read events newest first."""
        with self._lock:
            events = list(self._events)
        matches = [
            e
            for e in events
            if e.session_id == query.session_id
            and (not query.types or e.type in query.types)
            and (query.actor_user_id is None or e.actor_user_id == query.actor_user_id)
            and (query.since is None or e.timestamp >= query.since)
            and (query.until is None or e.timestamp <= query.until)
        ]
        ordered = self._newest_first(matches)
        page = ordered[query.offset : query.offset + query.limit]
        return [e.model_copy(deep=True) for e in page], len(matches)

    def in_range(
        self, session_id: uuid.UUID, since: datetime, until: datetime | None = None
    ) -> list[CollaborationEvent]:
        """All events of a session within the range, oldest first."""
        with self._lock:
            events = list(self._events)
        return [
            e.model_copy(deep=True)
            for e in events
            if e.session_id == session_id
            and e.timestamp >= since
            and (until is None or e.timestamp <= until)
        ]

    def for_user(
        self, user_id: uuid.UUID, session_id: uuid.UUID | None = None, limit: int = 50
    ) -> list[CollaborationEvent]:
        """Latest events performed by a user."""
        with self._lock:
            events = list(self._events)
        matches = [
            e
            for e in events
            if e.actor_user_id == user_id and (session_id is None or e.session_id == session_id)
        ]
        return [e.model_copy(deep=True) for e in self._newest_first(matches)[:limit]]

    def delete(self, session_id: uuid.UUID, older_than: datetime | None = None) -> int:
        """Delete a session's events."""
        with self._lock:
            kept = [
                e
                for e in self._events
                if e.session_id != session_id
                or (older_than is not None and e.timestamp >= older_than)
            ]
            deleted = len(self._events) - len(kept)
            self._events = kept
        return deleted


class InMemoryDocumentRepository:
    """In-memory implementation of DocumentRepository."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._documents: dict[uuid.UUID, Document] = {}
        self._versions: dict[uuid.UUID, DocumentVersion] = {}

    def create_document(self, document: Document) -> Document:
        """Insert a document."""
        with self._lock:
            self._documents[document.id] = document.model_copy()
        return document

    def get_document(
        self, document_id: uuid.UUID, org_id: uuid.UUID | None = None
    ) -> Document | None:
        """Get a document by ID."""
        stored = self._documents.get(document_id)
        if stored is None:
            return None

        # Enforce tenancy
        if org_id is not None and stored.org_id != org_id:
            return None

        return stored.model_copy()

    def _insert_version(self, version: DocumentVersion) -> None:
        for existing in self._versions.values():
            if existing.document_id == version.document_id and existing.version == version.version:
                raise ConflictError(
                    "Version number already exists",
                    document_id=version.document_id,
                    version=version.version,
                )
        self._versions[version.id] = version.model_copy()

    def _move_pointer(self, version: DocumentVersion) -> Document:
        document = self._documents[version.document_id].model_copy(
            update={
                "current_version": version.version,
                "content": version.content or "",
                "updated_at": version.created_at,
            }
        )
        self._documents[document.id] = document
        return document.model_copy()

    def append_version(self, version: DocumentVersion) -> tuple[Document, DocumentVersion]:
        """Insert a version and move the document pointer, atomically."""
        with self._lock:
            if version.document_id not in self._documents:
                raise NotFoundError("Document", version.document_id)
            self._insert_version(version)
            document = self._move_pointer(version)
        return document, version.model_copy()

    def apply_restore(
        self, backup: DocumentVersion | None, restore: DocumentVersion
    ) -> Document:
        """Insert backup and restore versions and move the pointer, atomically."""
        with self._lock:
            if restore.document_id not in self._documents:
                raise NotFoundError("Document", restore.document_id)
            snapshot = dict(self._versions)
            try:
                if backup is not None:
                    self._insert_version(backup)
                self._insert_version(restore)
            except ConflictError:
                self._versions = snapshot
                raise
            return self._move_pointer(restore)

    def set_pointer(
        self, document_id: uuid.UUID, version: int, content: str | None, at: datetime
    ) -> Document:
        """Force the document pointer and content."""
        with self._lock:
            if document_id not in self._documents:
                raise NotFoundError("Document", document_id)
            document = self._documents[document_id].model_copy(
                update={"current_version": version, "content": content or "", "updated_at": at}
            )
            self._documents[document_id] = document
        return document.model_copy()

    def get_version(self, version_id: uuid.UUID) -> DocumentVersion | None:
        """Get a version by ID."""
        stored = self._versions.get(version_id)
        return stored.model_copy() if stored else None

    def _versions_of(self, document_id: uuid.UUID) -> list[DocumentVersion]:
        with self._lock:
            versions = list(self._versions.values())
        rows = [v for v in versions if v.document_id == document_id]
        rows.sort(key=lambda v: v.version, reverse=True)
        return rows

    def latest_version(self, document_id: uuid.UUID) -> DocumentVersion | None:
        """Version with the highest number."""
        rows = self._versions_of(document_id)
        return rows[0].model_copy() if rows else None

    def max_version(self, document_id: uuid.UUID) -> int:
        """Highest version number, 0 if none."""
        latest = self.latest_version(document_id)
        return latest.version if latest else 0

    def list_versions(
        self, document_id: uuid.UUID, query: HistoryQuery
    ) -> tuple[list[DocumentVersion], int]:
        """List versions, highest number first."""
        matches = [
            v
            for v in self._versions_of(document_id)
            if (query.author_id is None or v.author_id == query.author_id)
            and (query.since is None or v.created_at >= query.since)
            and (query.until is None or v.created_at <= query.until)
            and (query.change_type is None or v.change_type == query.change_type)
        ]
        page = matches[query.offset : query.offset + query.limit]
        return [v.model_copy() for v in page], len(matches)

    def delete_versions(self, version_ids: list[uuid.UUID]) -> int:
        """Delete versions by ID."""
        removed = 0
        with self._lock:
            for version_id in version_ids:
                if self._versions.pop(version_id, None) is not None:
                    removed += 1
        return removed


class InMemoryCommentRepository:
    """In-memory implementation of CommentRepository."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._comments: dict[uuid.UUID, Comment] = {}

    def create(self, comment: Comment) -> Comment:
        """Insert a comment."""
        with self._lock:
            self._comments[comment.id] = comment.model_copy(deep=True)
        return comment

    def get(self, comment_id: uuid.UUID) -> Comment | None:
        """Get a comment by ID."""
        stored = self._comments.get(comment_id)
        return stored.model_copy(deep=True) if stored else None

    def update(self, comment: Comment) -> Comment:
        """Persist changed comment fields."""
        with self._lock:
            if comment.id not in self._comments:
                raise NotFoundError("Comment", comment.id)
            self._comments[comment.id] = comment.model_copy(deep=True)
        return comment

    def delete(self, comment_id: uuid.UUID) -> bool:
        """Hard-delete a comment."""
        with self._lock:
            return self._comments.pop(comment_id, None) is not None

    def count_replies(self, comment_id: uuid.UUID) -> int:
        """Number of direct replies."""
        with self._lock:
            comments = list(self._comments.values())
        return sum(1 for c in comments if c.parent_id == comment_id)

    def list_roots(self, query: CommentQuery) -> tuple[list[Comment], int]:
        """List root comments of a document."""
        with self._lock:
            comments = list(self._comments.values())
        matches = [
            c
            for c in comments
            if c.document_id == query.document_id
            and c.parent_id is None
            and (query.resolved is None or c.resolved == query.resolved)
        ]
        matches.sort(
            key=lambda c: getattr(c, query.sort_by),
            reverse=query.sort_order == "desc",
        )
        page = matches[query.offset : query.offset + query.limit]
        return [c.model_copy(deep=True) for c in page], len(matches)

    def list_replies(self, parent_ids: list[uuid.UUID]) -> list[Comment]:
        """Direct replies, oldest first."""
        wanted = set(parent_ids)
        with self._lock:
            comments = list(self._comments.values())
        rows = [c for c in comments if c.parent_id in wanted]
        rows.sort(key=lambda c: c.created_at)
        return [c.model_copy(deep=True) for c in rows]


class InMemoryMembershipResolver:
    """In-memory implementation of OrgMembershipResolver."""

    def __init__(self, members: dict[uuid.UUID, set[uuid.UUID]] | None = None) -> None:
        self._members: dict[uuid.UUID, set[uuid.UUID]] = {
            org_id: set(users) for org_id, users in (members or {}).items()
        }

    def add(self, org_id: uuid.UUID, user_id: uuid.UUID) -> None:
        """Register a user as a member of an organization."""
        self._members.setdefault(org_id, set()).add(user_id)

    def members(self, org_id: uuid.UUID) -> set[uuid.UUID]:
        """Member user IDs of an organization."""
        return set(self._members.get(org_id, set()))
