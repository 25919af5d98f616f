"""SQL implementations of repository interfaces."""

import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime

from sqlalchemy import case, func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from backend.app.collaboration.errors import ConflictError, InternalError, NotFoundError
from backend.app.db.models import (
    CollabComment,
    CollabDocument,
    CollabDocumentVersion,
    CollabEvent,
    CollabParticipant,
    CollabSession,
    UserPresence,
)
from backend.app.db.queries import query_documents, query_sessions
from backend.app.db.repositories import (
    CommentQuery,
    EventQuery,
    HistoryQuery,
    SessionQuery,
)
from backend.app.models.comments import Comment
from backend.app.models.events import CollaborationEvent, EventType
from backend.app.models.presence import PresenceRecord, PresenceStatus
from backend.app.models.sessions import (
    CollaborationSession,
    Participant,
    ParticipantRole,
    SessionStatus,
)
from backend.app.models.versions import ChangeType, Document, DocumentVersion


@contextmanager
def _store_errors(session: Session, operation: str) -> Iterator[None]:
    """Roll back and translate driver failures into collaboration errors."""
    try:
        yield
    except IntegrityError as e:
        session.rollback()
        raise ConflictError(
            f"{operation} violates a uniqueness constraint", operation=operation
        ) from e
    except SQLAlchemyError as e:
        session.rollback()
        raise InternalError(f"{operation} failed", operation=operation) from e


def _to_session(row: CollabSession) -> CollaborationSession:
    return CollaborationSession(
        id=row.id,
        session_key=row.session_key,
        org_id=row.org_id,
        resource_id=row.resource_id,
        resource_type=row.resource_type,
        type=row.type,
        title=row.title,
        description=row.description,
        metadata=row.meta or {},
        status=SessionStatus(row.status),
        created_by=row.created_by,
        created_at=row.created_at,
        updated_at=row.updated_at,
        ended_at=row.ended_at,
    )


def _to_participant(row: CollabParticipant) -> Participant:
    return Participant(
        id=row.id,
        session_id=row.session_id,
        user_id=row.user_id,
        role=ParticipantRole(row.role),
        permissions=row.permissions or {},
        joined_at=row.joined_at,
        left_at=row.left_at,
        last_activity=row.last_activity,
        event_count=row.event_count,
    )


def _participant_row(participant: Participant) -> CollabParticipant:
    return CollabParticipant(
        id=participant.id,
        session_id=participant.session_id,
        user_id=participant.user_id,
        role=participant.role.value,
        permissions=participant.permissions,
        joined_at=participant.joined_at,
        left_at=participant.left_at,
        last_activity=participant.last_activity,
        event_count=participant.event_count,
    )


class SqlSessionRepository:
    """SQL implementation of SessionRepository."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def create_active(
        self, session: CollaborationSession, participants: list[Participant]
    ) -> CollaborationSession:
        """Insert an active session and its roster in one transaction.

        The partial unique index on active sessions turns a concurrent
        second insert into an IntegrityError.
        """
        row = CollabSession(
            id=session.id,
            session_key=session.session_key,
            org_id=session.org_id,
            resource_id=session.resource_id,
            resource_type=session.resource_type,
            type=session.type,
            title=session.title,
            description=session.description,
            meta=session.metadata,
            status=session.status.value,
            created_by=session.created_by,
            created_at=session.created_at,
            updated_at=session.updated_at,
            ended_at=session.ended_at,
        )
        try:
            with _store_errors(self._session, "create session"):
                self._session.add(row)
                self._session.flush()
                self._session.add_all(_participant_row(p) for p in participants)
                self._session.commit()
        except ConflictError as e:
            raise ConflictError(
                "Active session already exists for this resource",
                resource_id=session.resource_id,
                resource_type=session.resource_type,
            ) from e

        return _to_session(row)

    def get(
        self, session_id: uuid.UUID, org_id: uuid.UUID | None = None
    ) -> CollaborationSession | None:
        """Get a session by ID."""
        row = query_sessions(self._session, org_id).filter(CollabSession.id == session_id).first()

        if row is None:
            return None

        return _to_session(row)

    def update(self, session: CollaborationSession) -> CollaborationSession:
        """Persist changed session fields."""
        row = self._session.get(CollabSession, session.id)
        if row is None:
            raise NotFoundError("Session", session.id)

        with _store_errors(self._session, "update session"):
            row.title = session.title
            row.description = session.description
            row.meta = session.metadata
            row.status = session.status.value
            row.updated_at = session.updated_at
            row.ended_at = session.ended_at
            self._session.commit()

        return _to_session(row)

    def list_for_user(self, query: SessionQuery) -> tuple[list[CollaborationSession], int]:
        """List sessions where the user is an active participant."""
        base = (
            query_sessions(self._session, query.org_id)
            .join(CollabParticipant, CollabParticipant.session_id == CollabSession.id)
            .filter(
                CollabParticipant.user_id == query.user_id,
                CollabParticipant.left_at.is_(None),
            )
        )
        if query.type is not None:
            base = base.filter(CollabSession.type == query.type)
        if query.active_only:
            base = base.filter(CollabSession.status == SessionStatus.active.value)

        total = base.count()
        rows = (
            base.order_by(CollabSession.updated_at.desc())
            .offset(query.offset)
            .limit(query.limit)
            .all()
        )
        return [_to_session(r) for r in rows], total

    def list_active_for_resource(
        self, resource_id: str, resource_type: str, org_id: uuid.UUID | None = None
    ) -> list[CollaborationSession]:
        """List active sessions bound to a resource."""
        rows = (
            query_sessions(self._session, org_id)
            .filter(
                CollabSession.resource_id == resource_id,
                CollabSession.resource_type == resource_type,
                CollabSession.status == SessionStatus.active.value,
            )
            .all()
        )
        return [_to_session(r) for r in rows]

    def list_for_resource(
        self, resource_id: str, resource_type: str, org_id: uuid.UUID | None = None
    ) -> list[CollaborationSession]:
        """List all sessions bound to a resource."""
        rows = (
            query_sessions(self._session, org_id)
            .filter(
                CollabSession.resource_id == resource_id,
                CollabSession.resource_type == resource_type,
            )
            .order_by(CollabSession.created_at)
            .all()
        )
        return [_to_session(r) for r in rows]

    def list_org_sessions(self, org_id: uuid.UUID) -> list[CollaborationSession]:
        """List every session of an organization."""
        return [_to_session(r) for r in query_sessions(self._session, org_id).all()]

    def _participant_row(self, session_id: uuid.UUID, user_id: uuid.UUID) -> CollabParticipant | None:
        return (
            self._session.query(CollabParticipant)
            .filter(
                CollabParticipant.session_id == session_id,
                CollabParticipant.user_id == user_id,
            )
            .first()
        )

    def upsert_participant(self, participant: Participant) -> Participant:
        """Insert or reactivate a participant."""
        row = self._participant_row(participant.session_id, participant.user_id)

        with _store_errors(self._session, "join session"):
            if row is None:
                row = _participant_row(participant)
                self._session.add(row)
            else:
                row.left_at = None
                row.last_activity = participant.last_activity
            self._session.commit()

        return _to_participant(row)

    def get_participant(self, session_id: uuid.UUID, user_id: uuid.UUID) -> Participant | None:
        """Get a participant row."""
        row = self._participant_row(session_id, user_id)
        return _to_participant(row) if row else None

    def update_participant(self, participant: Participant) -> Participant:
        """Persist changed participant fields."""
        row = self._participant_row(participant.session_id, participant.user_id)
        if row is None:
            raise NotFoundError("Participant", participant.user_id)

        with _store_errors(self._session, "update participant"):
            row.role = participant.role.value
            row.permissions = participant.permissions
            row.left_at = participant.left_at
            row.last_activity = participant.last_activity
            row.event_count = participant.event_count
            self._session.commit()

        return _to_participant(row)

    def list_participants(
        self, session_id: uuid.UUID, active_only: bool = False
    ) -> list[Participant]:
        """List participants of a session, oldest join first."""
        query = self._session.query(CollabParticipant).filter(
            CollabParticipant.session_id == session_id
        )
        if active_only:
            query = query.filter(CollabParticipant.left_at.is_(None))
        return [_to_participant(r) for r in query.order_by(CollabParticipant.joined_at).all()]

    def list_participations(
        self, user_id: uuid.UUID, active_only: bool = True
    ) -> list[Participant]:
        """List a user's participant rows."""
        query = self._session.query(CollabParticipant).filter(CollabParticipant.user_id == user_id)
        if active_only:
            query = query.filter(CollabParticipant.left_at.is_(None))
        return [_to_participant(r) for r in query.all()]


def _to_presence(row: UserPresence) -> PresenceRecord:
    return PresenceRecord(
        user_id=row.user_id,
        status=PresenceStatus(row.status),
        location=row.location,
        last_seen=row.last_seen,
        online_since=row.online_since,
        device_type=row.device_type,
        browser_info=row.browser_info,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class SqlPresenceRepository:
    """SQL implementation of PresenceRepository."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, user_id: uuid.UUID) -> PresenceRecord | None:
        """Get a user's presence record."""
        row = self._session.get(UserPresence, user_id)
        return _to_presence(row) if row else None

    def upsert(self, record: PresenceRecord) -> PresenceRecord:
        """Insert or replace a presence record; created_at is kept."""
        row = self._session.get(UserPresence, record.user_id)

        with _store_errors(self._session, "update presence"):
            if row is None:
                row = UserPresence(user_id=record.user_id, created_at=record.created_at)
                self._session.add(row)
            row.status = record.status.value
            row.location = record.location
            row.last_seen = record.last_seen
            row.online_since = record.online_since
            row.device_type = record.device_type
            row.browser_info = record.browser_info
            row.updated_at = record.updated_at
            self._session.commit()

        return _to_presence(row)

    def list_records(
        self,
        user_ids: set[uuid.UUID] | None = None,
        include_offline: bool = False,
        limit: int = 50,
    ) -> list[PresenceRecord]:
        """List presence records, online first then most recently seen."""
        status_rank = case(
            {status.value: rank for rank, status in enumerate(PresenceStatus)},
            value=UserPresence.status,
        )
        query = self._session.query(UserPresence)
        if user_ids is not None:
            query = query.filter(UserPresence.user_id.in_(list(user_ids)))
        if not include_offline:
            query = query.filter(UserPresence.status != PresenceStatus.offline.value)

        rows = query.order_by(status_rank, UserPresence.last_seen.desc()).limit(limit).all()
        return [_to_presence(r) for r in rows]

    def mark_stale_offline(self, cutoff: datetime, at: datetime) -> int:
        """Force stale records offline."""
        with _store_errors(self._session, "sweep presence"):
            result = self._session.execute(
                update(UserPresence)
                .where(
                    UserPresence.status != PresenceStatus.offline.value,
                    UserPresence.last_seen <= cutoff,
                )
                .values(status=PresenceStatus.offline.value, online_since=None, updated_at=at)
            )
            self._session.commit()
        return result.rowcount


def _to_event(row: CollabEvent) -> CollaborationEvent:
    return CollaborationEvent(
        id=row.id,
        session_id=row.session_id,
        type=EventType(row.type),
        payload=row.payload,
        actor_user_id=row.actor_user_id,
        document_id=row.document_id,
        version=row.version,
        position=row.position,
        timestamp=row.timestamp,
    )


class SqlEventRepository:
    """SQL implementation of EventRepository."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def append(self, event: CollaborationEvent) -> CollaborationEvent:
        """Append an event."""
        row = CollabEvent(
            id=event.id,
            session_id=event.session_id,
            type=event.type.value,
            payload=event.payload,
            actor_user_id=event.actor_user_id,
            document_id=event.document_id,
            version=event.version,
            position=event.position,
            timestamp=event.timestamp,
        )

        with _store_errors(self._session, "append event"):
            self._session.add(row)
            self._session.commit()

        return event

    def query(self, query: EventQuery) -> tuple[list[CollaborationEvent], int]:
        """Read events newest first."""
        base = self._session.query(CollabEvent).filter(CollabEvent.session_id == query.session_id)
        if query.types:
            base = base.filter(CollabEvent.type.in_([t.value for t in query.types]))
        if query.actor_user_id is not None:
            base = base.filter(CollabEvent.actor_user_id == query.actor_user_id)
        if query.since is not None:
            base = base.filter(CollabEvent.timestamp >= query.since)
        if query.until is not None:
            base = base.filter(CollabEvent.timestamp <= query.until)

        total = base.count()
        rows = (
            base.order_by(CollabEvent.timestamp.desc(), CollabEvent.seq.desc())
            .offset(query.offset)
            .limit(query.limit)
            .all()
        )
        return [_to_event(r) for r in rows], total

    def in_range(
        self, session_id: uuid.UUID, since: datetime, until: datetime | None = None
    ) -> list[CollaborationEvent]:
        """All events of a session within the range, oldest first."""
        query = self._session.query(CollabEvent).filter(
            CollabEvent.session_id == session_id, CollabEvent.timestamp >= since
        )
        if until is not None:
            query = query.filter(CollabEvent.timestamp <= until)
        rows = query.order_by(CollabEvent.timestamp, CollabEvent.seq).all()
        return [_to_event(r) for r in rows]

    def for_user(
        self, user_id: uuid.UUID, session_id: uuid.UUID | None = None, limit: int = 50
    ) -> list[CollaborationEvent]:
        """Latest events performed by a user."""
        query = self._session.query(CollabEvent).filter(CollabEvent.actor_user_id == user_id)
        if session_id is not None:
            query = query.filter(CollabEvent.session_id == session_id)
        rows = (
            query.order_by(CollabEvent.timestamp.desc(), CollabEvent.seq.desc()).limit(limit).all()
        )
        return [_to_event(r) for r in rows]

    def delete(self, session_id: uuid.UUID, older_than: datetime | None = None) -> int:
        """Delete a session's events."""
        query = self._session.query(CollabEvent).filter(CollabEvent.session_id == session_id)
        if older_than is not None:
            query = query.filter(CollabEvent.timestamp < older_than)

        with _store_errors(self._session, "delete events"):
            deleted = query.delete(synchronize_session="fetch")
            self._session.commit()
        return deleted


def _to_document(row: CollabDocument) -> Document:
    return Document(
        id=row.id,
        org_id=row.org_id,
        title=row.title,
        content=row.content,
        current_version=row.current_version,
        created_by=row.created_by,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _to_version(row: CollabDocumentVersion) -> DocumentVersion:
    return DocumentVersion(
        id=row.id,
        document_id=row.document_id,
        version=row.version,
        title=row.title,
        summary=row.summary,
        content=row.content,
        change_type=ChangeType(row.change_type),
        lines_added=row.lines_added,
        lines_removed=row.lines_removed,
        author_id=row.author_id,
        created_at=row.created_at,
    )


def _version_row(version: DocumentVersion) -> CollabDocumentVersion:
    return CollabDocumentVersion(
        id=version.id,
        document_id=version.document_id,
        version=version.version,
        title=version.title,
        summary=version.summary,
        content=version.content,
        change_type=version.change_type.value,
        lines_added=version.lines_added,
        lines_removed=version.lines_removed,
        author_id=version.author_id,
        created_at=version.created_at,
    )


class SqlDocumentRepository:
    """SQL implementation of DocumentRepository."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def create_document(self, document: Document) -> Document:
        """Insert a document."""
        row = CollabDocument(
            id=document.id,
            org_id=document.org_id,
            title=document.title,
            content=document.content,
            current_version=document.current_version,
            created_by=document.created_by,
            created_at=document.created_at,
            updated_at=document.updated_at,
        )

        with _store_errors(self._session, "create document"):
            self._session.add(row)
            self._session.commit()

        return _to_document(row)

    def get_document(
        self, document_id: uuid.UUID, org_id: uuid.UUID | None = None
    ) -> Document | None:
        """Get a document by ID."""
        row = query_documents(self._session, org_id).filter(CollabDocument.id == document_id).first()

        if row is None:
            return None

        return _to_document(row)

    def _locked_document(self, document_id: uuid.UUID) -> CollabDocument:
        row = self._session.get(CollabDocument, document_id, with_for_update=True)
        if row is None:
            raise NotFoundError("Document", document_id)
        return row

    @staticmethod
    def _move_pointer(row: CollabDocument, version: DocumentVersion) -> None:
        row.current_version = version.version
        row.content = version.content or ""
        row.updated_at = version.created_at

    def append_version(self, version: DocumentVersion) -> tuple[Document, DocumentVersion]:
        """Insert a version and move the document pointer in one transaction."""
        with _store_errors(self._session, "create version"):
            row = self._locked_document(version.document_id)
            self._session.add(_version_row(version))
            self._move_pointer(row, version)
            self._session.commit()

        return _to_document(row), version

    def apply_restore(
        self, backup: DocumentVersion | None, restore: DocumentVersion
    ) -> Document:
        """Insert backup and restore versions and move the pointer in one transaction."""
        with _store_errors(self._session, "restore version"):
            row = self._locked_document(restore.document_id)
            if backup is not None:
                self._session.add(_version_row(backup))
            self._session.add(_version_row(restore))
            self._move_pointer(row, restore)
            self._session.commit()

        return _to_document(row)

    def set_pointer(
        self, document_id: uuid.UUID, version: int, content: str | None, at: datetime
    ) -> Document:
        """Force the document pointer and content."""
        with _store_errors(self._session, "reconcile document"):
            row = self._locked_document(document_id)
            row.current_version = version
            row.content = content or ""
            row.updated_at = at
            self._session.commit()

        return _to_document(row)

    def get_version(self, version_id: uuid.UUID) -> DocumentVersion | None:
        """Get a version by ID."""
        row = self._session.get(CollabDocumentVersion, version_id)
        return _to_version(row) if row else None

    def latest_version(self, document_id: uuid.UUID) -> DocumentVersion | None:
        """Version with the highest number."""
        row = (
            self._session.query(CollabDocumentVersion)
            .filter(CollabDocumentVersion.document_id == document_id)
            .order_by(CollabDocumentVersion.version.desc())
            .first()
        )
        return _to_version(row) if row else None

    def max_version(self, document_id: uuid.UUID) -> int:
        """Highest version number, 0 if none."""
        value = (
            self._session.query(func.max(CollabDocumentVersion.version))
            .filter(CollabDocumentVersion.document_id == document_id)
            .scalar()
        )
        return value or 0

    def list_versions(
        self, document_id: uuid.UUID, query: HistoryQuery
    ) -> tuple[list[DocumentVersion], int]:
        """List versions, highest number first."""
        base = self._session.query(CollabDocumentVersion).filter(
            CollabDocumentVersion.document_id == document_id
        )
        if query.author_id is not None:
            base = base.filter(CollabDocumentVersion.author_id == query.author_id)
        if query.since is not None:
            base = base.filter(CollabDocumentVersion.created_at >= query.since)
        if query.until is not None:
            base = base.filter(CollabDocumentVersion.created_at <= query.until)
        if query.change_type is not None:
            base = base.filter(CollabDocumentVersion.change_type == query.change_type.value)

        total = base.count()
        rows = (
            base.order_by(CollabDocumentVersion.version.desc())
            .offset(query.offset)
            .limit(query.limit)
            .all()
        )
        return [_to_version(r) for r in rows], total

    def delete_versions(self, version_ids: list[uuid.UUID]) -> int:
        """Delete versions by ID."""
        if not version_ids:
            return 0

        with _store_errors(self._session, "delete versions"):
            deleted = (
                self._session.query(CollabDocumentVersion)
                .filter(CollabDocumentVersion.id.in_(version_ids))
                .delete(synchronize_session="fetch")
            )
            self._session.commit()
        return deleted


def _to_comment(row: CollabComment) -> Comment:
    return Comment(
        id=row.id,
        document_id=row.document_id,
        author_id=row.author_id,
        content=row.content,
        position=row.position,
        parent_id=row.parent_id,
        resolved=row.resolved,
        reactions={emoji: {uuid.UUID(u) for u in users} for emoji, users in (row.reactions or {}).items()},
        metadata=row.meta or {},
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _reactions_json(reactions: dict[str, set[uuid.UUID]]) -> dict[str, list[str]]:
    return {emoji: sorted(str(u) for u in users) for emoji, users in reactions.items() if users}


class SqlCommentRepository:
    """SQL implementation of CommentRepository."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def create(self, comment: Comment) -> Comment:
        """Insert a comment."""
        row = CollabComment(
            id=comment.id,
            document_id=comment.document_id,
            author_id=comment.author_id,
            content=comment.content,
            position=comment.position,
            parent_id=comment.parent_id,
            resolved=comment.resolved,
            reactions=_reactions_json(comment.reactions),
            meta=comment.metadata,
            created_at=comment.created_at,
            updated_at=comment.updated_at,
        )

        with _store_errors(self._session, "create comment"):
            self._session.add(row)
            self._session.commit()

        return _to_comment(row)

    def get(self, comment_id: uuid.UUID) -> Comment | None:
        """Get a comment by ID."""
        row = self._session.get(CollabComment, comment_id)
        return _to_comment(row) if row else None

    def update(self, comment: Comment) -> Comment:
        """Persist changed comment fields."""
        row = self._session.get(CollabComment, comment.id)
        if row is None:
            raise NotFoundError("Comment", comment.id)

        with _store_errors(self._session, "update comment"):
            row.content = comment.content
            row.resolved = comment.resolved
            row.reactions = _reactions_json(comment.reactions)
            row.meta = comment.metadata
            row.updated_at = comment.updated_at
            self._session.commit()

        return _to_comment(row)

    def delete(self, comment_id: uuid.UUID) -> bool:
        """Hard-delete a comment."""
        row = self._session.get(CollabComment, comment_id)
        if row is None:
            return False

        with _store_errors(self._session, "delete comment"):
            self._session.delete(row)
            self._session.commit()
        return True

    def count_replies(self, comment_id: uuid.UUID) -> int:
        """Number of direct replies."""
        return (
            self._session.query(CollabComment).filter(CollabComment.parent_id == comment_id).count()
        )

    def list_roots(self, query: CommentQuery) -> tuple[list[Comment], int]:
        """List root comments of a document."""
        base = self._session.query(CollabComment).filter(
            CollabComment.document_id == query.document_id,
            CollabComment.parent_id.is_(None),
        )
        if query.resolved is not None:
            base = base.filter(CollabComment.resolved == query.resolved)

        sort_column = getattr(CollabComment, query.sort_by)
        ordering = sort_column.desc() if query.sort_order == "desc" else sort_column.asc()

        total = base.count()
        rows = base.order_by(ordering).offset(query.offset).limit(query.limit).all()
        return [_to_comment(r) for r in rows], total

    def list_replies(self, parent_ids: list[uuid.UUID]) -> list[Comment]:
        """Direct replies, oldest first."""
        if not parent_ids:
            return []
        rows = (
            self._session.query(CollabComment)
            .filter(CollabComment.parent_id.in_(parent_ids))
            .order_by(CollabComment.created_at)
            .all()
        )
        return [_to_comment(r) for r in rows]
