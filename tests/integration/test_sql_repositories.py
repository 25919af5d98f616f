"""Integration tests for the SQL repositories on SQLite."""

import uuid
from datetime import datetime

import pytest

from backend.app.collaboration.errors import ConflictError
from backend.app.collaboration.versions import DOCUMENT_RESOURCE_TYPE
from backend.app.db.context import RequestContext
from backend.app.db.repositories import EventQuery, HistoryQuery
from backend.app.db.sql_repositories import SqlDocumentRepository, SqlSessionRepository
from backend.app.models.events import EventType
from backend.app.models.presence import PresenceStatus
from backend.app.models.sessions import (
    CollaborationSession,
    Participant,
    ParticipantRole,
    SessionStatus,
)
from backend.app.models.versions import ChangeType, DocumentVersion

NOW = datetime(2025, 6, 10, 9, 0)


@pytest.fixture
def ctx() -> RequestContext:
    return RequestContext(org_id=uuid.uuid4(), user_id=uuid.uuid4())


def _session_model(org_id: uuid.UUID, resource_id: str) -> CollaborationSession:
    return CollaborationSession(
        id=uuid.uuid4(),
        session_key=f"session_{uuid.uuid4().hex[:12]}",
        org_id=org_id,
        resource_id=resource_id,
        resource_type="document",
        type="document_editing",
        created_by=uuid.uuid4(),
        created_at=NOW,
        updated_at=NOW,
    )


def _owner(session: CollaborationSession) -> Participant:
    return Participant(
        id=uuid.uuid4(),
        session_id=session.id,
        user_id=session.created_by,
        role=ParticipantRole.owner,
        joined_at=NOW,
        last_activity=NOW,
    )


class TestSessionStore:
    """Session repository against SQLite."""

    def test_partial_unique_index_rejects_second_active_session(self, db_session) -> None:
        """Test the store itself refuses two active sessions on one resource."""
        repo = SqlSessionRepository(db_session)
        org_id = uuid.uuid4()
        first = _session_model(org_id, "doc-1")
        repo.create_active(first, [_owner(first)])

        second = _session_model(org_id, "doc-1")
        with pytest.raises(ConflictError) as exc_info:
            repo.create_active(second, [_owner(second)])

        assert exc_info.value.message == "Active session already exists for this resource"
        assert repo.get(second.id) is None
        assert len(repo.list_active_for_resource("doc-1", "document", org_id=org_id)) == 1

    def test_ended_sessions_do_not_block_new_ones(self, db_session) -> None:
        """Test the uniqueness rule only covers active sessions."""
        repo = SqlSessionRepository(db_session)
        org_id = uuid.uuid4()
        first = _session_model(org_id, "doc-1")
        repo.create_active(first, [_owner(first)])
        repo.update(first.model_copy(update={"status": SessionStatus.ended, "ended_at": NOW}))

        second = _session_model(org_id, "doc-1")
        stored = repo.create_active(second, [_owner(second)])

        assert stored.status == SessionStatus.active
        assert len(repo.list_for_resource("doc-1", "document", org_id=org_id)) == 2

    def test_session_lifecycle_through_services(self, sql_services, ctx) -> None:
        """Test create, join, leave and end persist through the SQL store."""
        detail = sql_services.sessions.create_session(
            ctx,
            resource_id="doc-1",
            resource_type="document",
            type="document_editing",
            metadata={"color": "teal"},
        )
        guest = ctx.acting_as(uuid.uuid4())
        sql_services.sessions.join_session(guest, detail.session.id)
        sql_services.sessions.leave_session(guest, detail.session.id)
        sql_services.sessions.join_session(guest, detail.session.id)

        with pytest.raises(ConflictError):
            sql_services.sessions.create_session(
                ctx, resource_id="doc-1", resource_type="document", type="document_editing"
            )

        roster = sql_services.sessions.get_session(ctx, detail.session.id)
        assert roster.session.metadata == {"color": "teal"}
        assert len(roster.participants) == 2
        assert all(p.left_at is None for p in roster.participants)

        ended = sql_services.sessions.end_session(ctx, detail.session.id)
        assert ended.status == SessionStatus.ended
        page = sql_services.sessions.list_sessions(ctx, active_only=True)
        assert page.total == 0


class TestEventStore:
    """Event repository against SQLite."""

    def test_same_timestamp_events_keep_insertion_order(self, sql_services, ctx) -> None:
        """Test newest-first ordering is stable for identical timestamps."""
        detail = sql_services.sessions.create_session(
            ctx, resource_id="doc-1", resource_type="document", type="document_editing"
        )
        for event_type in (EventType.typing_start, EventType.document_change, EventType.typing_stop):
            sql_services.events.record(ctx, detail.session.id, event_type, {"n": event_type.value})

        page = sql_services.events.query(ctx, EventQuery(session_id=detail.session.id))

        assert [e.type for e in page.items] == [
            EventType.typing_stop,
            EventType.document_change,
            EventType.typing_start,
            EventType.session_create,
        ]
        assert page.items[0].payload == {"n": "typing_stop"}
        participant = sql_services.sessions.get_active_participants(ctx, detail.session.id)[0]
        assert participant.event_count == 3

    def test_delete_events(self, sql_services, ctx, clock) -> None:
        """Test bulk deletion removes events before the cutoff."""
        detail = sql_services.sessions.create_session(
            ctx, resource_id="doc-1", resource_type="document", type="document_editing"
        )
        cutoff = clock.advance(minutes=10)
        sql_services.events.record(ctx, detail.session.id, EventType.document_change)

        assert sql_services.events.delete_events(ctx, detail.session.id, older_than=cutoff) == 1
        assert sql_services.events.query(ctx, EventQuery(session_id=detail.session.id)).total == 1


class TestPresenceStore:
    """Presence repository against SQLite."""

    def test_listing_order_and_sweep(self, sql_services, ctx, clock) -> None:
        """Test online-first ordering and the staleness sweep."""
        away, online, stale = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
        sql_services.presence.update_presence(stale, "online")
        clock.advance(minutes=11)
        sql_services.presence.update_presence(away, "away")
        sql_services.presence.update_presence(online, "online")

        listing = sql_services.presence.list_presence(ctx, user_ids={away, online, stale})
        assert [v.user_id for v in listing.users] == [online, stale, away]

        assert sql_services.presence.cleanup_stale_presence() == 1
        swept = sql_services.presence.get_presence(stale)
        assert swept.status == PresenceStatus.offline
        assert swept.online_since is None

    def test_sweep_includes_the_stale_threshold(self, sql_services, clock) -> None:
        """Test a user last seen exactly ten minutes ago is swept."""
        user_id = uuid.uuid4()
        sql_services.presence.update_presence(user_id, "online")
        clock.advance(seconds=600)

        assert sql_services.presence.cleanup_stale_presence() == 1
        assert sql_services.presence.get_presence(user_id).status == PresenceStatus.offline


class TestVersionStore:
    """Document repository against SQLite."""

    def test_restore_writes_backup_and_restore_atomically(self, sql_services, ctx) -> None:
        """Test restoring v1 over v2 writes backup v3 and restore v4."""
        document = sql_services.versions.create_document(ctx, "Spec")
        v1 = sql_services.versions.create_version(ctx, document.id, "A")
        sql_services.versions.create_version(ctx, document.id, "B")

        result = sql_services.versions.restore_version(ctx, v1.id)

        assert result.backup_version is not None
        assert (result.backup_version.version, result.backup_version.content) == (3, "B")
        assert (result.restore_version.version, result.restore_version.content) == (4, "A")
        stored = sql_services.versions.get_document(ctx, document.id)
        assert (stored.current_version, stored.content) == (4, "A")

    def test_duplicate_version_number_rolls_back(self, db_session, sql_services, ctx) -> None:
        """Test a conflicting restore leaves neither version nor pointer behind."""
        document = sql_services.versions.create_document(ctx, "Spec")
        sql_services.versions.create_version(ctx, document.id, "A")
        repo = SqlDocumentRepository(db_session)

        def version(number: int, change_type: ChangeType) -> DocumentVersion:
            return DocumentVersion(
                id=uuid.uuid4(),
                document_id=document.id,
                version=number,
                title=f"v{number}",
                content=f"content {number}",
                change_type=change_type,
                author_id=ctx.user_id,
                created_at=NOW,
            )

        with pytest.raises(ConflictError):
            repo.apply_restore(version(1, ChangeType.backup), version(2, ChangeType.restore))

        assert repo.max_version(document.id) == 1
        assert repo.get_document(document.id).current_version == 1

    def test_delete_and_cleanup(self, sql_services, ctx) -> None:
        """Test retention and explicit deletion against the SQL store."""
        document = sql_services.versions.create_document(ctx, "Spec")
        sql_services.sessions.create_session(
            ctx,
            resource_id=str(document.id),
            resource_type=DOCUMENT_RESOURCE_TYPE,
            type="document_editing",
        )
        versions = [
            sql_services.versions.create_version(ctx, document.id, f"rev {i}") for i in range(7)
        ]

        history = sql_services.versions.get_document_history(
            ctx, document.id, HistoryQuery(limit=50)
        )
        assert [e.version.version for e in history.items] == [7, 6, 5, 4, 3]

        sql_services.versions.delete_version(ctx, versions[2].id)
        assert sql_services.versions.get_document_history(ctx, document.id).total == 4


class TestCommentStore:
    """Comment repository against SQLite."""

    def test_reactions_round_trip(self, sql_services, ctx) -> None:
        """Test reaction sets survive the JSON column."""
        document = sql_services.versions.create_document(ctx, "Spec")
        comment = sql_services.comments.create_comment(ctx, document.id, "LGTM")
        fan = ctx.acting_as(uuid.uuid4())

        sql_services.comments.add_reaction(ctx, comment.id, "👍")
        sql_services.comments.add_reaction(fan, comment.id, "👍")
        sql_services.comments.add_reaction(fan, comment.id, "🚀")
        sql_services.comments.remove_reaction(fan, comment.id, "🚀")

        thread = sql_services.comments.get_thread(ctx, comment.id)
        assert thread.root.reactions == {"👍": {ctx.user_id, fan.user_id}}

    def test_tombstone_keeps_thread(self, sql_services, ctx) -> None:
        """Test deleting a replied-to comment keeps the thread intact."""
        document = sql_services.versions.create_document(ctx, "Spec")
        root = sql_services.comments.create_comment(ctx, document.id, "Question")
        sql_services.comments.create_comment(
            ctx.acting_as(uuid.uuid4()), document.id, "Answer", parent_id=root.id
        )

        sql_services.comments.delete_comment(ctx, root.id)

        page = sql_services.comments.list_threads(ctx, document_id=document.id)
        assert page.items[0].root.content == "[deleted]"
        assert [r.content for r in page.items[0].replies] == ["Answer"]
