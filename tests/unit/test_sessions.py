"""Unit tests for the session manager."""

import re
import threading
import uuid

import pytest

from backend.app.collaboration.errors import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from backend.app.collaboration.sessions import new_session_key
from backend.app.db.repositories import EventQuery
from backend.app.models.events import EventType
from backend.app.models.sessions import (
    ParticipantRole,
    ParticipantSpec,
    SessionStatus,
    SessionUpdate,
)


def _create(services, ctx, resource_id="doc-1", **kwargs):
    return services.sessions.create_session(
        ctx,
        resource_id=resource_id,
        resource_type=kwargs.pop("resource_type", "document"),
        type=kwargs.pop("type", "document_editing"),
        **kwargs,
    )


def _event_types(services, ctx, session_id):
    page = services.events.query(ctx, EventQuery(session_id=session_id, limit=100))
    return [e.type for e in page.items]


def test_session_key_format() -> None:
    """Test session keys look like session_<ms>_<9 chars>."""
    key = new_session_key(1718000000000)

    assert re.fullmatch(r"session_1718000000000_[a-z0-9]{9}", key)


def test_create_session_makes_creator_owner(services, make_ctx) -> None:
    """Test the creator joins as owner and session_create is logged."""
    ctx = make_ctx()

    detail = _create(services, ctx, title="Spec review")

    assert detail.session.status == SessionStatus.active
    assert detail.session.created_by == ctx.user_id
    assert detail.session.session_key.startswith("session_")
    assert [(p.user_id, p.role) for p in detail.participants] == [
        (ctx.user_id, ParticipantRole.owner)
    ]
    assert _event_types(services, ctx, detail.session.id) == [EventType.session_create]


def test_create_session_adds_listed_participants_once(services, make_ctx) -> None:
    """Test initial participants are added and the creator is never duplicated."""
    ctx = make_ctx()
    editor = uuid.uuid4()

    detail = _create(
        services,
        ctx,
        participants=[
            ParticipantSpec(user_id=editor, role=ParticipantRole.admin),
            ParticipantSpec(user_id=ctx.user_id, role=ParticipantRole.viewer),
            ParticipantSpec(user_id=editor, role=ParticipantRole.member),
        ],
    )

    roles = {p.user_id: p.role for p in detail.participants}
    assert roles == {ctx.user_id: ParticipantRole.owner, editor: ParticipantRole.admin}


def test_create_session_requires_fields(services, make_ctx) -> None:
    """Test missing resource fields are rejected."""
    with pytest.raises(ValidationError) as exc_info:
        _create(services, make_ctx(), resource_id="")

    assert "resource_id" in exc_info.value.message


def test_create_session_conflicts_with_active_session(services, make_ctx) -> None:
    """Test a second active session on the same resource is a conflict."""
    ctx = make_ctx()
    _create(services, ctx)

    with pytest.raises(ConflictError):
        _create(services, make_ctx())


def test_create_session_allowed_after_previous_ended(services, make_ctx) -> None:
    """Test a resource can get a new session once the old one has ended."""
    ctx = make_ctx()
    first = _create(services, ctx)
    services.sessions.end_session(ctx, first.session.id)

    second = _create(services, ctx)

    assert second.session.id != first.session.id


def test_same_resource_in_other_org_does_not_conflict(services, make_ctx) -> None:
    """Test the active-session rule is per organization."""
    _create(services, make_ctx())

    other = _create(services, make_ctx(org=uuid.uuid4()))

    assert other.session.status == SessionStatus.active


def test_concurrent_create_yields_single_active_session(services, make_ctx) -> None:
    """Test racing creators on one resource produce exactly one session."""
    outcomes: list[str] = []
    lock = threading.Lock()
    barrier = threading.Barrier(8)

    def worker() -> None:
        barrier.wait()
        try:
            _create(services, make_ctx())
            result = "created"
        except ConflictError:
            result = "conflict"
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert outcomes.count("created") == 1
    assert outcomes.count("conflict") == 7


def test_update_session_requires_admin(services, make_ctx) -> None:
    """Test members cannot update a session."""
    owner = make_ctx()
    detail = _create(services, owner)
    member = make_ctx()
    services.sessions.join_session(member, detail.session.id)

    with pytest.raises(PermissionDeniedError):
        services.sessions.update_session(
            member, detail.session.id, SessionUpdate(title="Hijacked")
        )


def test_update_session_changes_fields_and_logs_changes(services, make_ctx, clock) -> None:
    """Test a partial update applies set fields and records them."""
    owner = make_ctx()
    detail = _create(services, owner, title="Old")
    clock.advance(minutes=5)

    updated = services.sessions.update_session(
        owner, detail.session.id, SessionUpdate(title="New", metadata={"color": "blue"})
    )

    assert updated.title == "New"
    assert updated.metadata == {"color": "blue"}
    assert updated.updated_at == clock.now()
    events = services.events.query(
        owner, EventQuery(session_id=detail.session.id, types=[EventType.session_update])
    )
    assert events.items[0].payload == {"changes": {"title": "New", "metadata": {"color": "blue"}}}


def test_update_session_to_ended_stamps_ended_at(services, make_ctx) -> None:
    """Test moving status to ended stamps ended_at."""
    owner = make_ctx()
    detail = _create(services, owner)

    updated = services.sessions.update_session(
        owner, detail.session.id, SessionUpdate(status=SessionStatus.ended)
    )

    assert updated.status == SessionStatus.ended
    assert updated.ended_at is not None


def test_end_session_is_owner_only(services, make_ctx) -> None:
    """Test admins cannot end a session."""
    owner = make_ctx()
    admin = make_ctx()
    detail = _create(
        services, owner, participants=[ParticipantSpec(user_id=admin.user_id, role=ParticipantRole.admin)]
    )

    with pytest.raises(PermissionDeniedError):
        services.sessions.end_session(admin, detail.session.id)


def test_end_session_twice_is_noop(services, make_ctx, clock) -> None:
    """Test ending an ended session returns it unchanged without a new event."""
    owner = make_ctx()
    detail = _create(services, owner)
    ended = services.sessions.end_session(owner, detail.session.id)
    clock.advance(minutes=1)

    again = services.sessions.end_session(owner, detail.session.id)

    assert again.ended_at == ended.ended_at
    assert _event_types(services, owner, detail.session.id).count(EventType.session_end) == 1


def test_join_and_leave_session(services, make_ctx) -> None:
    """Test join adds a participant and leave marks them left."""
    owner = make_ctx()
    detail = _create(services, owner)
    guest = make_ctx()

    joined = services.sessions.join_session(guest, detail.session.id)
    assert joined.role == ParticipantRole.member
    assert joined.left_at is None

    left = services.sessions.leave_session(guest, detail.session.id)
    assert left.left_at is not None

    active = services.sessions.get_active_participants(owner, detail.session.id)
    assert [p.user_id for p in active] == [owner.user_id]
    types = _event_types(services, owner, detail.session.id)
    assert EventType.user_join in types
    assert EventType.user_leave in types


def test_rejoin_reactivates_participant(services, make_ctx) -> None:
    """Test rejoining keeps one participant row and clears left_at."""
    owner = make_ctx()
    detail = _create(services, owner)
    guest = make_ctx()
    services.sessions.join_session(guest, detail.session.id)
    services.sessions.leave_session(guest, detail.session.id)

    rejoined = services.sessions.join_session(guest, detail.session.id)

    assert rejoined.left_at is None
    roster = services.sessions.get_session(owner, detail.session.id).participants
    assert sum(1 for p in roster if p.user_id == guest.user_id) == 1


def test_join_ended_session_rejected(services, make_ctx) -> None:
    """Test joining an ended session is a validation failure."""
    owner = make_ctx()
    detail = _create(services, owner)
    services.sessions.end_session(owner, detail.session.id)

    with pytest.raises(ValidationError):
        services.sessions.join_session(make_ctx(), detail.session.id)


def test_adding_other_user_requires_admin(services, make_ctx) -> None:
    """Test members cannot add or remove other users."""
    owner = make_ctx()
    detail = _create(services, owner)
    member = make_ctx()
    services.sessions.join_session(member, detail.session.id)

    with pytest.raises(PermissionDeniedError):
        services.sessions.join_session(member, detail.session.id, user_id=uuid.uuid4())
    with pytest.raises(PermissionDeniedError):
        services.sessions.leave_session(member, detail.session.id, user_id=owner.user_id)

    added = services.sessions.join_session(owner, detail.session.id, user_id=uuid.uuid4())
    assert added.role == ParticipantRole.member


def test_leave_unknown_participant_not_found(services, make_ctx) -> None:
    """Test leaving a session never joined is not found."""
    owner = make_ctx()
    detail = _create(services, owner)

    with pytest.raises(NotFoundError):
        services.sessions.leave_session(make_ctx(), detail.session.id)


def test_left_owner_loses_privileges(services, make_ctx) -> None:
    """Test a participant who has left no longer satisfies role checks."""
    owner = make_ctx()
    detail = _create(services, owner)
    services.sessions.leave_session(owner, detail.session.id)

    with pytest.raises(PermissionDeniedError):
        services.sessions.end_session(owner, detail.session.id)


def test_list_sessions_only_active_participations(services, make_ctx) -> None:
    """Test listing shows sessions the caller actively participates in."""
    alice = make_ctx()
    bob = make_ctx()
    a = _create(services, alice, resource_id="doc-a")
    b = _create(services, bob, resource_id="doc-b", type="whiteboard")
    services.sessions.join_session(alice, b.session.id)
    services.sessions.leave_session(alice, b.session.id)

    page = services.sessions.list_sessions(alice)

    assert [s.id for s in page.items] == [a.session.id]
    assert page.total == 1
    assert page.has_more is False


def test_list_sessions_filters_and_paginates(services, make_ctx, clock) -> None:
    """Test type and active_only filters plus pagination metadata."""
    ctx = make_ctx()
    for i in range(3):
        clock.advance(seconds=1)
        _create(services, ctx, resource_id=f"doc-{i}")
    board = _create(services, ctx, resource_id="board", type="whiteboard")
    services.sessions.end_session(ctx, board.session.id)

    editing = services.sessions.list_sessions(ctx, type="document_editing", limit=2)
    assert editing.total == 3
    assert len(editing.items) == 2
    assert editing.has_more is True

    active = services.sessions.list_sessions(ctx, active_only=True)
    assert board.session.id not in {s.id for s in active.items}

    with pytest.raises(ValidationError):
        services.sessions.list_sessions(ctx, limit=0)


def test_sessions_invisible_across_orgs(services, make_ctx) -> None:
    """Test a session in another org is not found."""
    owner = make_ctx()
    detail = _create(services, owner)
    outsider = make_ctx(org=uuid.uuid4())

    with pytest.raises(NotFoundError):
        services.sessions.get_session(outsider, detail.session.id)
    with pytest.raises(NotFoundError):
        services.sessions.join_session(outsider, detail.session.id)
