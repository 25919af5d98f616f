"""Unit tests for the comment thread manager."""

import uuid

import pytest

from backend.app.collaboration.errors import (
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from backend.app.collaboration.versions import DOCUMENT_RESOURCE_TYPE
from backend.app.db.repositories import EventQuery
from backend.app.models.events import EventType


@pytest.fixture
def author(make_ctx):
    return make_ctx()


@pytest.fixture
def document(services, author):
    return services.versions.create_document(author, "Launch plan")


@pytest.fixture
def session(services, author, document):
    return services.sessions.create_session(
        author,
        resource_id=str(document.id),
        resource_type=DOCUMENT_RESOURCE_TYPE,
        type="document_editing",
    ).session


def _comment_events(services, ctx, session_id):
    page = services.events.query(ctx, EventQuery(session_id=session_id))
    return [e for e in page.items if e.type.value.startswith("comment_")]


def test_create_comment_and_reply(services, author, document, session, make_ctx) -> None:
    """Test a root comment and a reply are linked and announced."""
    reviewer = make_ctx()
    root = services.comments.create_comment(author, document.id, "Needs a budget", position=42)
    reply = services.comments.create_comment(
        reviewer, document.id, "Added one", parent_id=root.id
    )

    assert reply.parent_id == root.id
    thread = services.comments.get_thread(author, root.id)
    assert [r.id for r in thread.replies] == [reply.id]

    events = _comment_events(services, author, session.id)
    assert [e.type for e in events] == [EventType.comment_reply, EventType.comment_add]
    assert events[1].payload == {
        "comment_id": str(root.id),
        "document_id": str(document.id),
        "content": "Needs a budget",
        "position": 42,
        "parent_id": None,
    }
    assert events[1].position == 42


def test_comment_event_preview_truncated(services, author, document, session) -> None:
    """Test event payloads carry at most 100 characters of content."""
    services.comments.create_comment(author, document.id, "x" * 250)

    event = _comment_events(services, author, session.id)[0]

    assert event.payload["content"] == "x" * 100


def test_create_comment_validation(services, author, document, make_ctx) -> None:
    """Test empty content, unknown documents and foreign parents are rejected."""
    with pytest.raises(ValidationError):
        services.comments.create_comment(author, document.id, "   ")
    with pytest.raises(NotFoundError):
        services.comments.create_comment(author, uuid.uuid4(), "hello")

    other_doc = services.versions.create_document(author, "Other")
    foreign = services.comments.create_comment(author, other_doc.id, "elsewhere")
    with pytest.raises(NotFoundError) as exc_info:
        services.comments.create_comment(author, document.id, "reply", parent_id=foreign.id)
    assert "Parent comment" in exc_info.value.message


def test_list_threads_by_document_and_session(services, author, document, session, clock) -> None:
    """Test threads list roots with their direct replies."""
    first = services.comments.create_comment(author, document.id, "first")
    clock.advance(seconds=1)
    second = services.comments.create_comment(author, document.id, "second")
    clock.advance(seconds=1)
    services.comments.create_comment(author, document.id, "reply", parent_id=first.id)

    by_document = services.comments.list_threads(author, document_id=document.id)
    assert [t.root.id for t in by_document.items] == [second.id, first.id]
    assert [r.content for r in by_document.items[1].replies] == ["reply"]
    assert by_document.total == 2

    by_session = services.comments.list_threads(author, session_id=session.id, sort_order="asc")
    assert [t.root.id for t in by_session.items] == [first.id, second.id]


def test_list_threads_filters_resolved(services, author, document) -> None:
    """Test the resolved filter applies to root comments."""
    open_comment = services.comments.create_comment(author, document.id, "open")
    done = services.comments.create_comment(author, document.id, "done")
    services.comments.update_comment(author, done.id, resolved=True)

    unresolved = services.comments.list_threads(author, document_id=document.id, resolved=False)

    assert [t.root.id for t in unresolved.items] == [open_comment.id]


def test_list_threads_validation(services, author, document, make_ctx) -> None:
    """Test scope, sorting and session binding are validated."""
    with pytest.raises(ValidationError):
        services.comments.list_threads(author)
    with pytest.raises(ValidationError):
        services.comments.list_threads(author, document_id=document.id, sort_by="content")
    with pytest.raises(ValidationError):
        services.comments.list_threads(author, document_id=document.id, sort_order="sideways")

    board = services.sessions.create_session(
        author, resource_id="board-1", resource_type="whiteboard", type="whiteboard"
    )
    with pytest.raises(ValidationError):
        services.comments.list_threads(author, session_id=board.session.id)


def test_only_author_edits_content(services, author, document, make_ctx) -> None:
    """Test content edits are author-only while resolving is open."""
    reviewer = make_ctx()
    comment = services.comments.create_comment(author, document.id, "draft")

    with pytest.raises(PermissionDeniedError):
        services.comments.update_comment(reviewer, comment.id, content="rewritten")

    resolved = services.comments.update_comment(reviewer, comment.id, resolved=True)
    assert resolved.resolved is True

    edited = services.comments.update_comment(author, comment.id, content="final")
    assert edited.content == "final"
    assert edited.resolved is True


def test_update_emits_resolve_only_on_change(services, author, document, session) -> None:
    """Test comment_resolve fires when resolution flips, comment_update otherwise."""
    comment = services.comments.create_comment(author, document.id, "check numbers")

    services.comments.update_comment(author, comment.id, resolved=True)
    services.comments.update_comment(author, comment.id, resolved=True, content="checked")
    services.comments.update_comment(author, comment.id, metadata={"label": "finance"})

    types = [e.type for e in _comment_events(services, author, session.id)]
    assert types == [
        EventType.comment_update,
        EventType.comment_update,
        EventType.comment_resolve,
        EventType.comment_add,
    ]


def test_delete_with_replies_tombstones(services, author, document, session, make_ctx) -> None:
    """Test deleting a comment that has replies keeps it as a tombstone."""
    reviewer = make_ctx()
    root = services.comments.create_comment(author, document.id, "original text")
    services.comments.create_comment(reviewer, document.id, "a reply", parent_id=root.id)

    tombstone = services.comments.delete_comment(author, root.id)

    assert tombstone is not None
    assert tombstone.content == "[deleted]"
    thread = services.comments.get_thread(author, root.id)
    assert thread.root.content == "[deleted]"
    assert len(thread.replies) == 1
    event = _comment_events(services, author, session.id)[0]
    assert event.type == EventType.comment_delete
    assert event.payload["had_replies"] is True


def test_delete_leaf_removes(services, author, document, session) -> None:
    """Test deleting a comment without replies removes it outright."""
    comment = services.comments.create_comment(author, document.id, "typo")

    assert services.comments.delete_comment(author, comment.id) is None

    with pytest.raises(NotFoundError):
        services.comments.get_thread(author, comment.id)
    event = _comment_events(services, author, session.id)[0]
    assert event.payload == {
        "comment_id": str(comment.id),
        "document_id": str(document.id),
        "had_replies": False,
    }


def test_only_author_deletes(services, author, document, make_ctx) -> None:
    """Test other users cannot delete a comment."""
    comment = services.comments.create_comment(author, document.id, "mine")

    with pytest.raises(PermissionDeniedError):
        services.comments.delete_comment(make_ctx(), comment.id)


def test_reactions_are_idempotent_sets(services, author, document, session, make_ctx) -> None:
    """Test reactions add once, remove cleanly and emit no events."""
    fan = make_ctx()
    comment = services.comments.create_comment(author, document.id, "ship it")

    services.comments.add_reaction(author, comment.id, "👍")
    services.comments.add_reaction(fan, comment.id, "👍")
    reactions = services.comments.add_reaction(fan, comment.id, "👍")
    assert reactions == {"👍": {author.user_id, fan.user_id}}

    services.comments.add_reaction(fan, comment.id, "🎉")
    services.comments.remove_reaction(fan, comment.id, "🎉")
    reactions = services.comments.remove_reaction(fan, comment.id, "🎉")
    assert reactions == {"👍": {author.user_id, fan.user_id}}

    assert [e.type for e in _comment_events(services, author, session.id)] == [
        EventType.comment_add
    ]
    with pytest.raises(ValidationError):
        services.comments.add_reaction(fan, comment.id, "")


def test_comments_invisible_across_orgs(services, author, document, make_ctx) -> None:
    """Test comments on another org's document are not found."""
    comment = services.comments.create_comment(author, document.id, "internal")
    outsider = make_ctx(org=uuid.uuid4())

    with pytest.raises(NotFoundError):
        services.comments.get_thread(outsider, comment.id)
    with pytest.raises(NotFoundError):
        services.comments.add_reaction(outsider, comment.id, "👀")
    with pytest.raises(NotFoundError):
        services.comments.list_threads(outsider, document_id=document.id)
