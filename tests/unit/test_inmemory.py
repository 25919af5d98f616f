"""Unit tests for the in-memory stores under concurrent use."""

import threading
import uuid
from datetime import datetime

from backend.app.db.inmemory import InMemoryCommentRepository, InMemoryEventRepository
from backend.app.db.repositories import CommentQuery, EventQuery
from backend.app.models.comments import Comment
from backend.app.models.events import CollaborationEvent, EventType

NOW = datetime(2025, 6, 10, 9, 0)


def _run_concurrently(writer, reader, rounds: int = 300) -> list[Exception]:
    errors: list[Exception] = []
    barrier = threading.Barrier(4)

    def loop(action) -> None:
        barrier.wait()
        try:
            for _ in range(rounds):
                action()
        except Exception as exc:  # noqa: BLE001
            errors.append(exc)

    threads = [threading.Thread(target=loop, args=(fn,)) for fn in (writer, writer, reader, reader)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    return errors


def test_event_reads_during_appends() -> None:
    """Test queries stay consistent while other threads append."""
    repo = InMemoryEventRepository()
    session_id = uuid.uuid4()
    actor = uuid.uuid4()

    def append() -> None:
        repo.append(
            CollaborationEvent(
                id=uuid.uuid4(),
                session_id=session_id,
                type=EventType.cursor_move,
                actor_user_id=actor,
                timestamp=NOW,
            )
        )

    def read() -> None:
        repo.query(EventQuery(session_id=session_id))
        repo.for_user(actor)

    assert _run_concurrently(append, read) == []
    assert repo.query(EventQuery(session_id=session_id, limit=1))[1] == 600


def test_comment_reads_during_creates() -> None:
    """Test thread listing stays consistent while other threads comment."""
    repo = InMemoryCommentRepository()
    document_id = uuid.uuid4()
    root = repo.create(
        Comment(
            id=uuid.uuid4(),
            document_id=document_id,
            author_id=uuid.uuid4(),
            content="root",
            created_at=NOW,
            updated_at=NOW,
        )
    )

    def reply() -> None:
        repo.create(
            Comment(
                id=uuid.uuid4(),
                document_id=document_id,
                author_id=uuid.uuid4(),
                content="reply",
                parent_id=root.id,
                created_at=NOW,
                updated_at=NOW,
            )
        )

    def read() -> None:
        repo.list_roots(CommentQuery(document_id=document_id))
        repo.list_replies([root.id])
        repo.count_replies(root.id)

    assert _run_concurrently(reply, read) == []
    assert repo.count_replies(root.id) == 600
