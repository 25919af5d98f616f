"""Comment thread manager - threaded, resolvable, reactable comments."""

import uuid
from typing import Any
from uuid import UUID

from backend.app.collaboration.clock import Clock, SystemClock
from backend.app.collaboration.errors import (
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from backend.app.collaboration.fanout import EventFanout
from backend.app.collaboration.versions import DOCUMENT_RESOURCE_TYPE
from backend.app.config import Settings, get_settings
from backend.app.db.context import RequestContext
from backend.app.db.repositories import CommentQuery, CommentRepository, DocumentRepository, SessionRepository
from backend.app.models.comments import Comment, CommentThread
from backend.app.models.common import Page
from backend.app.models.events import EventType
from backend.app.models.versions import Document

SORTABLE_FIELDS = ("created_at", "updated_at")
SORT_ORDERS = ("asc", "desc")


class CommentThreadManager:
    """Create, list, edit, resolve, delete and react to comments."""

    def __init__(
        self,
        comments: CommentRepository,
        documents: DocumentRepository,
        sessions: SessionRepository,
        fanout: EventFanout,
        clock: Clock | None = None,
        settings: Settings | None = None,
    ):
        self.comments = comments
        self.documents = documents
        self.sessions = sessions
        self.fanout = fanout
        self.clock = clock or SystemClock()
        self.settings = settings or get_settings()

    def _get_document(self, ctx: RequestContext, document_id: UUID) -> Document:
        document = self.documents.get_document(document_id, org_id=ctx.org_id)
        if document is None:
            raise NotFoundError("Document", document_id)
        return document

    def _get_comment(self, ctx: RequestContext, comment_id: UUID) -> Comment:
        """Comment whose document belongs to the caller's org."""
        comment = self.comments.get(comment_id)
        if comment is None or self.documents.get_document(comment.document_id, org_id=ctx.org_id) is None:
            raise NotFoundError("Comment", comment_id)
        return comment

    def _preview(self, content: str) -> str:
        return content[: self.settings.event_preview_chars]

    def _fanout(
        self,
        ctx: RequestContext,
        document_id: UUID,
        event_type: EventType,
        payload: dict[str, Any],
        position: int | None = None,
    ) -> None:
        self.fanout.to_resource(
            ctx.org_id,
            str(document_id),
            DOCUMENT_RESOURCE_TYPE,
            event_type,
            payload,
            ctx.user_id,
            document_id=document_id,
            position=position,
        )

    def create_comment(
        self,
        ctx: RequestContext,
        document_id: UUID,
        content: str,
        position: int | None = None,
        parent_id: UUID | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Comment:
        """Add a root comment, or a reply when parent_id is given.

        Raises:
            ValidationError: Empty content
            NotFoundError: Document not visible, or parent missing on this document
        """
        if not content or not content.strip():
            raise ValidationError("content is required")
        self._get_document(ctx, document_id)

        if parent_id is not None:
            parent = self.comments.get(parent_id)
            if parent is None or parent.document_id != document_id:
                raise NotFoundError("Parent comment", parent_id)

        now = self.clock.now()
        comment = self.comments.create(
            Comment(
                id=uuid.uuid4(),
                document_id=document_id,
                author_id=ctx.user_id,
                content=content,
                position=position,
                parent_id=parent_id,
                metadata=metadata or {},
                created_at=now,
                updated_at=now,
            )
        )

        self._fanout(
            ctx,
            document_id,
            EventType.comment_reply if parent_id else EventType.comment_add,
            {
                "comment_id": str(comment.id),
                "document_id": str(document_id),
                "content": self._preview(content),
                "position": position,
                "parent_id": str(parent_id) if parent_id else None,
            },
            position=position,
        )
        return comment

    def _resolve_document_id(
        self, ctx: RequestContext, document_id: UUID | None, session_id: UUID | None
    ) -> UUID:
        if document_id is None and session_id is None:
            raise ValidationError("Either document_id or session_id is required")
        if session_id is None:
            return document_id

        session = self.sessions.get(session_id, org_id=ctx.org_id)
        if session is None:
            raise NotFoundError("Session", session_id)
        if session.resource_type != DOCUMENT_RESOURCE_TYPE:
            raise ValidationError("Session is not bound to a document", session_id=session_id)
        try:
            bound = UUID(session.resource_id)
        except ValueError:
            raise ValidationError(
                "Session resource is not a document id", resource_id=session.resource_id
            ) from None
        if document_id is not None and document_id != bound:
            raise ValidationError(
                "Session is bound to a different document", session_id=session_id
            )
        return bound

    def list_threads(
        self,
        ctx: RequestContext,
        document_id: UUID | None = None,
        session_id: UUID | None = None,
        resolved: bool | None = None,
        limit: int | None = None,
        offset: int = 0,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> Page[CommentThread]:
        """Root comments of a document with their direct replies, oldest reply first."""
        limit = limit if limit is not None else self.settings.comments_page_limit
        if limit < 1 or offset < 0:
            raise ValidationError("Invalid pagination", limit=limit, offset=offset)
        if sort_by not in SORTABLE_FIELDS:
            raise ValidationError(f"sort_by must be one of: {', '.join(SORTABLE_FIELDS)}")
        if sort_order not in SORT_ORDERS:
            raise ValidationError(f"sort_order must be one of: {', '.join(SORT_ORDERS)}")

        document_id = self._resolve_document_id(ctx, document_id, session_id)
        self._get_document(ctx, document_id)

        roots, total = self.comments.list_roots(
            CommentQuery(
                document_id=document_id,
                resolved=resolved,
                sort_by=sort_by,
                sort_order=sort_order,
                limit=limit,
                offset=offset,
            )
        )
        replies = self.comments.list_replies([r.id for r in roots]) if roots else []

        by_parent: dict[UUID, list[Comment]] = {}
        for reply in replies:
            by_parent.setdefault(reply.parent_id, []).append(reply)

        threads = [CommentThread(root=r, replies=by_parent.get(r.id, [])) for r in roots]
        return Page.build(threads, total, limit, offset)

    def get_thread(self, ctx: RequestContext, comment_id: UUID) -> CommentThread:
        """A comment with its direct replies, oldest first."""
        comment = self._get_comment(ctx, comment_id)
        return CommentThread(root=comment, replies=self.comments.list_replies([comment.id]))

    def update_comment(
        self,
        ctx: RequestContext,
        comment_id: UUID,
        content: str | None = None,
        resolved: bool | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Comment:
        """Edit content (author only), resolve or reopen, or replace metadata.

        Resolving is open to anyone who can see the document.
        """
        comment = self._get_comment(ctx, comment_id)
        if content is not None and comment.author_id != ctx.user_id:
            raise PermissionDeniedError(
                "Only the comment author can edit content", comment_id=comment_id
            )
        if content is not None and not content.strip():
            raise ValidationError("content must not be empty")

        update: dict[str, Any] = {"updated_at": self.clock.now()}
        if content is not None:
            update["content"] = content
        if resolved is not None:
            update["resolved"] = resolved
        if metadata is not None:
            update["metadata"] = metadata
        updated = self.comments.update(comment.model_copy(update=update))

        resolution_changed = resolved is not None and resolved != comment.resolved
        self._fanout(
            ctx,
            comment.document_id,
            EventType.comment_resolve if resolution_changed else EventType.comment_update,
            {
                "comment_id": str(comment.id),
                "document_id": str(comment.document_id),
                "changes": {
                    "content": self._preview(content) if content is not None else None,
                    "resolved": resolved,
                    "metadata": metadata,
                },
            },
            position=comment.position,
        )
        return updated

    def delete_comment(self, ctx: RequestContext, comment_id: UUID) -> Comment | None:
        """Delete a comment. Author only.

        A comment with replies is tombstoned so the thread survives.

        Returns:
            The tombstoned comment, or None when it was removed outright
        """
        comment = self._get_comment(ctx, comment_id)
        if comment.author_id != ctx.user_id:
            raise PermissionDeniedError(
                "Only the comment author can delete the comment", comment_id=comment_id
            )

        had_replies = self.comments.count_replies(comment.id) > 0
        if had_replies:
            result = self.comments.update(
                comment.model_copy(
                    update={
                        "content": self.settings.comment_tombstone,
                        "updated_at": self.clock.now(),
                    }
                )
            )
        else:
            self.comments.delete(comment.id)
            result = None

        self._fanout(
            ctx,
            comment.document_id,
            EventType.comment_delete,
            {
                "comment_id": str(comment.id),
                "document_id": str(comment.document_id),
                "had_replies": had_replies,
            },
            position=comment.position,
        )
        return result

    def add_reaction(
        self, ctx: RequestContext, comment_id: UUID, emoji: str
    ) -> dict[str, set[UUID]]:
        """Add the caller to an emoji's reactors. Idempotent."""
        if not emoji:
            raise ValidationError("emoji is required")
        comment = self._get_comment(ctx, comment_id)

        reactions = {key: set(users) for key, users in comment.reactions.items()}
        if ctx.user_id in reactions.get(emoji, set()):
            return reactions
        reactions.setdefault(emoji, set()).add(ctx.user_id)

        updated = self.comments.update(comment.model_copy(update={"reactions": reactions}))
        return updated.reactions

    def remove_reaction(
        self, ctx: RequestContext, comment_id: UUID, emoji: str
    ) -> dict[str, set[UUID]]:
        """Remove the caller from an emoji's reactors, pruning empty emojis."""
        if not emoji:
            raise ValidationError("emoji is required")
        comment = self._get_comment(ctx, comment_id)

        reactions = {key: set(users) for key, users in comment.reactions.items()}
        if ctx.user_id not in reactions.get(emoji, set()):
            return reactions
        reactions[emoji].discard(ctx.user_id)
        if not reactions[emoji]:
            del reactions[emoji]

        updated = self.comments.update(comment.model_copy(update={"reactions": reactions}))
        return updated.reactions
