"""Threaded comment models."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class Comment(BaseModel):
    """A comment on a document. Roots have no parent_id."""

    id: UUID
    document_id: UUID
    author_id: UUID
    content: str
    position: int | None = None
    parent_id: UUID | None = None
    resolved: bool = False
    reactions: dict[str, set[UUID]] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime

    @property
    def is_root(self) -> bool:
        return self.parent_id is None


class CommentThread(BaseModel):
    """A root comment plus its replies, oldest first."""

    root: Comment
    replies: list[Comment] = Field(default_factory=list)

    @property
    def reply_count(self) -> int:
        return len(self.replies)
