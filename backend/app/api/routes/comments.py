"""Comment thread endpoints."""

import uuid
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from backend.app.api.auth import get_current_context
from backend.app.api.deps import get_services
from backend.app.collaboration.container import CollaborationServices
from backend.app.db.context import RequestContext
from backend.app.models.comments import Comment, CommentThread
from backend.app.models.common import Page

router = APIRouter(prefix="/comments", tags=["comments"])


class CreateCommentRequest(BaseModel):
    """Request body for POST /comments."""

    document_id: uuid.UUID
    content: str
    position: int | None = None
    parent_id: uuid.UUID | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class UpdateCommentRequest(BaseModel):
    """Request body for PATCH /comments/{comment_id}."""

    content: str | None = None
    resolved: bool | None = None
    metadata: dict[str, Any] | None = None


class DeleteCommentResponse(BaseModel):
    """Response for DELETE /comments/{comment_id}."""

    comment_id: uuid.UUID
    tombstoned: bool


class ReactionRequest(BaseModel):
    """Request body for POST /comments/{comment_id}/reactions."""

    emoji: str


class ReactionsResponse(BaseModel):
    """Reaction sets of a comment after a change."""

    reactions: dict[str, set[uuid.UUID]]


@router.post("", response_model=Comment, status_code=status.HTTP_201_CREATED)
def create_comment(
    request: CreateCommentRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[CollaborationServices, Depends(get_services)],
) -> Comment:
    """Add a comment or a reply."""
    return services.comments.create_comment(
        ctx,
        request.document_id,
        request.content,
        position=request.position,
        parent_id=request.parent_id,
        metadata=request.metadata,
    )


@router.get("", response_model=Page[CommentThread])
def list_threads(
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[CollaborationServices, Depends(get_services)],
    document_id: uuid.UUID | None = None,
    session_id: uuid.UUID | None = None,
    resolved: bool | None = None,
    limit: Annotated[int | None, Query(ge=1)] = None,
    offset: Annotated[int, Query(ge=0)] = 0,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> Page[CommentThread]:
    """Comment threads of a document, or of the document a session is bound to."""
    return services.comments.list_threads(
        ctx,
        document_id=document_id,
        session_id=session_id,
        resolved=resolved,
        limit=limit,
        offset=offset,
        sort_by=sort_by,
        sort_order=sort_order,
    )


@router.get("/{comment_id}", response_model=CommentThread)
def get_thread(
    comment_id: uuid.UUID,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[CollaborationServices, Depends(get_services)],
) -> CommentThread:
    """A comment with its replies."""
    return services.comments.get_thread(ctx, comment_id)


@router.patch("/{comment_id}", response_model=Comment)
def update_comment(
    comment_id: uuid.UUID,
    request: UpdateCommentRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[CollaborationServices, Depends(get_services)],
) -> Comment:
    """Edit, resolve or reopen a comment."""
    return services.comments.update_comment(
        ctx,
        comment_id,
        content=request.content,
        resolved=request.resolved,
        metadata=request.metadata,
    )


@router.delete("/{comment_id}", response_model=DeleteCommentResponse)
def delete_comment(
    comment_id: uuid.UUID,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[CollaborationServices, Depends(get_services)],
) -> DeleteCommentResponse:
    """Delete a comment; comments with replies are tombstoned."""
    tombstone = services.comments.delete_comment(ctx, comment_id)
    return DeleteCommentResponse(comment_id=comment_id, tombstoned=tombstone is not None)


@router.post("/{comment_id}/reactions", response_model=ReactionsResponse)
def add_reaction(
    comment_id: uuid.UUID,
    request: ReactionRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[CollaborationServices, Depends(get_services)],
) -> ReactionsResponse:
    """React to a comment."""
    return ReactionsResponse(
        reactions=services.comments.add_reaction(ctx, comment_id, request.emoji)
    )


@router.delete("/{comment_id}/reactions/{emoji}", response_model=ReactionsResponse)
def remove_reaction(
    comment_id: uuid.UUID,
    emoji: str,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[CollaborationServices, Depends(get_services)],
) -> ReactionsResponse:
    """Withdraw a reaction."""
    return ReactionsResponse(
        reactions=services.comments.remove_reaction(ctx, comment_id, emoji)
    )
