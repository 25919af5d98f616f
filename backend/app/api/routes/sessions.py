"""Collaboration session endpoints."""

import uuid
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from backend.app.api.auth import get_current_context
from backend.app.api.deps import get_services
from backend.app.collaboration.container import CollaborationServices
from backend.app.db.context import RequestContext
from backend.app.models.common import Page
from backend.app.models.sessions import (
    CollaborationSession,
    Participant,
    ParticipantRole,
    ParticipantSpec,
    SessionDetail,
    SessionUpdate,
)

router = APIRouter(prefix="/sessions", tags=["sessions"])


class CreateSessionRequest(BaseModel):
    """Request body for POST /sessions."""

    type: str = Field(..., description="Session kind, e.g. document_editing")
    resource_id: str
    resource_type: str
    title: str | None = None
    description: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    participants: list[ParticipantSpec] = Field(default_factory=list)


class JoinSessionRequest(BaseModel):
    """Request body for POST /sessions/{session_id}/participants."""

    user_id: uuid.UUID | None = None
    role: ParticipantRole = ParticipantRole.member


@router.post("", response_model=SessionDetail, status_code=status.HTTP_201_CREATED)
def create_session(
    request: CreateSessionRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[CollaborationServices, Depends(get_services)],
) -> SessionDetail:
    """Open a session on a resource; the caller becomes owner."""
    return services.sessions.create_session(
        ctx,
        resource_id=request.resource_id,
        resource_type=request.resource_type,
        type=request.type,
        title=request.title,
        description=request.description,
        metadata=request.metadata,
        participants=request.participants,
    )


@router.get("", response_model=Page[CollaborationSession])
def list_sessions(
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[CollaborationServices, Depends(get_services)],
    type: str | None = None,
    active_only: bool = False,
    limit: Annotated[int | None, Query(ge=1)] = None,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> Page[CollaborationSession]:
    """Sessions the caller actively participates in."""
    return services.sessions.list_sessions(
        ctx, type=type, active_only=active_only, limit=limit, offset=offset
    )


@router.get("/{session_id}", response_model=SessionDetail)
def get_session(
    session_id: uuid.UUID,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[CollaborationServices, Depends(get_services)],
) -> SessionDetail:
    """Session with its roster."""
    return services.sessions.get_session(ctx, session_id)


@router.patch("/{session_id}", response_model=CollaborationSession)
def update_session(
    session_id: uuid.UUID,
    update: SessionUpdate,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[CollaborationServices, Depends(get_services)],
) -> CollaborationSession:
    """Partially update a session (owner/admin)."""
    return services.sessions.update_session(ctx, session_id, update)


@router.delete("/{session_id}", response_model=CollaborationSession)
def end_session(
    session_id: uuid.UUID,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[CollaborationServices, Depends(get_services)],
) -> CollaborationSession:
    """End a session (owner). Sessions are never hard-deleted."""
    return services.sessions.end_session(ctx, session_id)


@router.get("/{session_id}/participants", response_model=list[Participant])
def list_active_participants(
    session_id: uuid.UUID,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[CollaborationServices, Depends(get_services)],
) -> list[Participant]:
    """Participants who have not left."""
    return services.sessions.get_active_participants(ctx, session_id)


@router.post("/{session_id}/participants", response_model=Participant)
def join_session(
    session_id: uuid.UUID,
    request: JoinSessionRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[CollaborationServices, Depends(get_services)],
) -> Participant:
    """Join (or rejoin) a session, or add another user as owner/admin."""
    return services.sessions.join_session(
        ctx, session_id, user_id=request.user_id, role=request.role
    )


@router.delete("/{session_id}/participants/{user_id}", response_model=Participant)
def leave_session(
    session_id: uuid.UUID,
    user_id: uuid.UUID,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[CollaborationServices, Depends(get_services)],
) -> Participant:
    """Leave a session, or remove another user as owner/admin."""
    return services.sessions.leave_session(ctx, session_id, user_id=user_id)
