"""User presence endpoints."""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from backend.app.api.auth import get_current_context
from backend.app.api.deps import get_services
from backend.app.collaboration.container import CollaborationServices
from backend.app.db.context import RequestContext
from backend.app.models.presence import PresenceListing, PresenceView

router = APIRouter(prefix="/presence", tags=["presence"])


class UpdatePresenceRequest(BaseModel):
    """Request body for PUT /presence.

    status is validated by the tracker so unknown values map to 400.
    """

    status: str
    location: str | None = None
    device_type: str | None = None
    browser_info: str | None = None


class HeartbeatRequest(BaseModel):
    """Request body for POST /presence/heartbeat."""

    location: str | None = None


class SweepResponse(BaseModel):
    """Response for POST /presence/cleanup."""

    swept: int


@router.put("", response_model=PresenceView)
def update_presence(
    request: UpdatePresenceRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[CollaborationServices, Depends(get_services)],
) -> PresenceView:
    """Set the caller's presence status."""
    return services.presence.update_presence(
        ctx.user_id,
        request.status,
        location=request.location,
        device_type=request.device_type,
        browser_info=request.browser_info,
    )


@router.post("/heartbeat", response_model=PresenceView)
def heartbeat(
    request: HeartbeatRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[CollaborationServices, Depends(get_services)],
) -> PresenceView:
    """Refresh the caller's last_seen."""
    return services.presence.heartbeat(ctx.user_id, location=request.location)


@router.delete("", response_model=PresenceView)
def clear_presence(
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[CollaborationServices, Depends(get_services)],
) -> PresenceView:
    """Mark the caller offline."""
    return services.presence.clear_presence(ctx.user_id)


@router.post("/cleanup", response_model=SweepResponse)
def cleanup_stale_presence(
    services: Annotated[CollaborationServices, Depends(get_services)],
) -> SweepResponse:
    """Force stale users offline."""
    return SweepResponse(swept=services.presence.cleanup_stale_presence())


@router.get("", response_model=PresenceListing)
def list_presence(
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[CollaborationServices, Depends(get_services)],
    session_id: uuid.UUID | None = None,
    user_ids: Annotated[list[uuid.UUID] | None, Query()] = None,
    include_offline: bool = False,
    limit: Annotated[int | None, Query(ge=1)] = None,
) -> PresenceListing:
    """Presence of a session, a set of users, or the caller's org."""
    return services.presence.list_presence(
        ctx,
        session_id=session_id,
        user_ids=set(user_ids) if user_ids else None,
        include_offline=include_offline,
        limit=limit,
    )


@router.get("/sessions/{session_id}", response_model=list[PresenceView])
def get_session_presence(
    session_id: uuid.UUID,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[CollaborationServices, Depends(get_services)],
) -> list[PresenceView]:
    """Presence of a session's active participants."""
    return services.presence.get_session_presence(ctx, session_id)


@router.get("/{user_id}", response_model=PresenceView)
def get_presence(
    user_id: uuid.UUID,
    services: Annotated[CollaborationServices, Depends(get_services)],
) -> PresenceView:
    """A single user's presence."""
    return services.presence.get_presence(user_id)
