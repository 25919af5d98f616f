"""Event log endpoints."""

import uuid
from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from backend.app.api.auth import get_current_context
from backend.app.api.deps import get_services
from backend.app.collaboration.container import CollaborationServices
from backend.app.db.context import RequestContext
from backend.app.db.repositories import EventQuery
from backend.app.models.common import Page
from backend.app.models.events import (
    CollaborationEvent,
    EventMetrics,
    EventSummary,
    EventType,
    SummaryWindow,
)

router = APIRouter(prefix="/events", tags=["events"])


class RecordEventRequest(BaseModel):
    """Request body for POST /events."""

    session_id: uuid.UUID
    type: EventType
    payload: dict[str, Any] = Field(default_factory=dict)
    document_id: uuid.UUID | None = None
    version: int | None = None
    position: int | None = None


class DeleteEventsResponse(BaseModel):
    """Response for DELETE /events."""

    deleted_count: int


@router.get("", response_model=Page[CollaborationEvent])
def query_events(
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[CollaborationServices, Depends(get_services)],
    session_id: uuid.UUID | None = None,
    type: Annotated[list[EventType] | None, Query()] = None,
    actor_user_id: uuid.UUID | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    limit: Annotated[int | None, Query(ge=1)] = None,
    offset: Annotated[int, Query(ge=0)] = 0,
    include_payload: bool = True,
) -> Page[CollaborationEvent]:
    """A session's events, newest first."""
    return services.events.query(
        ctx,
        EventQuery(
            session_id=session_id,
            types=type or [],
            actor_user_id=actor_user_id,
            since=since,
            until=until,
            limit=limit or services.events.settings.events_page_limit,
            offset=offset,
            include_payload=include_payload,
        ),
    )


@router.post("", response_model=CollaborationEvent, status_code=status.HTTP_201_CREATED)
def record_event(
    request: RecordEventRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[CollaborationServices, Depends(get_services)],
) -> CollaborationEvent:
    """Record a client-originated event (cursor moves, typing, ...)."""
    return services.events.record(
        ctx,
        request.session_id,
        request.type,
        payload=request.payload,
        document_id=request.document_id,
        version=request.version,
        position=request.position,
    )


@router.delete("", response_model=DeleteEventsResponse)
def delete_events(
    session_id: uuid.UUID,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[CollaborationServices, Depends(get_services)],
    older_than: datetime | None = None,
) -> DeleteEventsResponse:
    """Bulk-delete a session's events (owner/admin)."""
    deleted = services.events.delete_events(ctx, session_id, older_than=older_than)
    return DeleteEventsResponse(deleted_count=deleted)


@router.get("/summary", response_model=EventSummary)
def summarize_events(
    session_id: uuid.UUID,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[CollaborationServices, Depends(get_services)],
    window: SummaryWindow = SummaryWindow.day,
) -> EventSummary:
    """Aggregate a session's events over the trailing window."""
    return services.events.summarize(session_id, window, ctx=ctx)


@router.get("/metrics", response_model=EventMetrics)
def event_metrics(
    session_id: uuid.UUID,
    start: datetime,
    end: datetime,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[CollaborationServices, Depends(get_services)],
) -> EventMetrics:
    """Analytics over a closed time range."""
    return services.events.metrics(session_id, start, end, ctx=ctx)


@router.get("/recent", response_model=list[CollaborationEvent])
def recent_activity(
    session_id: uuid.UUID,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[CollaborationServices, Depends(get_services)],
    limit: Annotated[int | None, Query(ge=1)] = None,
) -> list[CollaborationEvent]:
    """Latest feed-worthy events of a session."""
    return services.events.recent_activity(session_id, limit=limit, ctx=ctx)


@router.get("/me", response_model=list[CollaborationEvent])
def my_activity(
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[CollaborationServices, Depends(get_services)],
    session_id: uuid.UUID | None = None,
    limit: Annotated[int | None, Query(ge=1)] = None,
) -> list[CollaborationEvent]:
    """The caller's own latest events."""
    return services.events.user_activity(ctx.user_id, session_id=session_id, limit=limit)
