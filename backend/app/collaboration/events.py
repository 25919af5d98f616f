"""Event log - append-only record of collaborative actions."""

import uuid
from collections import Counter
from dataclasses import replace
from datetime import datetime
from typing import Any
from uuid import UUID

from backend.app.collaboration.authz import ADMIN_ROLES, require_role
from backend.app.collaboration.clock import Clock, SystemClock, as_naive_utc
from backend.app.collaboration.errors import (
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from backend.app.config import Settings, get_settings
from backend.app.db.context import RequestContext
from backend.app.db.repositories import EventQuery, EventRepository, SessionRepository
from backend.app.models.common import Page
from backend.app.models.events import (
    FEED_EVENT_TYPES,
    CollaborationEvent,
    EventMetrics,
    EventSummary,
    EventType,
    SummaryWindow,
)
from backend.app.models.sessions import CollaborationSession
from backend.app.utils.logging import StructuredCollaborationLogger
from backend.app.utils.metrics import PrometheusCollaborationMetrics

COMMENT_EVENT_TYPES: frozenset[EventType] = frozenset(
    {
        EventType.comment_add,
        EventType.comment_reply,
        EventType.comment_update,
        EventType.comment_resolve,
        EventType.comment_delete,
    }
)

TIMELINE_KEY_FORMAT = "%Y-%m-%dT%H"


class EventLog:
    """Append, query and aggregate session events."""

    def __init__(
        self,
        events: EventRepository,
        sessions: SessionRepository,
        clock: Clock | None = None,
        settings: Settings | None = None,
        metrics: PrometheusCollaborationMetrics | None = None,
    ):
        self.events = events
        self.sessions = sessions
        self.clock = clock or SystemClock()
        self.settings = settings or get_settings()
        self.counters = metrics or PrometheusCollaborationMetrics()
        self.op_logger = StructuredCollaborationLogger()

    def append(
        self,
        session_id: UUID,
        type: EventType,
        payload: dict[str, Any] | None,
        actor_user_id: UUID,
        document_id: UUID | None = None,
        version: int | None = None,
        position: int | None = None,
    ) -> CollaborationEvent:
        """Insert one event. No access checks; callers have already made them."""
        event = CollaborationEvent(
            id=uuid.uuid4(),
            session_id=session_id,
            type=type,
            payload=payload or {},
            actor_user_id=actor_user_id,
            document_id=document_id,
            version=version,
            position=position,
            timestamp=self.clock.now(),
        )
        self.events.append(event)
        self.counters.inc_event(event.type.value)
        return event

    def _visible_session(self, ctx: RequestContext, session_id: UUID) -> CollaborationSession:
        """Session in the caller's org where the caller has ever participated."""
        session = self.sessions.get(session_id, org_id=ctx.org_id)
        if session is None or self.sessions.get_participant(session_id, ctx.user_id) is None:
            raise NotFoundError("Session", session_id)
        return session

    def record(
        self,
        ctx: RequestContext,
        session_id: UUID,
        type: EventType,
        payload: dict[str, Any] | None = None,
        document_id: UUID | None = None,
        version: int | None = None,
        position: int | None = None,
    ) -> CollaborationEvent:
        """Append a client-originated event on behalf of an active participant.

        Also bumps the participant's last_activity and event_count.

        Raises:
            NotFoundError: Session not visible to the caller
            PermissionDeniedError: Caller has left the session
            ValidationError: Session has ended
        """
        session = self._visible_session(ctx, session_id)
        participant = self.sessions.get_participant(session_id, ctx.user_id)
        if participant is None or not participant.is_active:
            raise PermissionDeniedError("Not an active participant", session_id=session_id)
        if not session.is_active:
            raise ValidationError("Session has ended", session_id=session_id)

        event = self.append(
            session_id,
            type,
            payload,
            ctx.user_id,
            document_id=document_id,
            version=version,
            position=position,
        )
        self.sessions.update_participant(
            participant.model_copy(
                update={
                    "last_activity": event.timestamp,
                    "event_count": participant.event_count + 1,
                }
            )
        )
        return event

    def query(self, ctx: RequestContext, query: EventQuery) -> Page[CollaborationEvent]:
        """Read a session's events newest first.

        Raises:
            ValidationError: session_id missing or bad pagination
            NotFoundError: Session not visible to the caller
        """
        if query.session_id is None:
            raise ValidationError("session_id is required")
        if query.limit < 1 or query.offset < 0:
            raise ValidationError("Invalid pagination", limit=query.limit, offset=query.offset)
        self._visible_session(ctx, query.session_id)
        query = replace(query, since=as_naive_utc(query.since), until=as_naive_utc(query.until))

        events, total = self.events.query(query)
        if not query.include_payload:
            events = [e.model_copy(update={"payload": None}) for e in events]
        return Page.build(events, total, query.limit, query.offset)

    def delete_events(
        self, ctx: RequestContext, session_id: UUID, older_than: datetime | None = None
    ) -> int:
        """Bulk-delete a session's events. Owner or admin only."""
        self._visible_session(ctx, session_id)
        participants = self.sessions.list_participants(session_id)
        require_role(participants, ctx.user_id, ADMIN_ROLES, "delete events")

        deleted = self.events.delete(session_id, older_than=as_naive_utc(older_than))
        self.op_logger.log_operation(
            "delete_events",
            ctx.user_id,
            session_id=session_id,
            deleted=deleted,
        )
        return deleted

    def summarize(
        self,
        session_id: UUID,
        window: SummaryWindow = SummaryWindow.day,
        ctx: RequestContext | None = None,
    ) -> EventSummary:
        """Aggregate a session's events over the trailing window."""
        if ctx is not None:
            self._visible_session(ctx, session_id)

        since = self.clock.now() - window.span
        events = self.events.in_range(session_id, since)

        by_type = Counter(e.type.value for e in events)
        by_user = Counter(str(e.actor_user_id) for e in events)
        timeline = Counter(e.timestamp.strftime(TIMELINE_KEY_FORMAT) for e in events)

        return EventSummary(
            window=window,
            since=since,
            total_events=len(events),
            active_users=len(by_user),
            document_changes=by_type.get(EventType.document_change.value, 0),
            comments=sum(1 for e in events if e.type in COMMENT_EVENT_TYPES),
            conflicts=by_type.get(EventType.conflict_detected.value, 0),
            events_by_type=dict(by_type),
            events_by_user=dict(by_user),
            timeline=dict(sorted(timeline.items())),
        )

    def metrics(
        self,
        session_id: UUID,
        start: datetime,
        end: datetime,
        ctx: RequestContext | None = None,
    ) -> EventMetrics:
        """Analytics over a closed time range.

        Hours are UTC hours of day. Ties for the peak hour or day go to the
        earliest bucket.
        """
        start, end = as_naive_utc(start), as_naive_utc(end)
        if start > end:
            raise ValidationError("start must not be after end", start=start, end=end)
        if ctx is not None:
            self._visible_session(ctx, session_id)

        events = self.events.in_range(session_id, start, end)
        by_type = Counter(e.type.value for e in events)
        users = {e.actor_user_id for e in events}
        hourly = Counter(e.timestamp.hour for e in events)
        daily = Counter(e.timestamp.date().isoformat() for e in events)

        # max() keeps the first maximum, so iterate buckets in ascending order
        peak_hour = max(sorted(hourly), key=hourly.__getitem__) if hourly else None
        peak_day = max(sorted(daily), key=daily.__getitem__) if daily else None

        return EventMetrics(
            start=start,
            end=end,
            total_events=len(events),
            unique_users=len(users),
            average_events_per_user=len(events) / len(users) if users else 0.0,
            event_types=dict(by_type),
            hourly_distribution=dict(sorted(hourly.items())),
            daily_distribution=dict(sorted(daily.items())),
            peak_hour=peak_hour,
            peak_day=peak_day,
        )

    def recent_activity(
        self,
        session_id: UUID,
        limit: int | None = None,
        ctx: RequestContext | None = None,
    ) -> list[CollaborationEvent]:
        """Latest feed-worthy events of a session."""
        if ctx is not None:
            self._visible_session(ctx, session_id)

        events, _ = self.events.query(
            EventQuery(
                session_id=session_id,
                types=sorted(FEED_EVENT_TYPES, key=lambda t: t.value),
                limit=limit or self.settings.recent_activity_limit,
            )
        )
        return events

    def user_activity(
        self,
        user_id: UUID,
        session_id: UUID | None = None,
        limit: int | None = None,
    ) -> list[CollaborationEvent]:
        """Latest events performed by a user, optionally within one session."""
        return self.events.for_user(
            user_id,
            session_id=session_id,
            limit=limit or self.settings.user_activity_limit,
        )
