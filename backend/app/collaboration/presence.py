"""Presence tracker - per-user availability across sessions."""

from datetime import timedelta
from uuid import UUID

from backend.app.collaboration.clock import Clock, SystemClock
from backend.app.collaboration.errors import NotFoundError, ValidationError
from backend.app.collaboration.fanout import EventFanout, FanoutResult
from backend.app.config import Settings, get_settings
from backend.app.db.context import OrgMembershipResolver, RequestContext
from backend.app.db.repositories import PresenceRepository, SessionRepository
from backend.app.models.events import EventType
from backend.app.models.presence import (
    PresenceListing,
    PresenceRecord,
    PresenceStatus,
    PresenceSummary,
    PresenceView,
)
from backend.app.utils.logging import StructuredCollaborationLogger
from backend.app.utils.metrics import PrometheusCollaborationMetrics


def _parse_status(status: PresenceStatus | str) -> PresenceStatus:
    try:
        return PresenceStatus(status)
    except ValueError:
        allowed = ", ".join(s.value for s in PresenceStatus)
        raise ValidationError(f"Invalid status. Must be one of: {allowed}", status=status) from None


class PresenceTracker:
    """Track online/away/busy/offline status, heartbeats and staleness."""

    def __init__(
        self,
        presence: PresenceRepository,
        sessions: SessionRepository,
        fanout: EventFanout,
        membership: OrgMembershipResolver,
        clock: Clock | None = None,
        settings: Settings | None = None,
        metrics: PrometheusCollaborationMetrics | None = None,
    ):
        self.presence = presence
        self.sessions = sessions
        self.fanout = fanout
        self.membership = membership
        self.clock = clock or SystemClock()
        self.settings = settings or get_settings()
        self.metrics = metrics or PrometheusCollaborationMetrics()
        self.op_logger = StructuredCollaborationLogger()

    @property
    def active_window(self) -> timedelta:
        return timedelta(seconds=self.settings.presence_active_window_seconds)

    @property
    def stale_after(self) -> timedelta:
        return timedelta(seconds=self.settings.presence_stale_after_seconds)

    def _view(self, record: PresenceRecord) -> PresenceView:
        return PresenceView(
            user_id=record.user_id,
            status=record.status,
            location=record.location,
            last_seen=record.last_seen,
            online_since=record.online_since,
            is_active=record.is_active(self.clock.now(), self.active_window),
        )

    def _broadcast(
        self,
        user_id: UUID,
        status: PresenceStatus,
        location: str | None,
        previous: PresenceStatus | None,
    ) -> FanoutResult:
        """Send presence_update to every active session the user is active in."""
        session_ids = []
        for participant in self.sessions.list_participations(user_id, active_only=True):
            session = self.sessions.get(participant.session_id)
            if session is not None and session.is_active:
                session_ids.append(session.id)

        return self.fanout.to_sessions(
            session_ids,
            EventType.presence_update,
            {
                "status": status.value,
                "location": location,
                "previous_status": previous.value if previous else None,
            },
            user_id,
        )

    def update_presence(
        self,
        user_id: UUID,
        status: PresenceStatus | str,
        location: str | None = None,
        device_type: str | None = None,
        browser_info: str | None = None,
    ) -> PresenceView:
        """Set a user's status explicitly.

        online_since is stamped when the user enters online and cleared when
        they leave it.

        Raises:
            ValidationError: Unknown status
        """
        new_status = _parse_status(status)
        now = self.clock.now()
        existing = self.presence.get(user_id)
        previous = existing.status if existing else None

        if new_status != PresenceStatus.online:
            online_since = None
        elif previous == PresenceStatus.online and existing is not None:
            online_since = existing.online_since
        else:
            online_since = now

        record = PresenceRecord(
            user_id=user_id,
            status=new_status,
            location=location if location is not None else (existing.location if existing else None),
            last_seen=now,
            online_since=online_since,
            device_type=device_type or (existing.device_type if existing else None),
            browser_info=browser_info or (existing.browser_info if existing else None),
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )
        stored = self.presence.upsert(record)

        self._broadcast(user_id, stored.status, stored.location, previous)
        return self._view(stored)

    def heartbeat(self, user_id: UUID, location: str | None = None) -> PresenceView:
        """Refresh last_seen without changing status; unknown users start online."""
        now = self.clock.now()
        existing = self.presence.get(user_id)

        if existing is None:
            record = PresenceRecord(
                user_id=user_id,
                status=PresenceStatus.online,
                location=location,
                last_seen=now,
                online_since=now,
                created_at=now,
                updated_at=now,
            )
        else:
            update: dict = {"last_seen": now, "updated_at": now}
            if location is not None:
                update["location"] = location
            record = existing.model_copy(update=update)

        return self._view(self.presence.upsert(record))

    def clear_presence(self, user_id: UUID) -> PresenceView:
        """Mark a user offline."""
        now = self.clock.now()
        existing = self.presence.get(user_id)
        previous = existing.status if existing else None

        record = PresenceRecord(
            user_id=user_id,
            status=PresenceStatus.offline,
            location=existing.location if existing else None,
            last_seen=now,
            online_since=None,
            device_type=existing.device_type if existing else None,
            browser_info=existing.browser_info if existing else None,
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )
        stored = self.presence.upsert(record)

        self._broadcast(user_id, PresenceStatus.offline, stored.location, previous)
        return self._view(stored)

    def cleanup_stale_presence(self) -> int:
        """Force offline every user unseen for the staleness threshold.

        Idempotent; emits no events.
        """
        now = self.clock.now()
        swept = self.presence.mark_stale_offline(now - self.stale_after, now)
        self.metrics.inc_presence_swept(swept)
        self.op_logger.log_operation("cleanup_stale_presence", None, swept=swept)
        return swept

    def get_presence(self, user_id: UUID) -> PresenceView:
        """A single user's presence."""
        record = self.presence.get(user_id)
        if record is None:
            raise NotFoundError("Presence", user_id)
        return self._view(record)

    def _session_user_ids(self, ctx: RequestContext, session_id: UUID) -> set[UUID]:
        if self.sessions.get(session_id, org_id=ctx.org_id) is None:
            raise NotFoundError("Session", session_id)
        return {p.user_id for p in self.sessions.list_participants(session_id, active_only=True)}

    def get_session_presence(self, ctx: RequestContext, session_id: UUID) -> list[PresenceView]:
        """Presence of a session's active participants.

        Participants who never reported presence are omitted.
        """
        user_ids = self._session_user_ids(ctx, session_id)
        if not user_ids:
            return []
        records = self.presence.list_records(
            user_ids=user_ids, include_offline=True, limit=len(user_ids)
        )
        return [self._view(r) for r in records]

    def list_presence(
        self,
        ctx: RequestContext,
        session_id: UUID | None = None,
        user_ids: set[UUID] | None = None,
        include_offline: bool = False,
        limit: int | None = None,
    ) -> PresenceListing:
        """Presence of a session's participants, given users, or the caller's org.

        Users are ordered online first, then most recently seen.
        """
        limit = limit if limit is not None else self.settings.presence_page_limit
        if limit < 1:
            raise ValidationError("Invalid limit", limit=limit)

        if session_id is not None:
            scope = self._session_user_ids(ctx, session_id)
            if user_ids:
                scope &= set(user_ids)
        elif user_ids:
            scope = set(user_ids)
        else:
            scope = self.membership.members(ctx.org_id)

        records = (
            self.presence.list_records(user_ids=scope, include_offline=include_offline, limit=limit)
            if scope
            else []
        )
        users = [self._view(r) for r in records]

        grouped: dict[PresenceStatus, list[PresenceView]] = {s: [] for s in PresenceStatus}
        for view in users:
            grouped[view.status].append(view)

        summary = PresenceSummary(
            total=len(users),
            online=len(grouped[PresenceStatus.online]),
            away=len(grouped[PresenceStatus.away]),
            busy=len(grouped[PresenceStatus.busy]),
            offline=len(grouped[PresenceStatus.offline]),
        )
        return PresenceListing(users=users, grouped=grouped, summary=summary)
