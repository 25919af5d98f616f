"""Session manager - lifecycle of collaboration sessions and their rosters."""

import secrets
import string
import uuid
from typing import Any
from uuid import UUID

from backend.app.collaboration.authz import ADMIN_ROLES, OWNER_ONLY, require_role
from backend.app.collaboration.clock import Clock, SystemClock
from backend.app.collaboration.errors import ConflictError, NotFoundError, ValidationError
from backend.app.collaboration.events import EventLog
from backend.app.config import Settings, get_settings
from backend.app.db.context import RequestContext
from backend.app.db.repositories import SessionQuery, SessionRepository
from backend.app.models.common import Page
from backend.app.models.events import EventType
from backend.app.models.sessions import (
    CollaborationSession,
    Participant,
    ParticipantRole,
    ParticipantSpec,
    SessionDetail,
    SessionStatus,
    SessionUpdate,
)
from backend.app.utils.logging import StructuredCollaborationLogger

_KEY_ALPHABET = string.ascii_lowercase + string.digits


def new_session_key(now_ms: int) -> str:
    """External session token: session_<epoch-ms>_<9 random chars>."""
    suffix = "".join(secrets.choice(_KEY_ALPHABET) for _ in range(9))
    return f"session_{now_ms}_{suffix}"


class SessionManager:
    """Create, update, end, join and leave collaboration sessions."""

    def __init__(
        self,
        sessions: SessionRepository,
        event_log: EventLog,
        clock: Clock | None = None,
        settings: Settings | None = None,
    ):
        self.sessions = sessions
        self.event_log = event_log
        self.clock = clock or SystemClock()
        self.settings = settings or get_settings()
        self.op_logger = StructuredCollaborationLogger()

    def _get_visible(self, ctx: RequestContext, session_id: UUID) -> CollaborationSession:
        session = self.sessions.get(session_id, org_id=ctx.org_id)
        if session is None:
            raise NotFoundError("Session", session_id)
        return session

    def create_session(
        self,
        ctx: RequestContext,
        resource_id: str,
        resource_type: str,
        type: str,
        title: str | None = None,
        description: str | None = None,
        metadata: dict[str, Any] | None = None,
        participants: list[ParticipantSpec] | None = None,
    ) -> SessionDetail:
        """Open a session on a resource. The caller joins as owner.

        Raises:
            ValidationError: Missing type, resource_id or resource_type
            ConflictError: An active session already exists for the resource
        """
        missing = [
            name
            for name, value in (
                ("type", type),
                ("resource_id", resource_id),
                ("resource_type", resource_type),
            )
            if not value
        ]
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}", fields=",".join(missing)
            )

        existing = self.sessions.list_active_for_resource(
            resource_id, resource_type, org_id=ctx.org_id
        )
        if existing:
            raise ConflictError(
                "Active session already exists for this resource",
                session_id=existing[0].id,
            )

        now = self.clock.now()
        session = CollaborationSession(
            id=uuid.uuid4(),
            session_key=new_session_key(int(now.timestamp() * 1000)),
            org_id=ctx.org_id,
            resource_id=resource_id,
            resource_type=resource_type,
            type=type,
            title=title,
            description=description,
            metadata=metadata or {},
            status=SessionStatus.active,
            created_by=ctx.user_id,
            created_at=now,
            updated_at=now,
        )

        roster = [self._new_participant(session.id, ctx.user_id, ParticipantRole.owner)]
        seen = {ctx.user_id}
        for spec in participants or []:
            if spec.user_id in seen:
                continue
            seen.add(spec.user_id)
            roster.append(self._new_participant(session.id, spec.user_id, spec.role))

        # The store rejects a concurrent second active session for the resource
        stored = self.sessions.create_active(session, roster)

        self.event_log.append(
            stored.id,
            EventType.session_create,
            {
                "session_type": stored.type,
                "resource_id": stored.resource_id,
                "resource_type": stored.resource_type,
            },
            ctx.user_id,
        )
        self.event_log.counters.inc_session_created(stored.type)
        self.op_logger.log_operation(
            "create_session",
            ctx.user_id,
            session_id=stored.id,
            resource_id=stored.resource_id,
            resource_type=stored.resource_type,
        )
        return SessionDetail(session=stored, participants=self.sessions.list_participants(stored.id))

    def _new_participant(
        self, session_id: UUID, user_id: UUID, role: ParticipantRole
    ) -> Participant:
        now = self.clock.now()
        return Participant(
            id=uuid.uuid4(),
            session_id=session_id,
            user_id=user_id,
            role=role,
            joined_at=now,
            last_activity=now,
        )

    def update_session(
        self, ctx: RequestContext, session_id: UUID, update: SessionUpdate
    ) -> CollaborationSession:
        """Partially update a session. Owner or admin only.

        Moving the status to ended stamps ended_at.
        """
        session = self._get_visible(ctx, session_id)
        require_role(
            self.sessions.list_participants(session_id), ctx.user_id, ADMIN_ROLES, "update session"
        )

        changes = update.changes()
        now = self.clock.now()
        fields: dict[str, Any] = {
            key: getattr(update, key) for key in ("title", "description", "metadata", "status")
            if key in changes
        }
        fields["updated_at"] = now

        ending = update.status == SessionStatus.ended and session.is_active
        if ending:
            fields["ended_at"] = now
        elif update.status == SessionStatus.active:
            fields["ended_at"] = None

        updated = self.sessions.update(session.model_copy(update=fields))

        self.event_log.append(
            session_id, EventType.session_update, {"changes": changes}, ctx.user_id
        )
        if ending:
            self.event_log.counters.inc_session_ended()
        return updated

    def end_session(self, ctx: RequestContext, session_id: UUID) -> CollaborationSession:
        """End a session. Owner only; ending an ended session changes nothing."""
        session = self._get_visible(ctx, session_id)
        require_role(
            self.sessions.list_participants(session_id), ctx.user_id, OWNER_ONLY, "end session"
        )
        if not session.is_active:
            return session

        now = self.clock.now()
        ended = self.sessions.update(
            session.model_copy(
                update={"status": SessionStatus.ended, "ended_at": now, "updated_at": now}
            )
        )

        self.event_log.append(
            session_id, EventType.session_end, {"ended_by": str(ctx.user_id)}, ctx.user_id
        )
        self.event_log.counters.inc_session_ended()
        self.op_logger.log_operation("end_session", ctx.user_id, session_id=session_id)
        return ended

    def list_sessions(
        self,
        ctx: RequestContext,
        type: str | None = None,
        active_only: bool = False,
        limit: int | None = None,
        offset: int = 0,
    ) -> Page[CollaborationSession]:
        """Sessions in the caller's org where the caller is an active participant."""
        limit = limit if limit is not None else self.settings.sessions_page_limit
        if limit < 1 or offset < 0:
            raise ValidationError("Invalid pagination", limit=limit, offset=offset)

        items, total = self.sessions.list_for_user(
            SessionQuery(
                org_id=ctx.org_id,
                user_id=ctx.user_id,
                type=type,
                active_only=active_only,
                limit=limit,
                offset=offset,
            )
        )
        return Page.build(items, total, limit, offset)

    def get_session(self, ctx: RequestContext, session_id: UUID) -> SessionDetail:
        """Session plus its full roster."""
        session = self._get_visible(ctx, session_id)
        return SessionDetail(session=session, participants=self.sessions.list_participants(session_id))

    def join_session(
        self,
        ctx: RequestContext,
        session_id: UUID,
        user_id: UUID | None = None,
        role: ParticipantRole = ParticipantRole.member,
    ) -> Participant:
        """Add a user to a session, or reactivate them if they left.

        Adding someone other than the caller needs owner or admin.

        Raises:
            NotFoundError: Session not in the caller's org
            ValidationError: Session has ended
        """
        user_id = user_id or ctx.user_id
        session = self._get_visible(ctx, session_id)
        if not session.is_active:
            raise ValidationError("Cannot join an ended session", session_id=session_id)
        if user_id != ctx.user_id:
            require_role(
                self.sessions.list_participants(session_id),
                ctx.user_id,
                ADMIN_ROLES,
                "add participants",
            )

        participant = self.sessions.upsert_participant(
            self._new_participant(session_id, user_id, role)
        )

        self.event_log.append(
            session_id, EventType.user_join, {"role": participant.role.value}, user_id
        )
        return participant

    def leave_session(
        self, ctx: RequestContext, session_id: UUID, user_id: UUID | None = None
    ) -> Participant:
        """Mark a participant as left. Removing someone else needs owner or admin.

        Raises:
            NotFoundError: Session not visible, or the user never joined
        """
        user_id = user_id or ctx.user_id
        self._get_visible(ctx, session_id)
        if user_id != ctx.user_id:
            require_role(
                self.sessions.list_participants(session_id),
                ctx.user_id,
                ADMIN_ROLES,
                "remove participants",
            )

        participant = self.sessions.get_participant(session_id, user_id)
        if participant is None:
            raise NotFoundError("Participant", user_id, session_id=session_id)
        if not participant.is_active:
            return participant

        now = self.clock.now()
        left = self.sessions.update_participant(
            participant.model_copy(update={"left_at": now, "last_activity": now})
        )

        self.event_log.append(session_id, EventType.user_leave, {}, user_id)
        return left

    def get_active_participants(self, ctx: RequestContext, session_id: UUID) -> list[Participant]:
        """Participants who have not left."""
        self._get_visible(ctx, session_id)
        return self.sessions.list_participants(session_id, active_only=True)

    def active_sessions_for_resource(
        self, org_id: UUID, resource_id: str, resource_type: str
    ) -> list[CollaborationSession]:
        """Active sessions bound to a resource."""
        return self.sessions.list_active_for_resource(resource_id, resource_type, org_id=org_id)
