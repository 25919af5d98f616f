"""Best-effort event fan-out to the active sessions of a resource."""

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from backend.app.collaboration.events import EventLog
from backend.app.db.repositories import SessionRepository
from backend.app.models.events import CollaborationEvent, EventType
from backend.app.utils.logging import StructuredCollaborationLogger


@dataclass
class FanoutResult:
    """Outcome of one fan-out: events written and sessions that failed."""

    delivered: list[CollaborationEvent] = field(default_factory=list)
    failed: list[UUID] = field(default_factory=list)


class EventFanout:
    """Append one event per target session.

    A failure for one session is logged and counted, never raised; the
    primary write that triggered the fan-out has already committed.
    """

    def __init__(self, event_log: EventLog, sessions: SessionRepository):
        self.event_log = event_log
        self.sessions = sessions
        self.op_logger = StructuredCollaborationLogger()

    def to_sessions(
        self,
        session_ids: Iterable[UUID],
        event_type: EventType,
        payload: dict[str, Any],
        actor_user_id: UUID,
        document_id: UUID | None = None,
        version: int | None = None,
        position: int | None = None,
    ) -> FanoutResult:
        """Append the event to every given session."""
        result = FanoutResult()
        for session_id in session_ids:
            try:
                event = self.event_log.append(
                    session_id,
                    event_type,
                    dict(payload),
                    actor_user_id,
                    document_id=document_id,
                    version=version,
                    position=position,
                )
            except Exception as e:
                self.op_logger.log_fanout_failure(session_id, event_type.value, e)
                self.event_log.counters.inc_fanout_failure(event_type.value)
                result.failed.append(session_id)
                continue
            result.delivered.append(event)
        return result

    def to_resource(
        self,
        org_id: UUID,
        resource_id: str,
        resource_type: str,
        event_type: EventType,
        payload: dict[str, Any],
        actor_user_id: UUID,
        document_id: UUID | None = None,
        version: int | None = None,
        position: int | None = None,
    ) -> FanoutResult:
        """Append the event to every active session bound to the resource."""
        try:
            sessions = self.sessions.list_active_for_resource(
                resource_id, resource_type, org_id=org_id
            )
        except Exception as e:
            # Lookup failure is treated like a failed delivery to zero sessions
            self.op_logger.log_operation(
                "fanout_lookup",
                actor_user_id,
                outcome="error",
                resource_id=resource_id,
                event_type=event_type.value,
                error=repr(e),
            )
            self.event_log.counters.inc_fanout_failure(event_type.value)
            return FanoutResult()

        return self.to_sessions(
            [s.id for s in sessions],
            event_type,
            payload,
            actor_user_id,
            document_id=document_id,
            version=version,
            position=position,
        )
