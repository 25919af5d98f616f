"""Wiring of repositories into the collaboration components."""

from dataclasses import dataclass

from sqlalchemy.orm import Session

from backend.app.collaboration.clock import Clock, SystemClock
from backend.app.collaboration.comments import CommentThreadManager
from backend.app.collaboration.events import EventLog
from backend.app.collaboration.fanout import EventFanout
from backend.app.collaboration.presence import PresenceTracker
from backend.app.collaboration.sessions import SessionManager
from backend.app.collaboration.versions import VersionStore
from backend.app.config import Settings, get_settings
from backend.app.db.context import OrgMembershipResolver, SessionRosterMembershipResolver
from backend.app.db.inmemory import (
    InMemoryCommentRepository,
    InMemoryDocumentRepository,
    InMemoryEventRepository,
    InMemoryPresenceRepository,
    InMemorySessionRepository,
)
from backend.app.db.repositories import (
    CommentRepository,
    DocumentRepository,
    EventRepository,
    PresenceRepository,
    SessionRepository,
)
from backend.app.db.sql_repositories import (
    SqlCommentRepository,
    SqlDocumentRepository,
    SqlEventRepository,
    SqlPresenceRepository,
    SqlSessionRepository,
)


@dataclass
class Repositories:
    """One implementation of every store interface."""

    sessions: SessionRepository
    presence: PresenceRepository
    events: EventRepository
    documents: DocumentRepository
    comments: CommentRepository

    @classmethod
    def in_memory(cls) -> "Repositories":
        return cls(
            sessions=InMemorySessionRepository(),
            presence=InMemoryPresenceRepository(),
            events=InMemoryEventRepository(),
            documents=InMemoryDocumentRepository(),
            comments=InMemoryCommentRepository(),
        )

    @classmethod
    def sql(cls, session: Session) -> "Repositories":
        return cls(
            sessions=SqlSessionRepository(session),
            presence=SqlPresenceRepository(session),
            events=SqlEventRepository(session),
            documents=SqlDocumentRepository(session),
            comments=SqlCommentRepository(session),
        )


@dataclass
class CollaborationServices:
    """The five collaboration components sharing one set of repositories."""

    sessions: SessionManager
    presence: PresenceTracker
    events: EventLog
    versions: VersionStore
    comments: CommentThreadManager


def build_services(
    repos: Repositories,
    membership: OrgMembershipResolver | None = None,
    clock: Clock | None = None,
    settings: Settings | None = None,
) -> CollaborationServices:
    """Build every component over the given repositories."""
    clock = clock or SystemClock()
    settings = settings or get_settings()
    membership = membership or SessionRosterMembershipResolver(repos.sessions)

    event_log = EventLog(repos.events, repos.sessions, clock=clock, settings=settings)
    fanout = EventFanout(event_log, repos.sessions)

    return CollaborationServices(
        sessions=SessionManager(repos.sessions, event_log, clock=clock, settings=settings),
        presence=PresenceTracker(
            repos.presence,
            repos.sessions,
            fanout,
            membership,
            clock=clock,
            settings=settings,
            metrics=event_log.counters,
        ),
        events=event_log,
        versions=VersionStore(repos.documents, repos.sessions, fanout, clock=clock, settings=settings),
        comments=CommentThreadManager(
            repos.comments, repos.documents, repos.sessions, fanout, clock=clock, settings=settings
        ),
    )
