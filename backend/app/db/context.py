"""Request context for tenancy enforcement."""

from dataclasses import dataclass
from typing import Protocol
from uuid import UUID

from backend.app.db.repositories import SessionRepository


@dataclass(frozen=True)
class RequestContext:
    """Authenticated caller identity within one organization.

    Every core operation that reads or mutates org-scoped data takes a
    context; sessions and documents outside ``org_id`` are invisible.
    """

    org_id: UUID
    user_id: UUID

    def acting_as(self, user_id: UUID) -> "RequestContext":
        """Same organization, different user."""
        return RequestContext(org_id=self.org_id, user_id=user_id)


class OrgMembershipResolver(Protocol):
    """Resolves which users belong to an organization."""

    def members(self, org_id: UUID) -> set[UUID]:
        """Return the user IDs that are members of the organization.

        Args:
            org_id: Organization ID

        Returns:
            Set of member user IDs
        """
        ...


class SessionRosterMembershipResolver:
    """Treat everyone who has joined a session of the org as a member.

    Used when no external membership directory is wired in.
    """

    def __init__(self, sessions: SessionRepository):
        self.sessions = sessions

    def members(self, org_id: UUID) -> set[UUID]:
        members: set[UUID] = set()
        for session in self.sessions.list_org_sessions(org_id):
            members.add(session.created_by)
            members.update(p.user_id for p in self.sessions.list_participants(session.id))
        return members
