"""Role checks shared by every component."""

from collections.abc import Iterable
from uuid import UUID

from backend.app.collaboration.errors import PermissionDeniedError
from backend.app.models.sessions import Participant, ParticipantRole

ADMIN_ROLES: frozenset[ParticipantRole] = frozenset({ParticipantRole.owner, ParticipantRole.admin})
OWNER_ONLY: frozenset[ParticipantRole] = frozenset({ParticipantRole.owner})


def has_role(
    participants: Iterable[Participant],
    user_id: UUID,
    allowed_roles: Iterable[ParticipantRole],
) -> bool:
    """True when user_id is an active participant holding one of allowed_roles.

    Participants who have left never satisfy a role check.
    """
    allowed = set(allowed_roles)
    return any(
        p.user_id == user_id and p.is_active and p.role in allowed for p in participants
    )


def require_role(
    participants: Iterable[Participant],
    user_id: UUID,
    allowed_roles: Iterable[ParticipantRole],
    action: str,
) -> None:
    """Raise PermissionDeniedError unless has_role holds."""
    allowed = set(allowed_roles)
    if not has_role(participants, user_id, allowed):
        raise PermissionDeniedError(
            f"Not allowed to {action}",
            user_id=user_id,
            required=",".join(sorted(role.value for role in allowed)),
        )
