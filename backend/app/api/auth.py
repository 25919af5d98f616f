"""Minimal auth dependency.

Stub implementation that extracts org_id/user_id from bearer token or uses dev defaults.
The identity provider is external; only the stub token format is understood here.
"""

import uuid
from typing import Annotated

from fastapi import Header, HTTPException, status

from backend.app.db.context import RequestContext

# Identity seeded by backend.app.db.seed_dev
DEV_CONTEXT = RequestContext(
    org_id=uuid.UUID("00000000-0000-0000-0000-000000000001"),
    user_id=uuid.UUID("00000000-0000-0000-0000-000000000002"),
)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_context(
    authorization: Annotated[str | None, Header()] = None,
) -> RequestContext:
    """Extract request context from authorization header.

    Stub implementation that either:
    - Parses a simple "Bearer <org_id>:<user_id>" format
    - Returns the dev identity if no header

    Args:
        authorization: Authorization header (e.g., "Bearer <token>")

    Returns:
        RequestContext with org_id and user_id

    Raises:
        HTTPException: If authorization is invalid
    """
    if not authorization:
        return DEV_CONTEXT

    scheme, _, token = authorization.partition(" ")
    if scheme != "Bearer" or not token:
        raise _unauthorized("Invalid authorization header format")

    org_part, sep, user_part = token.partition(":")
    if not sep:
        raise _unauthorized("Unsupported bearer token (expected org_id:user_id)")

    try:
        return RequestContext(org_id=uuid.UUID(org_part), user_id=uuid.UUID(user_part))
    except ValueError as e:
        raise _unauthorized("Invalid token format (expected org_id:user_id)") from e
