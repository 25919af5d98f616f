"""Request-scoped wiring of collaboration services."""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.orm import Session

from backend.app.collaboration.container import CollaborationServices, Repositories, build_services
from backend.app.db.engine import get_session


def get_services(
    session: Annotated[Session, Depends(get_session)],
) -> CollaborationServices:
    """Collaboration services over the request's database session.

    Tests override this dependency with in-memory services.
    """
    return build_services(Repositories.sql(session))
