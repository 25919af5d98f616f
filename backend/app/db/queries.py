"""Tenancy-safe query helpers."""

import uuid

from sqlalchemy.orm import Query, Session

from backend.app.db.models import CollabDocument, CollabSession


def query_sessions(session: Session, org_id: uuid.UUID | None) -> Query:
    """Query collab_session table with org scoping enforced.

    Args:
        session: SQLAlchemy session
        org_id: Organization ID, or None for an unscoped internal lookup

    Returns:
        Query filtered by org_id
    """
    query = session.query(CollabSession)
    if org_id is not None:
        query = query.filter(CollabSession.org_id == org_id)
    return query


def query_documents(session: Session, org_id: uuid.UUID | None) -> Query:
    """Query collab_document table with org scoping enforced.

    Args:
        session: SQLAlchemy session
        org_id: Organization ID, or None for an unscoped internal lookup

    Returns:
        Query filtered by org_id
    """
    query = session.query(CollabDocument)
    if org_id is not None:
        query = query.filter(CollabDocument.org_id == org_id)
    return query
