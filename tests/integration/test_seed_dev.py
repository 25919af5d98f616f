"""Integration tests for dev seeding helper."""

import uuid

from backend.app.collaboration.container import Repositories
from backend.app.collaboration.versions import DOCUMENT_RESOURCE_TYPE
from backend.app.db.seed_dev import (
    DEV_DOCUMENT_ID,
    DEV_ORG_ID,
    DEV_USER_ID,
    seed_dev_document_and_session,
)


def test_dev_ids_match_stub_auth() -> None:
    """Test that dev IDs match the stub auth defaults."""
    from backend.app.api.auth import DEV_CONTEXT

    assert DEV_ORG_ID == uuid.UUID("00000000-0000-0000-0000-000000000001")
    assert DEV_USER_ID == uuid.UUID("00000000-0000-0000-0000-000000000002")
    assert (DEV_CONTEXT.org_id, DEV_CONTEXT.user_id) == (DEV_ORG_ID, DEV_USER_ID)


def test_seed_is_idempotent(db_session) -> None:
    """Test seeding twice leaves one document, one version and one active session."""
    seed_dev_document_and_session(db_session)
    seed_dev_document_and_session(db_session)

    repos = Repositories.sql(db_session)
    document = repos.documents.get_document(DEV_DOCUMENT_ID, org_id=DEV_ORG_ID)
    assert document is not None
    assert document.current_version == 1
    assert document.content == "Hello, collaborators."
    assert repos.documents.max_version(DEV_DOCUMENT_ID) == 1

    active = repos.sessions.list_active_for_resource(
        str(DEV_DOCUMENT_ID), DOCUMENT_RESOURCE_TYPE, org_id=DEV_ORG_ID
    )
    assert len(active) == 1
    assert active[0].created_by == DEV_USER_ID
