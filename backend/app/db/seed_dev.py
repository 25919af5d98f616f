"""Dev seeding helper for stub authentication."""

import uuid

from sqlalchemy.orm import Session

from backend.app.collaboration.container import Repositories, build_services
from backend.app.collaboration.versions import DOCUMENT_RESOURCE_TYPE
from backend.app.db.context import RequestContext
from backend.app.db.engine import create_session_factory, get_engine
from backend.app.db.models import Base
from backend.app.models.versions import Document

# Fixed IDs matching stub auth in backend/app/api/auth.py
DEV_ORG_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")
DEV_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000002")
DEV_DOCUMENT_ID = uuid.UUID("00000000-0000-0000-0000-0000000000d1")


def seed_dev_document_and_session(session: Session) -> None:
    """Seed a dev document and an active editing session for stub authentication.

    This function is idempotent - safe to run multiple times.
    Creates:
    - Document with id DEV_DOCUMENT_ID and a first version if it doesn't exist
    - Active session on that document owned by DEV_USER_ID if none is active
    """
    ctx = RequestContext(org_id=DEV_ORG_ID, user_id=DEV_USER_ID)
    repos = Repositories.sql(session)
    services = build_services(repos)

    document = repos.documents.get_document(DEV_DOCUMENT_ID, org_id=DEV_ORG_ID)
    if document is None:
        print(f"Creating dev document with id {DEV_DOCUMENT_ID}...")
        now = services.versions.clock.now()
        repos.documents.create_document(
            Document(
                id=DEV_DOCUMENT_ID,
                org_id=DEV_ORG_ID,
                title="Dev Document",
                created_by=DEV_USER_ID,
                created_at=now,
                updated_at=now,
            )
        )
        services.versions.create_version(
            ctx, DEV_DOCUMENT_ID, "Hello, collaborators.", title="Initial draft"
        )
    else:
        print(f"Dev document already exists: {document.title}")

    active = services.sessions.active_sessions_for_resource(
        DEV_ORG_ID, str(DEV_DOCUMENT_ID), DOCUMENT_RESOURCE_TYPE
    )
    if not active:
        print("Creating dev editing session...")
        services.sessions.create_session(
            ctx,
            resource_id=str(DEV_DOCUMENT_ID),
            resource_type=DOCUMENT_RESOURCE_TYPE,
            type="document_editing",
            title="Dev editing session",
        )
    else:
        print(f"Dev session already active: {active[0].session_key}")

    print("✅ Dev seeding complete")


if __name__ == "__main__":
    engine = get_engine()
    Base.metadata.create_all(engine)
    with create_session_factory(engine)() as db_session:
        seed_dev_document_and_session(db_session)
