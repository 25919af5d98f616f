"""collaboration schema

Revision ID: 001
Revises:
Create Date: 2025-02-03 09:00:00.000000

"""

from typing import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")
ACTIVE_ONLY = sa.text("status = 'active'")


def upgrade() -> None:
    """Create session, presence, event, document, version and comment tables."""
    op.create_table(
        "collab_session",
        sa.Column("id", sa.Uuid, primary_key=True, nullable=False),
        sa.Column("session_key", sa.Text, nullable=False, unique=True),
        sa.Column("org_id", sa.Uuid, nullable=False),
        sa.Column("resource_id", sa.Text, nullable=False),
        sa.Column("resource_type", sa.Text, nullable=False),
        sa.Column("type", sa.Text, nullable=False),
        sa.Column("title", sa.Text, nullable=True),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("metadata", JSONType, nullable=False),
        sa.Column("status", sa.Text, nullable=False, server_default="active"),
        sa.Column("created_by", sa.Uuid, nullable=False),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.Column("updated_at", sa.DateTime, nullable=False),
        sa.Column("ended_at", sa.DateTime, nullable=True),
    )
    # At most one active session per resource per org
    op.create_index(
        "uq_collab_session_active_resource",
        "collab_session",
        ["org_id", "resource_id", "resource_type"],
        unique=True,
        postgresql_where=ACTIVE_ONLY,
        sqlite_where=ACTIVE_ONLY,
    )
    op.create_index("idx_collab_session_org_updated", "collab_session", ["org_id", "updated_at"])
    op.create_index(
        "idx_collab_session_resource", "collab_session", ["resource_id", "resource_type"]
    )

    op.create_table(
        "collab_participant",
        sa.Column("id", sa.Uuid, primary_key=True, nullable=False),
        sa.Column("session_id", sa.Uuid, sa.ForeignKey("collab_session.id"), nullable=False),
        sa.Column("user_id", sa.Uuid, nullable=False),
        sa.Column("role", sa.Text, nullable=False, server_default="member"),
        sa.Column("permissions", JSONType, nullable=False),
        sa.Column("joined_at", sa.DateTime, nullable=False),
        sa.Column("left_at", sa.DateTime, nullable=True),
        sa.Column("last_activity", sa.DateTime, nullable=False),
        sa.Column("event_count", sa.Integer, nullable=False, server_default="0"),
        sa.UniqueConstraint("session_id", "user_id", name="uq_collab_participant_session_user"),
    )
    op.create_index("idx_collab_participant_user", "collab_participant", ["user_id"])

    op.create_table(
        "user_presence",
        sa.Column("user_id", sa.Uuid, primary_key=True, nullable=False),
        sa.Column("status", sa.Text, nullable=False),
        sa.Column("location", sa.Text, nullable=True),
        sa.Column("last_seen", sa.DateTime, nullable=False),
        sa.Column("online_since", sa.DateTime, nullable=True),
        sa.Column("device_type", sa.Text, nullable=True),
        sa.Column("browser_info", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.Column("updated_at", sa.DateTime, nullable=False),
    )
    op.create_index("idx_user_presence_status_seen", "user_presence", ["status", "last_seen"])

    op.create_table(
        "collab_event",
        sa.Column("seq", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("id", sa.Uuid, nullable=False, unique=True),
        sa.Column("session_id", sa.Uuid, sa.ForeignKey("collab_session.id"), nullable=False),
        sa.Column("type", sa.Text, nullable=False),
        sa.Column("payload", JSONType, nullable=True),
        sa.Column("actor_user_id", sa.Uuid, nullable=False),
        sa.Column("document_id", sa.Uuid, nullable=True),
        sa.Column("version", sa.Integer, nullable=True),
        sa.Column("position", sa.Integer, nullable=True),
        sa.Column("timestamp", sa.DateTime, nullable=False),
    )
    op.create_index("idx_collab_event_session_ts", "collab_event", ["session_id", "timestamp"])
    op.create_index("idx_collab_event_actor_ts", "collab_event", ["actor_user_id", "timestamp"])

    op.create_table(
        "collab_document",
        sa.Column("id", sa.Uuid, primary_key=True, nullable=False),
        sa.Column("org_id", sa.Uuid, nullable=False),
        sa.Column("title", sa.Text, nullable=False),
        sa.Column("content", sa.Text, nullable=False, server_default=""),
        sa.Column("current_version", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_by", sa.Uuid, nullable=False),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.Column("updated_at", sa.DateTime, nullable=False),
    )
    op.create_index("idx_collab_document_org", "collab_document", ["org_id"])

    op.create_table(
        "collab_document_version",
        sa.Column("id", sa.Uuid, primary_key=True, nullable=False),
        sa.Column("document_id", sa.Uuid, sa.ForeignKey("collab_document.id"), nullable=False),
        sa.Column("version", sa.Integer, nullable=False),
        sa.Column("title", sa.Text, nullable=False),
        sa.Column("summary", sa.Text, nullable=True),
        sa.Column("content", sa.Text, nullable=True),
        sa.Column("change_type", sa.Text, nullable=False, server_default="edit"),
        sa.Column("lines_added", sa.Integer, nullable=False, server_default="0"),
        sa.Column("lines_removed", sa.Integer, nullable=False, server_default="0"),
        sa.Column("author_id", sa.Uuid, nullable=False),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.UniqueConstraint("document_id", "version", name="uq_collab_document_version"),
    )

    op.create_table(
        "collab_comment",
        sa.Column("id", sa.Uuid, primary_key=True, nullable=False),
        sa.Column("document_id", sa.Uuid, sa.ForeignKey("collab_document.id"), nullable=False),
        sa.Column("author_id", sa.Uuid, nullable=False),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("position", sa.Integer, nullable=True),
        sa.Column("parent_id", sa.Uuid, sa.ForeignKey("collab_comment.id"), nullable=True),
        sa.Column("resolved", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("reactions", JSONType, nullable=False),
        sa.Column("metadata", JSONType, nullable=False),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.Column("updated_at", sa.DateTime, nullable=False),
    )
    op.create_index("idx_collab_comment_document", "collab_comment", ["document_id", "created_at"])
    op.create_index("idx_collab_comment_parent", "collab_comment", ["parent_id"])


def downgrade() -> None:
    """Drop collaboration tables."""
    op.drop_index("idx_collab_comment_parent", table_name="collab_comment")
    op.drop_index("idx_collab_comment_document", table_name="collab_comment")
    op.drop_table("collab_comment")
    op.drop_table("collab_document_version")
    op.drop_index("idx_collab_document_org", table_name="collab_document")
    op.drop_table("collab_document")
    op.drop_index("idx_collab_event_actor_ts", table_name="collab_event")
    op.drop_index("idx_collab_event_session_ts", table_name="collab_event")
    op.drop_table("collab_event")
    op.drop_index("idx_user_presence_status_seen", table_name="user_presence")
    op.drop_table("user_presence")
    op.drop_index("idx_collab_participant_user", table_name="collab_participant")
    op.drop_table("collab_participant")
    op.drop_index("idx_collab_session_resource", table_name="collab_session")
    op.drop_index("idx_collab_session_org_updated", table_name="collab_session")
    op.drop_index("uq_collab_session_active_resource", table_name="collab_session")
    op.drop_table("collab_session")
