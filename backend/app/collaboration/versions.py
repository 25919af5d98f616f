"""Version store - document snapshots, restore and retention."""

import uuid
from collections.abc import Iterable
from dataclasses import replace
from typing import Any
from uuid import UUID

from backend.app.collaboration.authz import ADMIN_ROLES, has_role
from backend.app.collaboration.clock import Clock, SystemClock, as_naive_utc
from backend.app.collaboration.errors import (
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from backend.app.collaboration.fanout import EventFanout
from backend.app.config import Settings, get_settings
from backend.app.db.context import RequestContext
from backend.app.db.repositories import DocumentRepository, HistoryQuery, SessionRepository
from backend.app.models.common import Page
from backend.app.models.events import EventType
from backend.app.models.versions import (
    Change,
    ChangeType,
    DiffStats,
    Document,
    DocumentVersion,
    RestoreResult,
    VersionDiff,
    VersionHistoryEntry,
)
from backend.app.utils.logging import StructuredCollaborationLogger

DOCUMENT_RESOURCE_TYPE = "document"


def count_line_changes(changes: Iterable[Change | dict[str, Any]]) -> tuple[int, int]:
    """Count insert and delete entries of a change list."""
    added = removed = 0
    for raw in changes:
        change = raw if isinstance(raw, Change) else Change.model_validate(raw)
        if change.type == "insert":
            added += 1
        elif change.type == "delete":
            removed += 1
    return added, removed


class VersionStore:
    """Write, restore, prune and compare document versions."""

    def __init__(
        self,
        documents: DocumentRepository,
        sessions: SessionRepository,
        fanout: EventFanout,
        clock: Clock | None = None,
        settings: Settings | None = None,
    ):
        self.documents = documents
        self.sessions = sessions
        self.fanout = fanout
        self.clock = clock or SystemClock()
        self.settings = settings or get_settings()
        self.op_logger = StructuredCollaborationLogger()

    def create_document(self, ctx: RequestContext, title: str, content: str = "") -> Document:
        """Create a document with no versions (pointer 0)."""
        if not title:
            raise ValidationError("title is required")
        now = self.clock.now()
        return self.documents.create_document(
            Document(
                id=uuid.uuid4(),
                org_id=ctx.org_id,
                title=title,
                content=content,
                current_version=0,
                created_by=ctx.user_id,
                created_at=now,
                updated_at=now,
            )
        )

    def get_document(self, ctx: RequestContext, document_id: UUID) -> Document:
        """Get a document in the caller's org."""
        document = self.documents.get_document(document_id, org_id=ctx.org_id)
        if document is None:
            raise NotFoundError("Document", document_id)
        return document

    def _get_visible_version(self, ctx: RequestContext, version_id: UUID) -> DocumentVersion:
        version = self.documents.get_version(version_id)
        if version is None or self.documents.get_document(version.document_id, org_id=ctx.org_id) is None:
            raise NotFoundError("Version", version_id)
        return version

    def _next_version(self, document: Document) -> int:
        # Guard against a pointer that lags the highest stored version
        return max(document.current_version, self.documents.max_version(document.id)) + 1

    def _fanout(
        self,
        ctx: RequestContext,
        document: Document,
        event_type: EventType,
        payload: dict[str, Any],
        version: int,
    ) -> None:
        self.fanout.to_resource(
            ctx.org_id,
            str(document.id),
            DOCUMENT_RESOURCE_TYPE,
            event_type,
            payload,
            ctx.user_id,
            document_id=document.id,
            version=version,
        )

    def create_version(
        self,
        ctx: RequestContext,
        document_id: UUID,
        content: str,
        changes: list[Change | dict[str, Any]] | None = None,
        title: str | None = None,
        summary: str | None = None,
        change_type: ChangeType = ChangeType.edit,
        is_auto_save: bool = False,
    ) -> DocumentVersion:
        """Write the next version and move the document to it.

        Non-autosave writes also prune old edit versions.

        Raises:
            NotFoundError: Document not in the caller's org
            ConflictError: A concurrent writer took the same version number
        """
        document = self.get_document(ctx, document_id)
        changes = changes or []
        lines_added, lines_removed = count_line_changes(changes)
        number = self._next_version(document)

        version = DocumentVersion(
            id=uuid.uuid4(),
            document_id=document.id,
            version=number,
            title=title or f"Version {number}",
            summary=summary,
            content=content,
            change_type=change_type,
            lines_added=lines_added,
            lines_removed=lines_removed,
            author_id=ctx.user_id,
            created_at=self.clock.now(),
        )
        document, stored = self.documents.append_version(version)
        self.fanout.event_log.counters.inc_version(stored.change_type.value)

        self._fanout(
            ctx,
            document,
            EventType.version_create,
            {
                "document_id": str(document.id),
                "version": stored.version,
                "title": stored.title,
                "change_count": len(changes),
                "is_auto_save": is_auto_save,
            },
            stored.version,
        )

        if not is_auto_save:
            self.cleanup_auto_save_versions(document.id)
        return stored

    def restore_version(
        self, ctx: RequestContext, version_id: UUID, create_backup: bool = True
    ) -> RestoreResult:
        """Restore a document to an earlier version.

        With a backup, the pre-restore content is saved at current+1 and
        the restore is written at current+2; otherwise the restore is at
        current+1. All writes are applied in one store call.
        """
        target = self._get_visible_version(ctx, version_id)
        document = self.get_document(ctx, target.document_id)
        base = max(document.current_version, self.documents.max_version(document.id))
        now = self.clock.now()

        backup = None
        if create_backup:
            backup = DocumentVersion(
                id=uuid.uuid4(),
                document_id=document.id,
                version=base + 1,
                title=f"Backup before restore to v{target.version}",
                summary=f"Automatic backup created before restoring to version {target.version}",
                content=document.content,
                change_type=ChangeType.backup,
                author_id=ctx.user_id,
                created_at=now,
            )

        restore = DocumentVersion(
            id=uuid.uuid4(),
            document_id=document.id,
            version=base + (2 if create_backup else 1),
            title=f"Restored to v{target.version}",
            summary=f"Document restored to version {target.version}",
            content=target.content,
            change_type=ChangeType.restore,
            author_id=ctx.user_id,
            created_at=now,
        )

        restored = self.documents.apply_restore(backup, restore)
        counters = self.fanout.event_log.counters
        if backup is not None:
            counters.inc_version(ChangeType.backup.value)
        counters.inc_version(ChangeType.restore.value)

        self._fanout(
            ctx,
            restored,
            EventType.version_restore,
            {
                "document_id": str(document.id),
                "restored_to_version": target.version,
                "new_version": restore.version,
                "create_backup": create_backup,
            },
            restore.version,
        )
        self.op_logger.log_operation(
            "restore_version",
            ctx.user_id,
            document_id=document.id,
            restored_from=target.version,
            new_version=restore.version,
        )
        return RestoreResult(
            document=restored,
            restored_from=target.version,
            restore_version=restore,
            backup_version=backup,
        )

    def delete_version(self, ctx: RequestContext, version_id: UUID) -> DocumentVersion:
        """Delete a non-current version.

        The caller must be owner or admin of some session bound to the document.

        Raises:
            NotFoundError: Version not visible
            ValidationError: Version is the document's current version
            PermissionDeniedError: Caller lacks owner/admin on an active session of the document
        """
        version = self._get_visible_version(ctx, version_id)
        document = self.get_document(ctx, version.document_id)
        if version.version == document.current_version:
            raise ValidationError("Cannot delete the current version", version=version.version)

        bound = self.sessions.list_active_for_resource(
            str(document.id), DOCUMENT_RESOURCE_TYPE, org_id=ctx.org_id
        )
        if not any(
            has_role(self.sessions.list_participants(s.id), ctx.user_id, ADMIN_ROLES) for s in bound
        ):
            raise PermissionDeniedError(
                "Insufficient permissions to delete version", version_id=version_id
            )

        self.documents.delete_versions([version.id])
        self.op_logger.log_operation(
            "delete_version", ctx.user_id, document_id=document.id, version=version.version
        )
        return version

    def cleanup_auto_save_versions(self, document_id: UUID, keep_count: int | None = None) -> int:
        """Keep only the keep_count highest edit versions; never the current one.

        Returns:
            Number of versions deleted
        """
        keep_count = keep_count if keep_count is not None else self.settings.autosave_keep_count
        document = self.documents.get_document(document_id)
        if document is None:
            raise NotFoundError("Document", document_id)

        edits, _ = self.documents.list_versions(
            document_id, HistoryQuery(change_type=ChangeType.edit, limit=1_000_000)
        )
        doomed = [
            v.id for v in edits[keep_count:] if v.version != document.current_version
        ]
        if not doomed:
            return 0
        return self.documents.delete_versions(doomed)

    def get_version_diff(
        self, ctx: RequestContext, version_a_id: UUID, version_b_id: UUID
    ) -> VersionDiff:
        """Raw contents of two versions plus their recorded line stats."""
        a = self._get_visible_version(ctx, version_a_id)
        b = self._get_visible_version(ctx, version_b_id)
        return VersionDiff(
            version_a=a.version,
            version_b=b.version,
            content_a=a.content,
            content_b=b.content,
            stats_a=DiffStats.of(a),
            stats_b=DiffStats.of(b),
        )

    def get_document_history(
        self, ctx: RequestContext, document_id: UUID, query: HistoryQuery | None = None
    ) -> Page[VersionHistoryEntry]:
        """Versions of a document, highest first, with per-entry diff stats."""
        query = query or HistoryQuery(limit=self.settings.versions_page_limit)
        if query.limit < 1 or query.offset < 0:
            raise ValidationError("Invalid pagination", limit=query.limit, offset=query.offset)
        document = self.get_document(ctx, document_id)
        query = replace(query, since=as_naive_utc(query.since), until=as_naive_utc(query.until))

        versions, total = self.documents.list_versions(document_id, query)
        entries = [
            VersionHistoryEntry(
                version=v if query.include_content else v.model_copy(update={"content": None}),
                diff_stats=DiffStats.of(v),
                is_latest=v.version == document.current_version,
            )
            for v in versions
        ]
        return Page.build(entries, total, query.limit, query.offset)

    def reconcile_document(self, ctx: RequestContext, document_id: UUID) -> Document:
        """Point the document at its highest version if the two disagree.

        Idempotent; a consistent document is returned unchanged.
        """
        document = self.get_document(ctx, document_id)
        latest = self.documents.latest_version(document_id)
        if latest is None or latest.version == document.current_version:
            return document

        repaired = self.documents.set_pointer(
            document_id, latest.version, latest.content, self.clock.now()
        )
        self.op_logger.log_operation(
            "reconcile_document",
            ctx.user_id,
            outcome="repaired",
            document_id=document_id,
            previous_version=document.current_version,
            current_version=latest.version,
        )
        return repaired
