"""Document and version snapshot models."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ChangeType(str, Enum):
    """Why a version was written."""

    edit = "edit"
    backup = "backup"
    restore = "restore"


class Change(BaseModel):
    """One entry of a caller-supplied change list.

    Only the type tag is interpreted: insert entries count as added lines,
    delete entries as removed lines.
    """

    model_config = ConfigDict(extra="allow")

    type: str
    position: int | None = None
    content: str | None = None


class Document(BaseModel):
    """Shared document with a pointer to its current version."""

    id: UUID
    org_id: UUID
    title: str
    content: str = ""
    current_version: int = Field(default=0, ge=0)
    created_by: UUID
    created_at: datetime
    updated_at: datetime


class DocumentVersion(BaseModel):
    """Immutable snapshot of a document's content.

    (document_id, version) is unique and version numbers strictly increase.
    """

    id: UUID
    document_id: UUID
    version: int = Field(..., ge=1)
    title: str
    summary: str | None = None
    content: str | None = None
    change_type: ChangeType = ChangeType.edit
    lines_added: int = Field(default=0, ge=0)
    lines_removed: int = Field(default=0, ge=0)
    author_id: UUID
    created_at: datetime


class DiffStats(BaseModel):
    """Line-count statistics recorded for a version."""

    additions: int = 0
    deletions: int = 0
    modifications: int = 0
    total_changes: int = 0

    @classmethod
    def of(cls, version: DocumentVersion) -> "DiffStats":
        return cls(
            additions=version.lines_added,
            deletions=version.lines_removed,
            total_changes=version.lines_added + version.lines_removed,
        )


class VersionHistoryEntry(BaseModel):
    """Version as listed in a document history."""

    version: DocumentVersion
    diff_stats: DiffStats
    is_latest: bool = False


class VersionDiff(BaseModel):
    """Raw contents of two versions; line-level diffing is left to callers."""

    version_a: int
    version_b: int
    content_a: str | None
    content_b: str | None
    stats_a: DiffStats
    stats_b: DiffStats


class RestoreResult(BaseModel):
    """Outcome of restoring a document to an earlier version."""

    document: Document
    restored_from: int
    restore_version: DocumentVersion
    backup_version: DocumentVersion | None = None
