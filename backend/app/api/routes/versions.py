"""Document and version endpoints."""

import uuid
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from backend.app.api.auth import get_current_context
from backend.app.api.deps import get_services
from backend.app.collaboration.container import CollaborationServices
from backend.app.db.context import RequestContext
from backend.app.db.repositories import HistoryQuery
from backend.app.models.common import Page
from backend.app.models.versions import (
    Change,
    ChangeType,
    Document,
    DocumentVersion,
    RestoreResult,
    VersionDiff,
    VersionHistoryEntry,
)

router = APIRouter(tags=["versions"])


class CreateDocumentRequest(BaseModel):
    """Request body for POST /documents."""

    title: str = Field(..., min_length=1)
    content: str = ""


class CreateVersionRequest(BaseModel):
    """Request body for POST /documents/{document_id}/versions."""

    content: str
    changes: list[Change] = Field(default_factory=list)
    title: str | None = None
    summary: str | None = None
    is_auto_save: bool = False


class RestoreRequest(BaseModel):
    """Request body for POST /versions/{version_id}/restore."""

    create_backup: bool = True


@router.post("/documents", response_model=Document, status_code=status.HTTP_201_CREATED)
def create_document(
    request: CreateDocumentRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[CollaborationServices, Depends(get_services)],
) -> Document:
    """Create a document in the caller's org."""
    return services.versions.create_document(ctx, request.title, request.content)


@router.get("/documents/{document_id}", response_model=Document)
def get_document(
    document_id: uuid.UUID,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[CollaborationServices, Depends(get_services)],
) -> Document:
    """Document with its live content and version pointer."""
    return services.versions.get_document(ctx, document_id)


@router.post(
    "/documents/{document_id}/versions",
    response_model=DocumentVersion,
    status_code=status.HTTP_201_CREATED,
)
def create_version(
    document_id: uuid.UUID,
    request: CreateVersionRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[CollaborationServices, Depends(get_services)],
) -> DocumentVersion:
    """Write the next version of a document."""
    return services.versions.create_version(
        ctx,
        document_id,
        request.content,
        changes=list(request.changes),
        title=request.title,
        summary=request.summary,
        change_type=ChangeType.edit,
        is_auto_save=request.is_auto_save,
    )


@router.get("/documents/{document_id}/versions", response_model=Page[VersionHistoryEntry])
def get_document_history(
    document_id: uuid.UUID,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[CollaborationServices, Depends(get_services)],
    author_id: uuid.UUID | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    limit: Annotated[int | None, Query(ge=1)] = None,
    offset: Annotated[int, Query(ge=0)] = 0,
    include_content: bool = False,
) -> Page[VersionHistoryEntry]:
    """Version history, highest version first."""
    return services.versions.get_document_history(
        ctx,
        document_id,
        HistoryQuery(
            author_id=author_id,
            since=since,
            until=until,
            limit=limit or services.versions.settings.versions_page_limit,
            offset=offset,
            include_content=include_content,
        ),
    )


@router.post("/documents/{document_id}/reconcile", response_model=Document)
def reconcile_document(
    document_id: uuid.UUID,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[CollaborationServices, Depends(get_services)],
) -> Document:
    """Repair a document whose pointer disagrees with its highest version."""
    return services.versions.reconcile_document(ctx, document_id)


@router.get("/versions/diff", response_model=VersionDiff)
def get_version_diff(
    a: uuid.UUID,
    b: uuid.UUID,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[CollaborationServices, Depends(get_services)],
) -> VersionDiff:
    """Raw contents and line stats of two versions."""
    return services.versions.get_version_diff(ctx, a, b)


@router.post("/versions/{version_id}/restore", response_model=RestoreResult)
def restore_version(
    version_id: uuid.UUID,
    request: RestoreRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[CollaborationServices, Depends(get_services)],
) -> RestoreResult:
    """Restore a document to an earlier version."""
    return services.versions.restore_version(ctx, version_id, create_backup=request.create_backup)


@router.delete("/versions/{version_id}", response_model=DocumentVersion)
def delete_version(
    version_id: uuid.UUID,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[CollaborationServices, Depends(get_services)],
) -> DocumentVersion:
    """Delete a non-current version (owner/admin of a document session)."""
    return services.versions.delete_version(ctx, version_id)
