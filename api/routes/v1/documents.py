"""
Document endpoints.

Upload and manage files attached to candidates, applications, placements
and recruiters. Candidate documents contain PII.
"""

from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Path, Query, Response, UploadFile, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_document_storage, require_active_user
from api.services import documents as document_service
from core.middleware.authorization import Permission, require_permission
from database.engine import get_db
from database.models.documents import DocumentStatus
from database.models.identity import User
from workers.tasks.events import dispatch_outbox_relay

router = APIRouter(prefix="/documents", tags=["documents"])


class UpdateDocumentStatusRequest(BaseModel):
    """Request model for recording processing progress."""
    status: DocumentStatus
    metadata: Optional[dict[str, Any]] = Field(None, description="Merged into existing metadata")


@router.post(
    "/upload",
    status_code=status.HTTP_201_CREATED,
    summary="Upload Document",
    description="Upload a file for an entity. Requires document:upload permission.",
    dependencies=[Depends(require_permission(Permission.DOCUMENT_UPLOAD))],
)
async def upload_document(
    file: UploadFile = File(..., description="File to upload"),
    entity_type: str = Form(..., description="candidate, application, placement or recruiter"),
    entity_id: str = Form(..., description="ID of the owning entity"),
    document_type: str = Form("resume", description="resume, cover_letter, contract, ..."),
    current_user: User = Depends(require_active_user),
    storage=Depends(get_document_storage),
    db: AsyncSession = Depends(get_db),
):
    data = await file.read()
    result = await document_service.upload_document(
        db,
        data=data,
        filename=file.filename or "upload",
        entity_type=entity_type,
        entity_id=entity_id,
        document_type=document_type,
        content_type=file.content_type,
        uploaded_by=current_user.id,
        storage=storage,
    )
    dispatch_outbox_relay()
    return result


@router.get(
    "",
    summary="List Documents",
    description="List documents for an entity. Requires document:read permission.",
    dependencies=[Depends(require_permission(Permission.DOCUMENT_READ))],
)
async def list_documents(
    entity_type: Optional[str] = Query(None, description="Filter by entity type"),
    entity_id: Optional[str] = Query(None, description="Filter by entity ID"),
    document_type: Optional[str] = Query(None, description="Filter by document type"),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    return await document_service.list_documents(
        db,
        entity_type=entity_type,
        entity_id=entity_id,
        document_type=document_type,
        limit=limit,
        offset=offset,
    )


@router.get(
    "/{document_id}",
    summary="Get Document",
    description="Get document metadata and a signed download URL. Requires document:read permission.",
    dependencies=[Depends(require_permission(Permission.DOCUMENT_READ))],
)
async def get_document(
    document_id: UUID = Path(..., description="Document ID"),
    storage=Depends(get_document_storage),
    db: AsyncSession = Depends(get_db),
):
    return await document_service.get_document(db, document_id, storage)


@router.patch(
    "/{document_id}/status",
    summary="Update Document Status",
    description="Record processing status and metadata. Requires document:manage permission.",
    dependencies=[Depends(require_permission(Permission.DOCUMENT_MANAGE))],
)
async def update_document_status(
    request: UpdateDocumentStatusRequest,
    document_id: UUID = Path(..., description="Document ID"),
    db: AsyncSession = Depends(get_db),
):
    return await document_service.update_document_status(
        db, document_id, request.status.value, metadata=request.metadata
    )


@router.delete(
    "/{document_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Document",
    description="Delete a document and its stored file. Requires document:manage permission.",
    dependencies=[Depends(require_permission(Permission.DOCUMENT_MANAGE))],
)
async def delete_document(
    document_id: UUID = Path(..., description="Document ID"),
    storage=Depends(get_document_storage),
    db: AsyncSession = Depends(get_db),
):
    await document_service.delete_document(db, document_id, storage=storage)
    dispatch_outbox_relay()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
