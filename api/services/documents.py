"""Document upload and retrieval service functions."""

from typing import Any, Optional
from uuid import UUID, uuid4
import logging
import re

from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.events import record_event
from core.exceptions import ValidationError, NotFoundError
from core.storage import LocalStorage, S3Storage, get_storage
from core.utils.datetime import isoformat
from database.models.documents import Document, DocumentStatus

logger = logging.getLogger(__name__)

ENTITY_TYPES = frozenset({"candidate", "application", "placement", "job", "recruiter"})

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def safe_filename(filename: str) -> str:
    """Strip directories and unusual characters from an uploaded filename."""
    name = filename.replace("\\", "/").rsplit("/", 1)[-1]
    name = _UNSAFE_FILENAME_CHARS.sub("_", name).strip("._")
    return name[:200] or "upload"


def document_to_dict(document: Document) -> dict[str, Any]:
    return {
        "id": str(document.id),
        "entity_type": document.entity_type,
        "entity_id": document.entity_id,
        "document_type": document.document_type,
        "filename": document.filename,
        "content_type": document.content_type,
        "file_size": document.file_size,
        "storage_key": document.storage_key,
        "processing_status": document.processing_status.value,
        "metadata": document.metadata_ or {},
        "uploaded_by_user_id": (
            str(document.uploaded_by_user_id) if document.uploaded_by_user_id else None
        ),
        "created_at": isoformat(document.created_at),
    }


async def upload_document(
    db: AsyncSession,
    data: bytes,
    filename: str,
    entity_type: str,
    entity_id: str,
    document_type: str,
    content_type: Optional[str] = None,
    uploaded_by: Optional[UUID] = None,
    storage: Optional[LocalStorage | S3Storage] = None,
) -> dict[str, Any]:
    """
    Store an uploaded file and create its document row in pending status.

    The stored object is removed again if the row cannot be committed.
    """
    if entity_type not in ENTITY_TYPES:
        raise ValidationError(
            f"Unknown entity type '{entity_type}'",
            details={"allowed_entity_types": sorted(ENTITY_TYPES)},
        )
    if not data:
        raise ValidationError("Uploaded file is empty")
    if len(data) > settings.max_document_size:
        raise ValidationError(
            f"File exceeds the maximum size of {settings.max_document_size // (1024 * 1024)}MB",
            details={"file_size": len(data), "max_size": settings.max_document_size},
        )

    storage = storage or get_storage()
    clean_name = safe_filename(filename)
    storage_key = f"{entity_type}/{entity_id}/{uuid4().hex}-{clean_name}"
    await storage.save(data, storage_key, content_type)

    document = Document(
        entity_type=entity_type,
        entity_id=str(entity_id),
        document_type=document_type,
        filename=clean_name,
        content_type=content_type,
        file_size=len(data),
        storage_key=storage_key,
        processing_status=DocumentStatus.PENDING,
        metadata_={},
        uploaded_by_user_id=uploaded_by,
    )
    db.add(document)

    try:
        await db.flush()
        record_event(db, "document.uploaded", {
            "document_id": document.id,
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "document_type": document_type,
            "file_size": len(data),
        })
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        await storage.delete(storage_key)
        raise

    logger.info(f"Uploaded document {document.id} ({len(data)} bytes) for {entity_type}")
    return document_to_dict(document)


async def get_document(
    db: AsyncSession,
    document_id: UUID,
    storage: Optional[LocalStorage | S3Storage] = None,
) -> dict[str, Any]:
    """Document metadata with a short-lived download URL."""
    document = await db.get(Document, document_id)
    if not document:
        raise NotFoundError(f"Document {document_id} not found")

    storage = storage or get_storage()
    data = document_to_dict(document)
    data["download_url"] = await storage.get_url(
        document.storage_key, expires_in=settings.document_url_expiry_seconds
    )
    data["download_url_expires_in"] = settings.document_url_expiry_seconds
    return data


async def list_documents(
    db: AsyncSession,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    document_type: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> dict[str, Any]:
    """List documents filtered by owning entity and type."""
    query = select(Document)
    if entity_type:
        query = query.where(Document.entity_type == entity_type)
    if entity_id:
        query = query.where(Document.entity_id == str(entity_id))
    if document_type:
        query = query.where(Document.document_type == document_type)

    total = (
        await db.execute(select(func.count()).select_from(query.subquery()))
    ).scalar() or 0
    result = await db.execute(
        query.order_by(Document.created_at.desc()).limit(limit).offset(offset)
    )

    return {
        "documents": [document_to_dict(d) for d in result.scalars().all()],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


async def update_document_status(
    db: AsyncSession,
    document_id: UUID,
    status: str,
    metadata: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """Record processing progress; metadata is merged into the existing metadata."""
    document = await db.get(Document, document_id)
    if not document:
        raise NotFoundError(f"Document {document_id} not found")
    try:
        document.processing_status = DocumentStatus(status)
    except ValueError:
        raise ValidationError(f"Unknown document status '{status}'")

    if metadata:
        document.metadata_ = {**(document.metadata_ or {}), **metadata}

    await db.commit()
    return document_to_dict(document)


async def delete_document(
    db: AsyncSession,
    document_id: UUID,
    storage: Optional[LocalStorage | S3Storage] = None,
) -> None:
    """Delete the stored object and the document row."""
    document = await db.get(Document, document_id)
    if not document:
        raise NotFoundError(f"Document {document_id} not found")

    storage = storage or get_storage()
    await storage.delete(document.storage_key)

    await db.delete(document)
    record_event(db, "document.deleted", {
        "document_id": document_id,
        "entity_type": document.entity_type,
        "entity_id": document.entity_id,
    })
    await db.commit()
    logger.info(f"Deleted document {document_id}")
