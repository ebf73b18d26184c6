"""Upload, listing and soft-delete of stored files.

Every write touches two stores in a fixed order (blob first, record
second) with no rollback; a failure between the two steps leaves an
orphan that ``reconciliation.audit_files`` reports.
"""

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from filevault.database import commit_or_fail, record_store_call
from filevault.exceptions import Conflict, NotFound, StoreFailure, ValidationError
from filevault.logic.sanitize import require_sanitized_filename
from filevault.models.file import StoredFile
from filevault.models.user import User
from filevault.schemas.file import FileExistenceResponse
from filevault.storage.s3 import DEFAULT_CONTENT_TYPE, BlobInfo, S3Storage

logger = logging.getLogger(__name__)

DISALLOWED_CONTENT_TYPE_PREFIXES = ("video/",)


def is_disallowed_content_type(content_type: str | None) -> bool:
    return (content_type or "").strip().lower().startswith(DISALLOWED_CONTENT_TYPE_PREFIXES)


async def upload_file(
    session: AsyncSession,
    storage: S3Storage,
    *,
    owner: User,
    filename: str,
    content_type: str | None,
    data: bytes,
) -> BlobInfo:
    if not data:
        raise ValidationError("No file was provided")
    if is_disallowed_content_type(content_type):
        raise ValidationError("Video files are not allowed")

    blob_name = require_sanitized_filename(filename)
    content_type = content_type or DEFAULT_CONTENT_TYPE

    # check-then-act; two concurrent uploads of one name can both pass
    if storage.exists(key=blob_name):
        raise Conflict(f"A file with name '{filename}' already exists")

    blob = storage.put(key=blob_name, data=data, content_type=content_type)

    session.add(StoredFile(
        owner_id=owner.id,
        filename=filename,
        blob_name=blob_name,
        content_type=content_type,
        size=len(data),
        blob_uri=blob.uri,
        uploaded_at=datetime.now(timezone.utc),
    ))
    try:
        await commit_or_fail(session, "insert")
    except StoreFailure:
        logger.error("Blob %s written without a record; left for the audit sweep", blob_name)
        raise

    logger.info("File %s uploaded as %s by user %s (%d bytes)", filename, blob_name, owner.id, len(data))
    return blob


def list_blobs(storage: S3Storage) -> list[BlobInfo]:
    return storage.list_blobs(with_metadata=True)


async def list_user_files(session: AsyncSession, owner_id: uuid.UUID) -> list[StoredFile]:
    with record_store_call("list"):
        result = await session.execute(
            select(StoredFile)
            .where(StoredFile.owner_id == owner_id, StoredFile.is_deleted.is_(False))
            .order_by(StoredFile.uploaded_at.desc())
        )
        return list(result.scalars().all())


async def soft_delete_file(
    session: AsyncSession,
    storage: S3Storage,
    *,
    blob_name: str,
    owner_id: uuid.UUID,
) -> StoredFile:
    # a live version wins over soft-deleted history of the same name
    with record_store_call("lookup"):
        result = await session.execute(
            select(StoredFile)
            .where(StoredFile.blob_name == blob_name, StoredFile.owner_id == owner_id)
            .order_by(StoredFile.is_deleted.asc(), StoredFile.uploaded_at.desc())
            .limit(1)
        )
        stored_file = result.scalar_one_or_none()
    if stored_file is None:
        raise NotFound("File not found")

    stored_file.soft_delete()

    if storage.exists(key=blob_name):
        storage.delete(key=blob_name)

    await commit_or_fail(session, "soft delete")

    logger.info("File %s deleted by user %s at %s", blob_name, owner_id, stored_file.deleted_at)
    return stored_file


async def check_file_existence(session: AsyncSession, storage: S3Storage, blob_name: str) -> FileExistenceResponse:
    with record_store_call("lookup"):
        result = await session.execute(
            select(StoredFile)
            .where(StoredFile.blob_name == blob_name, StoredFile.is_deleted.is_(False))
            .order_by(StoredFile.uploaded_at.desc())
            .limit(1)
        )
        record = result.scalar_one_or_none()
    blob = storage.head(key=blob_name) if storage.exists(key=blob_name) else None

    return FileExistenceResponse(
        file_name=blob_name,
        exists_in_database=record is not None,
        exists_in_storage=blob is not None,
        content_type=blob.content_type if blob else (record.content_type if record else None),
        size=blob.size if blob else (record.size if record else 0),
        upload_date=record.uploaded_at if record else None,
        uri=blob.uri if blob else (record.blob_uri if record else None),
    )
