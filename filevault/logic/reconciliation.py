"""Reconciliation between the blob bucket and the file records.

The two stores are mutated independently, so they drift: a record insert
can fail after its blob was written, a blob can be removed out of band.
This module reports that drift (``audit_files``, ``file_inventory``),
optionally repairs it, and reassigns record ownership in bulk.

Nothing here is transactional across stores. Cleanup is idempotent: a
partially applied cleanup is finished by running it again.
"""

import logging
import uuid
from collections import defaultdict
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from filevault.exceptions import NotFound
from filevault.database import commit_or_fail, record_store_call
from filevault.models.file import StoredFile
from filevault.models.user import User
from filevault.schemas.file import (
    FileAuditResponse,
    FileInventoryItem,
    FileInventoryResponse,
    FileOwner,
    FileTransferResponse,
    FileTransferResult,
    InventoryStatus,
    OrphanedFile,
    OrphanLocation,
)
from filevault.storage.s3 import S3Storage

logger = logging.getLogger(__name__)


async def _live_blob_names(session: AsyncSession) -> set[str]:
    with record_store_call("list"):
        result = await session.execute(
            select(StoredFile.blob_name).where(StoredFile.is_deleted.is_(False)).distinct()
        )
        return set(result.scalars().all())


async def audit_files(session: AsyncSession, storage: S3Storage, *, cleanup: bool = False) -> FileAuditResponse:
    audit_time = datetime.now(timezone.utc)
    record_names = await _live_blob_names(session)
    blobs = storage.list_blobs()
    blob_names = {b.name for b in blobs}

    orphans = [
        OrphanedFile(file_name=b.name, location=OrphanLocation.BLOB, size=b.size, last_modified=b.last_modified)
        for b in blobs
        if b.name not in record_names
    ]
    orphans.extend(
        OrphanedFile(file_name=name, location=OrphanLocation.RECORD, size=0, last_modified=audit_time)
        for name in sorted(record_names - blob_names)
    )

    if cleanup and orphans:
        await _cleanup(session, storage, orphans)

    return FileAuditResponse(
        orphaned_files=orphans,
        total_orphaned=len(orphans),
        cleanup_performed=cleanup,
        audit_time=audit_time,
    )


async def _cleanup(session: AsyncSession, storage: S3Storage, orphans: list[OrphanedFile]) -> None:
    record_orphans = []
    for orphan in orphans:
        if orphan.location is OrphanLocation.BLOB:
            storage.delete(key=orphan.file_name)
            logger.info("Audit cleanup removed orphan blob %s", orphan.file_name)
        else:
            record_orphans.append(orphan.file_name)

    if not record_orphans:
        return

    # soft-deleted history of the same name stays
    with record_store_call("audit cleanup"):
        result = await session.execute(
            select(StoredFile).where(StoredFile.blob_name.in_(record_orphans), StoredFile.is_deleted.is_(False))
        )
        for stored_file in result.scalars().all():
            await session.delete(stored_file)
            logger.info("Audit cleanup removed orphan record %s (%s)", stored_file.id, stored_file.blob_name)

    await commit_or_fail(session, "audit cleanup")


async def transfer_ownership(
    session: AsyncSession,
    *,
    new_user_id: uuid.UUID,
    blob_names: list[str],
) -> FileTransferResponse:
    with record_store_call("lookup"):
        new_owner = await session.get(User, new_user_id)
    if new_owner is None:
        raise NotFound("Target user not found")

    results = []
    for blob_name in blob_names:
        with record_store_call("lookup"):
            result = await session.execute(
                select(StoredFile)
                .where(StoredFile.blob_name == blob_name, StoredFile.is_deleted.is_(False))
                .order_by(StoredFile.uploaded_at.desc())
                .limit(1)
            )
            stored_file = result.scalar_one_or_none()
        if stored_file is None:
            results.append(FileTransferResult(
                file_name=blob_name, success=False, message="File not found or already deleted"
            ))
            continue

        previous_owner = stored_file.owner_id
        stored_file.owner_id = new_owner.id
        results.append(FileTransferResult(
            file_name=blob_name, success=True, message=f"Transferred to {new_owner.username}"
        ))
        logger.info("File %s transferred from user %s to user %s", blob_name, previous_owner, new_owner.id)

    await commit_or_fail(session, "ownership transfer")

    return FileTransferResponse(
        results=results,
        success_count=sum(1 for r in results if r.success),
        new_user_id=new_owner.id,
        transfer_date=datetime.now(timezone.utc),
    )


def classify(history: list[StoredFile], in_storage: bool) -> InventoryStatus | None:
    """Status of one blob name given its record history, most recent first.

    Returns None for a name that is neither stored nor live in the records.
    """
    latest = history[0] if history else None
    if in_storage:
        if latest is None:
            return InventoryStatus.ORPHANED_IN_STORAGE
        if latest.is_deleted:
            return InventoryStatus.MARKED_AS_DELETED
        return InventoryStatus.ACTIVE
    if latest is not None and not latest.is_deleted:
        return InventoryStatus.MISSING_FROM_STORAGE
    return None


def _owner_of(stored_file: StoredFile | None) -> FileOwner | None:
    if stored_file is None or stored_file.owner is None:
        return None
    return FileOwner(id=stored_file.owner.id, username=stored_file.owner.username)


async def file_inventory(session: AsyncSession, storage: S3Storage) -> FileInventoryResponse:
    scan_time = datetime.now(timezone.utc)

    with record_store_call("inventory"):
        result = await session.execute(
            select(StoredFile)
            .options(selectinload(StoredFile.owner))
            .execution_options(populate_existing=True)
            .order_by(StoredFile.blob_name, StoredFile.uploaded_at.desc())
        )
        records = list(result.scalars().all())
    histories: dict[str, list[StoredFile]] = defaultdict(list)
    for stored_file in records:
        histories[stored_file.blob_name].append(stored_file)

    items = []
    blobs = storage.list_blobs(with_metadata=True)
    for blob in blobs:
        history = histories.get(blob.name, [])
        latest = history[0] if history else None
        items.append(FileInventoryItem(
            blob_name=blob.name,
            uri=blob.uri,
            content_type=blob.content_type,
            size=blob.size,
            last_modified_in_storage=blob.last_modified,
            upload_name=latest.filename if latest else None,
            upload_date=latest.uploaded_at if latest else None,
            is_deleted=latest.is_deleted if latest else False,
            deleted_date=latest.deleted_at if latest else None,
            owner=_owner_of(latest),
            status=classify(history, in_storage=True),
            version_count=len(history),
            has_deleted_versions=any(f.is_deleted for f in history),
        ))

    stored_names = {b.name for b in blobs}
    for blob_name, history in histories.items():
        if blob_name in stored_names:
            continue
        status = classify(history, in_storage=False)
        if status is None:
            continue
        latest = history[0]
        items.append(FileInventoryItem(
            blob_name=blob_name,
            uri=latest.blob_uri or storage.url_for(blob_name),
            content_type=latest.content_type,
            size=latest.size,
            upload_name=latest.filename,
            upload_date=latest.uploaded_at,
            is_deleted=latest.is_deleted,
            deleted_date=latest.deleted_at,
            owner=_owner_of(latest),
            status=status,
            version_count=len(history),
            has_deleted_versions=any(f.is_deleted for f in history),
        ))

    return FileInventoryResponse(
        files=items,
        total_count=len(items),
        total_size=sum(item.size for item in items),
        scan_time=scan_time,
    )
