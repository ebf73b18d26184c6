from fastapi import APIRouter, Depends, File, Query, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from filevault.core.deps import get_storage
from filevault.core.rbac import require_admin, require_user
from filevault.database import get_async_session
from filevault.logic import file_operations, reconciliation
from filevault.models.user import User
from filevault.schemas.file import (
    BlobItemResponse,
    DeleteFileResponse,
    FileAuditResponse,
    FileExistenceResponse,
    FileInventoryResponse,
    FileTransferResponse,
    StoredFileResponse,
    TransferRequest,
)
from filevault.storage.s3 import BlobInfo, S3Storage


router = APIRouter(
    prefix="/api/storage",
    tags=["Storage"]
)


def _blob_item(blob: BlobInfo) -> BlobItemResponse:
    return BlobItemResponse(
        blob_name=blob.name,
        content_type=blob.content_type,
        size=blob.size,
        last_modified=blob.last_modified,
        uri=blob.uri,
    )

# -------------Upload files -----------------

@router.post("/upload", response_model=BlobItemResponse)
async def upload_file(
    file: UploadFile = File(...),
    session: AsyncSession = Depends(get_async_session),
    storage: S3Storage = Depends(get_storage),
    user: User = Depends(require_user),
):
    data = await file.read()
    blob = await file_operations.upload_file(
        session,
        storage,
        owner=user,
        filename=file.filename or "",
        content_type=file.content_type,
        data=data,
    )
    return _blob_item(blob)

#-----------Listings-----------------

@router.get("/azure-files", response_model=list[BlobItemResponse])
async def list_blob_files(
    storage: S3Storage = Depends(get_storage),
    user: User = Depends(require_user),
):
    return [_blob_item(b) for b in file_operations.list_blobs(storage)]


@router.get("/my-files", response_model=list[StoredFileResponse])
async def my_files(
    session: AsyncSession = Depends(get_async_session),
    user: User = Depends(require_user),
):
    return await file_operations.list_user_files(session, user.id)

#-----------Delete-------------

@router.delete("/files/{file_name}", response_model=DeleteFileResponse)
async def delete_file(
    file_name: str,
    session: AsyncSession = Depends(get_async_session),
    storage: S3Storage = Depends(get_storage),
    user: User = Depends(require_user),
):
    stored_file = await file_operations.soft_delete_file(
        session, storage, blob_name=file_name, owner_id=user.id
    )
    return DeleteFileResponse(
        message="File deleted successfully",
        filename=stored_file.filename,
        deleted_at=stored_file.deleted_at,
    )

#-----------Admin utilities--------------------

@router.get("/audit-files", response_model=FileAuditResponse)
async def audit_files(
    cleanup: bool = Query(False),
    session: AsyncSession = Depends(get_async_session),
    storage: S3Storage = Depends(get_storage),
    user: User = Depends(require_admin),
):
    return await reconciliation.audit_files(session, storage, cleanup=cleanup)


@router.post("/transfer-ownership", response_model=FileTransferResponse)
async def transfer_ownership(
    payload: TransferRequest,
    session: AsyncSession = Depends(get_async_session),
    user: User = Depends(require_admin),
):
    return await reconciliation.transfer_ownership(
        session, new_user_id=payload.new_user_id, blob_names=payload.files
    )


@router.get("/admin/file-inventory", response_model=FileInventoryResponse)
async def file_inventory(
    session: AsyncSession = Depends(get_async_session),
    storage: S3Storage = Depends(get_storage),
    user: User = Depends(require_admin),
):
    return await reconciliation.file_inventory(session, storage)


@router.get("/admin/files/{file_name}/existence", response_model=FileExistenceResponse)
async def file_existence(
    file_name: str,
    session: AsyncSession = Depends(get_async_session),
    storage: S3Storage = Depends(get_storage),
    user: User = Depends(require_admin),
):
    return await file_operations.check_file_existence(session, storage, file_name)
