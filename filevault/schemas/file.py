import enum
import uuid
from datetime import datetime

from filevault.schemas.base import CamelModel


class BlobItemResponse(CamelModel):
    blob_name: str
    content_type: str
    size: int
    last_modified: datetime
    uri: str


class StoredFileResponse(CamelModel):
    id: uuid.UUID
    filename: str
    blob_name: str
    content_type: str
    size: int
    uploaded_at: datetime


class DeleteFileResponse(CamelModel):
    message: str
    filename: str
    deleted_at: datetime


class OrphanLocation(str, enum.Enum):
    BLOB = "blob"
    RECORD = "record"


class OrphanedFile(CamelModel):
    file_name: str
    location: OrphanLocation
    size: int
    last_modified: datetime


class FileAuditResponse(CamelModel):
    orphaned_files: list[OrphanedFile]
    total_orphaned: int
    cleanup_performed: bool
    audit_time: datetime


class TransferRequest(CamelModel):
    new_user_id: uuid.UUID
    files: list[str]


class FileTransferResult(CamelModel):
    file_name: str
    success: bool
    message: str


class FileTransferResponse(CamelModel):
    results: list[FileTransferResult]
    success_count: int
    new_user_id: uuid.UUID
    transfer_date: datetime


class InventoryStatus(str, enum.Enum):
    ACTIVE = "Active"
    MARKED_AS_DELETED = "MarkedAsDeleted"
    MISSING_FROM_STORAGE = "MissingFromStorage"
    ORPHANED_IN_STORAGE = "OrphanedInStorage"


class FileOwner(CamelModel):
    id: uuid.UUID
    username: str


class FileInventoryItem(CamelModel):
    blob_name: str
    uri: str
    content_type: str
    size: int
    last_modified_in_storage: datetime | None = None
    upload_name: str | None = None
    upload_date: datetime | None = None
    is_deleted: bool = False
    deleted_date: datetime | None = None
    owner: FileOwner | None = None
    status: InventoryStatus
    version_count: int = 0
    has_deleted_versions: bool = False


class FileInventoryResponse(CamelModel):
    files: list[FileInventoryItem]
    total_count: int
    total_size: int
    scan_time: datetime


class FileExistenceResponse(CamelModel):
    file_name: str
    exists_in_database: bool
    exists_in_storage: bool
    content_type: str | None = None
    size: int = 0
    upload_date: datetime | None = None
    uri: str | None = None
