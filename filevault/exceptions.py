"""Domain errors raised by the storage logic.

Each carries the HTTP status it maps to; ``filevault.main`` renders them
as ``{"detail": message}``.
"""

from fastapi import status


class FileVaultError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(FileVaultError):
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidFilename(ValidationError):
    pass


class Conflict(FileVaultError):
    status_code = status.HTTP_409_CONFLICT


class NotFound(FileVaultError):
    status_code = status.HTTP_404_NOT_FOUND


class AlreadyDeleted(FileVaultError):
    status_code = status.HTTP_400_BAD_REQUEST


class StoreFailure(FileVaultError):
    """Blob or record store failed; the original error is chained."""
