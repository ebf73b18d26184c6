import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, BigInteger, DateTime, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from filevault.database import Base
from filevault.exceptions import AlreadyDeleted


class FileState(str, enum.Enum):
    ACTIVE = "ACTIVE"
    SOFT_DELETED = "SOFT_DELETED"


class StoredFile(Base):
    """One upload event.

    ``blob_name`` is the join key with the bucket and is deliberately not
    unique: a name freed by a delete can be uploaded again, which adds a new
    row next to the soft-deleted history.
    """

    __tablename__ = "stored_files"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    filename: Mapped[str] = mapped_column(String, nullable=False)
    blob_name: Mapped[str] = mapped_column(String, index=True, nullable=False)
    content_type: Mapped[str] = mapped_column(String, nullable=False)
    size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    blob_uri: Mapped[str] = mapped_column(String, nullable=False, default="")
    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    owner: Mapped["User"] = relationship("User", back_populates="files")

    @property
    def state(self) -> FileState:
        return FileState.SOFT_DELETED if self.is_deleted else FileState.ACTIVE

    def soft_delete(self, when: datetime | None = None) -> None:
        """ACTIVE -> SOFT_DELETED. The row itself is kept as history."""
        if self.state is FileState.SOFT_DELETED:
            raise AlreadyDeleted("File is already marked as deleted")
        self.is_deleted = True
        self.deleted_at = when or datetime.now(timezone.utc)
