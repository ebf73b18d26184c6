import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, Enum, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from filevault.database import Base


class Role(str, enum.Enum):
    ADMIN = "ADMIN"
    USER = "USER"

    @classmethod
    def parse(cls, value: str | None) -> "Role":
        """Accept any casing and surrounding whitespace; raise ValueError for unknown roles."""
        if value is None:
            raise ValueError("Role is required")
        return cls(value.strip().upper())

    def allows(self, required: "Role") -> bool:
        # ADMIN carries every USER capability
        return self is Role.ADMIN or self is required


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    username: Mapped[str] = mapped_column(String(150), unique=True, index=True, nullable=False)
    hashed_password: Mapped[str] = mapped_column(String, nullable=False)
    role: Mapped[Role] = mapped_column(
        Enum(Role, native_enum=False, length=10), default=Role.USER, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    files: Mapped[list["StoredFile"]] = relationship(back_populates="owner", cascade="all, delete-orphan")
