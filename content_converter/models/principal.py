"""Principal model for record owners and the identity conversions run as."""

from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy import DateTime, String, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from content_converter.core.database import Base


class Principal(Base):
    """A user that can own notes, attachments and content versions.

    Attributes:
        id: UUID primary key
        name: Display name
        email: Contact address (nullable)
        is_active: Inactive principals' records are never selected for conversion
        created_at: Timestamp when the principal was created
    """

    __tablename__ = "principals"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
        server_default=text("gen_random_uuid()"),
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    email: Mapped[str | None] = mapped_column(
        String(320),
        nullable=True,
    )

    is_active: Mapped[bool] = mapped_column(
        nullable=False,
        default=True,
        server_default=text("true"),
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        server_default=text("now()"),
    )

    def __repr__(self) -> str:
        return f"<Principal(id={self.id!r}, name={self.name!r}, is_active={self.is_active!r})>"
