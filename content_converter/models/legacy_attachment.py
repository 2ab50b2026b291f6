"""LegacyAttachment model: binary attachments waiting to be converted to files."""

from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy import DateTime, ForeignKey, LargeBinary, String, Text, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from content_converter.core.database import Base


class LegacyAttachment(Base):
    """Legacy binary attachment on an entity.

    Attributes:
        id: UUID primary key
        parent_id: Entity the attachment belongs to
        owner_id: Principal owning the attachment
        name: File name as uploaded
        body: Binary content
        content_type: MIME type (nullable)
        description: Free-text description (nullable)
        is_private: Private attachments are only shared when explicitly allowed
        created_at: Timestamp when the attachment was uploaded
        updated_at: Timestamp when the attachment was last modified
    """

    __tablename__ = "legacy_attachments"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
        server_default=text("gen_random_uuid()"),
    )

    parent_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("entities.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    owner_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("principals.id"),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    body: Mapped[bytes] = mapped_column(
        LargeBinary,
        nullable=False,
    )

    content_type: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    description: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    is_private: Mapped[bool] = mapped_column(
        nullable=False,
        default=False,
        server_default=text("false"),
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        server_default=text("now()"),
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        server_default=text("now()"),
        onupdate=lambda: datetime.now(UTC),
    )

    def __repr__(self) -> str:
        return f"<LegacyAttachment(id={self.id!r}, name={self.name!r}, parent_id={self.parent_id!r})>"
