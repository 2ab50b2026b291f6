"""LegacyNote model: free-text notes waiting to be converted to files."""

from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy import DateTime, ForeignKey, String, Text, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from content_converter.core.database import Base


class LegacyNote(Base):
    """Legacy plain-text note attached to an entity.

    Attributes:
        id: UUID primary key
        parent_id: Entity the note is attached to
        owner_id: Principal owning the note
        title: Note title
        body: Plain text body (nullable)
        is_private: Private notes are only shared when explicitly allowed
        created_at: Timestamp when the note was created
        updated_at: Timestamp when the note was last modified
    """

    __tablename__ = "legacy_notes"

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

    title: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    body: Mapped[str | None] = mapped_column(
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
        return f"<LegacyNote(id={self.id!r}, title={self.title!r}, parent_id={self.parent_id!r})>"
