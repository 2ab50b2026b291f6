"""Managed content models: documents, versions and document links.

A ContentDocument is the durable file container; each ContentVersion is one
revision of it and carries the payload. Converted legacy records become a
single-version document. ContentDocumentLink grants an entity visibility of
a document.

The provenance columns on ContentVersion (original_record_*) are plain
columns, not foreign keys: they must keep pointing at the legacy record after
that record has been deleted.
"""

from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from sqlalchemy import DateTime, ForeignKey, LargeBinary, String, Text, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from content_converter.core.database import Base


class ShareType(str, Enum):
    """Permission granted by a document link."""

    VIEWER = "V"
    COLLABORATOR = "C"
    INFERRED = "I"


class LinkVisibility(str, Enum):
    """Audience that can see a document through a link."""

    ALL_USERS = "AllUsers"
    INTERNAL_USERS = "InternalUsers"
    SHARED_USERS = "SharedUsers"


class ContentDocument(Base):
    """Container for the versions of one file.

    Attributes:
        id: UUID primary key
        title: Title of the latest version
        latest_published_version_id: Pointer to the current version
        created_at: Timestamp when the document was created
    """

    __tablename__ = "content_documents"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
        server_default=text("gen_random_uuid()"),
    )

    title: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    latest_published_version_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        server_default=text("now()"),
    )

    versions: Mapped[list["ContentVersion"]] = relationship(
        "ContentVersion",
        back_populates="document",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<ContentDocument(id={self.id!r}, title={self.title!r})>"


class ContentVersion(Base):
    """One revision of a managed file.

    Attributes:
        id: UUID primary key
        content_document_id: Owning document
        title: File title
        path_on_client: Client-side file path, determines the file extension
        file_extension: Extension derived from path_on_client (e.g. 'pdf', 'snote')
        description: Free-text description (nullable)
        version_data: Binary payload
        owner_id: Owning principal
        original_record_id: Id of the legacy note/attachment this was converted from
        original_record_parent_id: Parent entity of that legacy record
        original_record_owner_id: Owner of that legacy record
        created_at: Timestamp when the version was created
    """

    __tablename__ = "content_versions"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
        server_default=text("gen_random_uuid()"),
    )

    content_document_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("content_documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    title: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    path_on_client: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
    )

    file_extension: Mapped[str | None] = mapped_column(
        String(40),
        nullable=True,
    )

    description: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    version_data: Mapped[bytes] = mapped_column(
        LargeBinary,
        nullable=False,
    )

    owner_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("principals.id"),
        nullable=True,
        index=True,
    )

    original_record_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        nullable=True,
        index=True,
    )

    original_record_parent_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        nullable=True,
    )

    original_record_owner_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        server_default=text("now()"),
    )

    document: Mapped[ContentDocument] = relationship(
        "ContentDocument",
        back_populates="versions",
    )

    def __repr__(self) -> str:
        return (
            f"<ContentVersion(id={self.id!r}, title={self.title!r}, "
            f"original_record_id={self.original_record_id!r})>"
        )


class ContentDocumentLink(Base):
    """Grants an entity visibility of a content document.

    Attributes:
        id: UUID primary key
        content_document_id: Linked document
        linked_entity_id: Entity the document is shared with
        share_type: Permission granted (see ShareType)
        visibility: Audience (see LinkVisibility)
        created_at: Timestamp when the link was created
    """

    __tablename__ = "content_document_links"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
        server_default=text("gen_random_uuid()"),
    )

    content_document_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("content_documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    linked_entity_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        nullable=False,
        index=True,
    )

    share_type: Mapped[str] = mapped_column(
        String(1),
        nullable=False,
        default=ShareType.VIEWER.value,
    )

    visibility: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=LinkVisibility.ALL_USERS.value,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        server_default=text("now()"),
    )

    def __repr__(self) -> str:
        return (
            f"<ContentDocumentLink(content_document_id={self.content_document_id!r}, "
            f"linked_entity_id={self.linked_entity_id!r})>"
        )
