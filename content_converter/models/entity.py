"""Entity type metadata and parent entities of legacy records.

Every note and attachment hangs off an entity (account, case, email message,
...). The entity's type decides whether converted files can be shared with
it: `EntityType.sharing_enabled` is the sharing capability flag.

Email messages carry the extra fields used to route their attachments to the
case they belong to (`parent_id`, `is_incoming`, `has_attachment`).
"""

from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy import DateTime, ForeignKey, String, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from content_converter.core.database import Base

INBOUND_MESSAGE_TYPE = "EmailMessage"


class EntityType(Base):
    """Per-type metadata.

    Attributes:
        name: Type API name, primary key (e.g. 'Account', 'EmailMessage')
        label: Human readable label
        sharing_enabled: Whether share links may point at entities of this type
    """

    __tablename__ = "entity_types"

    name: Mapped[str] = mapped_column(
        String(100),
        primary_key=True,
    )

    label: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    sharing_enabled: Mapped[bool] = mapped_column(
        nullable=False,
        default=False,
        server_default=text("false"),
    )

    def __repr__(self) -> str:
        return f"<EntityType(name={self.name!r}, sharing_enabled={self.sharing_enabled!r})>"


class Entity(Base):
    """A record legacy notes and attachments can be attached to.

    Attributes:
        id: UUID primary key
        entity_type: Foreign key to entity_types.name
        name: Display name
        parent_id: Owning entity, set on email messages (e.g. their case)
        is_incoming: Email messages only, True for inbound mail
        has_attachment: Email messages only, True when attachments exist
        created_at: Timestamp when the entity was created
    """

    __tablename__ = "entities"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
        server_default=text("gen_random_uuid()"),
    )

    entity_type: Mapped[str] = mapped_column(
        String(100),
        ForeignKey("entity_types.name"),
        nullable=False,
        index=True,
    )

    name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    parent_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        nullable=True,
        index=True,
    )

    is_incoming: Mapped[bool] = mapped_column(
        nullable=False,
        default=False,
        server_default=text("false"),
    )

    has_attachment: Mapped[bool] = mapped_column(
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

    @property
    def is_inbound_message(self) -> bool:
        """True for incoming email messages that carry attachments and have a parent."""
        return (
            self.entity_type == INBOUND_MESSAGE_TYPE
            and self.is_incoming
            and self.has_attachment
            and self.parent_id is not None
        )

    def __repr__(self) -> str:
        return f"<Entity(id={self.id!r}, entity_type={self.entity_type!r})>"
