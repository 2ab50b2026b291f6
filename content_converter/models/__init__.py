"""Models layer - SQLAlchemy ORM models.

Models define the database schema.
All models inherit from the Base class defined in core.database.
"""

from content_converter.core.database import Base
from content_converter.models.content import (
    ContentDocument,
    ContentDocumentLink,
    ContentVersion,
    LinkVisibility,
    ShareType,
)
from content_converter.models.entity import INBOUND_MESSAGE_TYPE, Entity, EntityType
from content_converter.models.legacy_attachment import LegacyAttachment
from content_converter.models.legacy_note import LegacyNote
from content_converter.models.principal import Principal

__all__ = [
    "Base",
    "ContentDocument",
    "ContentDocumentLink",
    "ContentVersion",
    "Entity",
    "EntityType",
    "INBOUND_MESSAGE_TYPE",
    "LegacyAttachment",
    "LegacyNote",
    "LinkVisibility",
    "Principal",
    "ShareType",
]
