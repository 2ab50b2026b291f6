"""Repositories layer - Data access and persistence.

Repositories handle all database operations using SQLAlchemy.
They abstract the database implementation from the service layer.
"""

from content_converter.repositories.content import ContentRepository, NewVersion
from content_converter.repositories.entity import EntityRepository
from content_converter.repositories.source_records import (
    SourceRecord,
    SourceRecordRepository,
)

__all__ = [
    "ContentRepository",
    "EntityRepository",
    "NewVersion",
    "SourceRecord",
    "SourceRecordRepository",
]
