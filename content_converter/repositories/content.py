"""ContentRepository: bulk writes and reads of managed content.

Creation mirrors the store contract the conversion relies on: a version is
created owned by the principal running the job and only a follow-up update
can change the owner. Every operation here works on a whole chunk in one
statement (or one flush).

ERROR LOGGING REQUIREMENTS:
- Log method entry/exit at DEBUG level with counts
- Log all exceptions with context, then re-raise
- Add timing logs for operations >1 second
"""

import time
from collections.abc import Collection, Mapping, Sequence
from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from content_converter.core.logging import db_logger, get_logger
from content_converter.models.content import (
    ContentDocument,
    ContentDocumentLink,
    ContentVersion,
)

logger = get_logger(__name__)

SLOW_OPERATION_THRESHOLD_MS = 1000


@dataclass(frozen=True)
class NewVersion:
    """Field values of a content version to create."""

    title: str
    path_on_client: str
    version_data: bytes
    file_extension: str | None = None
    description: str | None = None
    original_record_id: str | None = None
    original_record_parent_id: str | None = None
    original_record_owner_id: str | None = None


class ContentRepository:
    """Repository for content documents, versions and links."""

    TABLE_NAME = "content_versions"

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session."""
        self.session = session

    def _check_slow(self, query: str, start_time: float, table: str) -> float:
        duration_ms = (time.monotonic() - start_time) * 1000
        if duration_ms > SLOW_OPERATION_THRESHOLD_MS:
            db_logger.slow_query(query=query, duration_ms=duration_ms, table=table)
        return duration_ms

    async def create_versions(
        self,
        new_versions: Sequence[NewVersion],
        creator_id: str | None = None,
    ) -> list[ContentVersion]:
        """Create one single-version document per entry.

        Args:
            new_versions: Versions to create
            creator_id: Principal running the job; becomes the initial owner

        Returns:
            Created versions, in the same order as new_versions
        """
        if not new_versions:
            return []

        start_time = time.monotonic()
        logger.debug(
            "Creating content versions",
            extra={"count": len(new_versions), "creator_id": creator_id},
        )

        try:
            documents = [ContentDocument(title=new_version.title) for new_version in new_versions]
            self.session.add_all(documents)
            await self.session.flush()

            versions = [
                ContentVersion(
                    content_document_id=document.id,
                    title=new_version.title,
                    path_on_client=new_version.path_on_client,
                    file_extension=new_version.file_extension,
                    description=new_version.description,
                    version_data=new_version.version_data,
                    owner_id=creator_id,
                    original_record_id=new_version.original_record_id,
                    original_record_parent_id=new_version.original_record_parent_id,
                    original_record_owner_id=new_version.original_record_owner_id,
                )
                for document, new_version in zip(documents, new_versions, strict=True)
            ]
            self.session.add_all(versions)
            await self.session.flush()

            for document, version in zip(documents, versions, strict=True):
                document.latest_published_version_id = version.id
            await self.session.flush()

        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e,
                table=self.TABLE_NAME,
                context=f"Creating {len(new_versions)} content versions",
            )
            raise

        duration_ms = self._check_slow(
            "INSERT INTO content_documents/content_versions", start_time, self.TABLE_NAME
        )
        logger.debug(
            "Content versions created",
            extra={"count": len(versions), "duration_ms": round(duration_ms, 2)},
        )
        return versions

    async def get_versions_by_ids(
        self, version_ids: Collection[str]
    ) -> list[ContentVersion]:
        """Re-read versions with their document loaded.

        Result order is unspecified; callers pair results by id.
        """
        if not version_ids:
            return []

        start_time = time.monotonic()
        try:
            result = await self.session.execute(
                select(ContentVersion)
                .options(selectinload(ContentVersion.document))
                .where(ContentVersion.id.in_(list(version_ids)))
                .execution_options(populate_existing=True)
            )
            versions = list(result.scalars().all())
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e,
                table=self.TABLE_NAME,
                context=f"Re-reading {len(version_ids)} content versions",
            )
            raise

        self._check_slow("SELECT FROM content_versions", start_time, self.TABLE_NAME)
        return versions

    async def update_owners(self, owner_by_version_id: Mapping[str, str]) -> int:
        """Set version owners in one bulk update.

        Returns:
            Number of versions updated (0 when the mapping is empty)
        """
        if not owner_by_version_id:
            return 0

        start_time = time.monotonic()
        try:
            await self.session.execute(
                update(ContentVersion),
                [
                    {"id": version_id, "owner_id": owner_id}
                    for version_id, owner_id in owner_by_version_id.items()
                ],
            )
            await self.session.flush()
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e,
                table=self.TABLE_NAME,
                context=f"Updating owner of {len(owner_by_version_id)} content versions",
            )
            raise

        duration_ms = self._check_slow(
            "UPDATE content_versions SET owner_id", start_time, self.TABLE_NAME
        )
        logger.debug(
            "Content version owners updated",
            extra={
                "count": len(owner_by_version_id),
                "duration_ms": round(duration_ms, 2),
            },
        )
        return len(owner_by_version_id)

    async def create_links(
        self, links: Sequence[ContentDocumentLink]
    ) -> list[ContentDocumentLink]:
        """Insert document links in one flush. An empty list is a no-op."""
        if not links:
            return []

        start_time = time.monotonic()
        try:
            self.session.add_all(links)
            await self.session.flush()
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e,
                table="content_document_links",
                context=f"Creating {len(links)} document links",
            )
            raise

        duration_ms = self._check_slow(
            "INSERT INTO content_document_links", start_time, "content_document_links"
        )
        logger.debug(
            "Document links created",
            extra={"count": len(links), "duration_ms": round(duration_ms, 2)},
        )
        return list(links)

    async def get_links_for_documents(
        self, document_ids: Collection[str]
    ) -> list[ContentDocumentLink]:
        """List links of the given documents."""
        if not document_ids:
            return []

        try:
            result = await self.session.execute(
                select(ContentDocumentLink).where(
                    ContentDocumentLink.content_document_id.in_(list(document_ids))
                )
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e,
                table="content_document_links",
                context=f"Loading links of {len(document_ids)} documents",
            )
            raise
