"""SourceRecordRepository: bulk access to legacy notes and attachments.

One repository class serves both legacy tables; it is bound to the model
it reads and deletes.

ERROR LOGGING REQUIREMENTS:
- Log method entry/exit at DEBUG level with parameters (sanitized)
- Log all exceptions with context, then re-raise
- Include table name and record counts in all logs
- Add timing logs for operations >1 second
"""

import time
from collections.abc import Collection

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from content_converter.core.logging import db_logger, get_logger
from content_converter.models.legacy_attachment import LegacyAttachment
from content_converter.models.legacy_note import LegacyNote
from content_converter.models.principal import Principal

logger = get_logger(__name__)

SLOW_OPERATION_THRESHOLD_MS = 1000

SourceRecord = LegacyNote | LegacyAttachment


class SourceRecordRepository:
    """Bulk reads and deletes for one legacy record table."""

    def __init__(
        self,
        session: AsyncSession,
        model: type[LegacyNote] | type[LegacyAttachment],
    ) -> None:
        """Initialize repository with database session and legacy model."""
        self.session = session
        self.model = model
        self.table_name: str = model.__tablename__
        logger.debug(
            "SourceRecordRepository initialized",
            extra={"table": self.table_name},
        )

    def _check_slow(self, query: str, start_time: float) -> float:
        duration_ms = (time.monotonic() - start_time) * 1000
        if duration_ms > SLOW_OPERATION_THRESHOLD_MS:
            db_logger.slow_query(
                query=query,
                duration_ms=duration_ms,
                table=self.table_name,
            )
        return duration_ms

    async def list_ids_for_conversion(
        self, scope_parent_ids: Collection[str] | None = None
    ) -> list[str]:
        """List ids of records eligible for a conversion run.

        Only records owned by active principals are returned, ordered by
        parent entity so records of the same parent land in the same chunk.

        Args:
            scope_parent_ids: None selects every record, an empty collection
                selects nothing, otherwise only records of these parents.

        Returns:
            Record ids ordered by parent id, then id
        """
        if scope_parent_ids is not None and len(scope_parent_ids) == 0:
            logger.debug(
                "Empty parent scope, nothing to select",
                extra={"table": self.table_name},
            )
            return []

        start_time = time.monotonic()
        logger.debug(
            "Selecting records for conversion",
            extra={
                "table": self.table_name,
                "scoped": scope_parent_ids is not None,
                "scope_size": len(scope_parent_ids) if scope_parent_ids else None,
            },
        )

        stmt = (
            select(self.model.id)
            .join(Principal, Principal.id == self.model.owner_id)
            .where(Principal.is_active.is_(True))
            .order_by(self.model.parent_id, self.model.id)
        )
        if scope_parent_ids is not None:
            stmt = stmt.where(self.model.parent_id.in_(list(scope_parent_ids)))

        try:
            result = await self.session.execute(stmt)
            ids = [str(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e,
                table=self.table_name,
                context="Selecting records for conversion",
            )
            raise

        duration_ms = self._check_slow(f"SELECT id FROM {self.table_name}", start_time)
        logger.debug(
            "Records selected for conversion",
            extra={
                "table": self.table_name,
                "count": len(ids),
                "duration_ms": round(duration_ms, 2),
            },
        )
        return ids

    async def get_by_ids(self, record_ids: Collection[str]) -> list[SourceRecord]:
        """Load full records (payload included) for one chunk.

        Ids that no longer exist are silently absent from the result.
        """
        if not record_ids:
            return []

        start_time = time.monotonic()
        try:
            result = await self.session.execute(
                select(self.model)
                .where(self.model.id.in_(list(record_ids)))
                .order_by(self.model.parent_id, self.model.id)
            )
            records: list[SourceRecord] = list(result.scalars().all())
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e,
                table=self.table_name,
                context=f"Loading {len(record_ids)} records by id",
            )
            raise

        duration_ms = self._check_slow(f"SELECT FROM {self.table_name}", start_time)
        logger.debug(
            "Records loaded",
            extra={
                "table": self.table_name,
                "requested": len(record_ids),
                "found": len(records),
                "duration_ms": round(duration_ms, 2),
            },
        )
        return records

    async def delete_by_ids(self, record_ids: Collection[str]) -> int:
        """Delete records in one statement.

        Returns:
            Number of rows deleted
        """
        if not record_ids:
            return 0

        start_time = time.monotonic()
        logger.debug(
            "Deleting converted records",
            extra={"table": self.table_name, "count": len(record_ids)},
        )
        try:
            result = await self.session.execute(
                delete(self.model).where(self.model.id.in_(list(record_ids)))
            )
            await self.session.flush()
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e,
                table=self.table_name,
                context=f"Deleting {len(record_ids)} converted records",
            )
            raise

        self._check_slow(f"DELETE FROM {self.table_name}", start_time)
        deleted: int = result.rowcount or 0
        logger.info(
            "Converted records deleted",
            extra={"table": self.table_name, "deleted": deleted},
        )
        return deleted
