"""ConversionBatchRunner: drives a whole conversion run in chunks.

Record ids are selected up front, split into chunks of batch_size and each
chunk is converted in its own session and transaction. A store failure
rolls back and aborts only that chunk; the run continues with the next
one. When notification addresses are configured, the combined results are
emailed once every chunk has finished.

ERROR LOGGING REQUIREMENTS:
- Log run start/end with counts at INFO level
- Log chunk failures at ERROR level with the affected record ids
- Never let a notification failure fail the run
"""

import asyncio
import time
from collections.abc import Iterator, Sequence
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from content_converter.core.database import DatabaseManager, db_manager, transaction
from content_converter.core.logging import conversion_logger, get_logger
from content_converter.repositories.source_records import SourceRecordRepository
from content_converter.schemas.conversion import ConversionKind, ConversionOptions
from content_converter.services.conversion import ConversionPipeline
from content_converter.services.notification import ConversionNotificationService
from content_converter.services.record_kinds import get_record_kind
from content_converter.services.results import (
    BatchRunSummary,
    ConversionResult,
    FailedChunk,
)

logger = get_logger(__name__)


def chunked(record_ids: Sequence[str], size: int) -> Iterator[list[str]]:
    """Split ids into consecutive chunks of at most size ids."""
    if size < 1:
        raise ValueError("chunk size must be at least 1")
    for start in range(0, len(record_ids), size):
        yield list(record_ids[start : start + size])


class ConversionBatchRunner:
    """Runs one conversion kind over every selected record, chunk by chunk."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        kind: ConversionKind | str,
        options: ConversionOptions | None = None,
        notification_service: ConversionNotificationService | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.kind = ConversionKind(kind)
        self.options = options or ConversionOptions.from_settings()
        self._notification_service = notification_service

    @property
    def notification_service(self) -> ConversionNotificationService:
        if self._notification_service is None:
            self._notification_service = ConversionNotificationService()
        return self._notification_service

    async def discover(self) -> list[str]:
        """Select the ids this run converts."""
        model = get_record_kind(self.kind).model
        async with self.session_factory() as session:
            repo = SourceRecordRepository(session, model)
            return await repo.list_ids_for_conversion(self.options.scope_parent_ids)

    async def run_chunk(
        self, chunk_index: int, record_ids: list[str]
    ) -> list[ConversionResult]:
        """Convert one chunk in its own transaction.

        Raises:
            SQLAlchemyError: The chunk was rolled back
        """
        start_time = time.monotonic()
        conversion_logger.chunk_start(self.kind.value, chunk_index, len(record_ids))

        async with self.session_factory() as session:
            async with transaction(
                session, context=f"{self.kind.value} conversion chunk {chunk_index}"
            ):
                pipeline = ConversionPipeline(session, self.kind, self.options)
                results = await pipeline.convert_ids(record_ids)

        conversion_logger.chunk_end(
            self.kind.value,
            chunk_index,
            len(results),
            (time.monotonic() - start_time) * 1000,
        )
        return results

    async def run(self) -> BatchRunSummary:
        """Convert every selected record and notify the configured addresses."""
        start_time = time.monotonic()
        record_ids = await self.discover()
        summary = BatchRunSummary(kind=self.kind.value, total_records=len(record_ids))
        conversion_logger.run_start(
            self.kind.value, len(record_ids), self.options.batch_size
        )

        for chunk_index, chunk_ids in enumerate(
            chunked(record_ids, self.options.batch_size)
        ):
            summary.chunk_count += 1
            try:
                summary.results.extend(await self.run_chunk(chunk_index, chunk_ids))
            except SQLAlchemyError as e:
                conversion_logger.chunk_failure(self.kind.value, chunk_index, chunk_ids, e)
                summary.failed_chunks.append(
                    FailedChunk(
                        chunk_index=chunk_index,
                        record_ids=chunk_ids,
                        error=f"{type(e).__name__}: {e}",
                    )
                )

        summary.duration_ms = (time.monotonic() - start_time) * 1000
        conversion_logger.run_end(
            self.kind.value,
            summary.converted,
            summary.failed,
            len(summary.failed_chunks),
            summary.duration_ms,
        )

        if self.options.notification_addresses:
            try:
                await self.notification_service.send_results(
                    summary, self.options.notification_addresses
                )
            except Exception:
                logger.exception(
                    "Conversion result notification failed",
                    extra={
                        "kind": self.kind.value,
                        "recipient_count": len(self.options.notification_addresses),
                    },
                )
        return summary


async def run_conversion(
    kind: ConversionKind | str,
    options: ConversionOptions | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> BatchRunSummary:
    """Run a conversion with the application's database."""
    runner = ConversionBatchRunner(
        session_factory or db_manager.session_factory,
        kind,
        options,
    )
    return await runner.run()


def run_scheduled_conversion(kind: str) -> dict[str, Any]:
    """Scheduler entry point.

    Runs in a scheduler worker thread, so it owns its event loop and
    database engine for the duration of the run.
    """

    async def _run() -> BatchRunSummary:
        database = DatabaseManager()
        database.init_db()
        try:
            return await run_conversion(
                kind,
                ConversionOptions.from_settings(),
                session_factory=database.session_factory,
            )
        finally:
            await database.close()

    summary = asyncio.run(_run())
    logger.info(
        "Scheduled conversion finished",
        extra={"kind": kind, **summary.counts()},
    )
    return {"kind": kind, **summary.counts()}
