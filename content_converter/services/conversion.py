"""ConversionPipeline: converts one chunk of legacy records into files.

Phases run strictly in order on one session, each as a single bulk store
operation:

1. resolve share targets (RoutingResolver)
2. filter records whose target cannot be shared with (EligibilityFilter)
3. create content documents/versions (materialize)
4. re-read the created versions
5. restore the original owners and create share links
6. optionally delete the converted legacy records

Per-record business outcomes are returned as ConversionResult data. Store
errors (SQLAlchemyError) are not caught here: they abort the chunk and
propagate to the caller.

ERROR LOGGING REQUIREMENTS:
- Log phase completion with counts at DEBUG level
- Include record/content ids in warnings
- Add timing logs for chunks >1 second
"""

import time
from collections.abc import Collection, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from content_converter.core.logging import conversion_logger, get_logger
from content_converter.models.content import ContentDocumentLink, ContentVersion
from content_converter.repositories.content import ContentRepository
from content_converter.repositories.entity import EntityRepository
from content_converter.repositories.source_records import (
    SourceRecord,
    SourceRecordRepository,
)
from content_converter.schemas.conversion import ConversionKind, ConversionOptions
from content_converter.services.capability import SharingCapabilityService
from content_converter.services.eligibility import EligibilityFilter
from content_converter.services.record_kinds import RecordKindStrategy, get_record_kind
from content_converter.services.results import ConversionResult, ConversionResultSet
from content_converter.services.routing import ConversionRequest, RoutingResolver

logger = get_logger(__name__)

SLOW_OPERATION_THRESHOLD_MS = 1000

PRIVATE_RECORD_MESSAGE = (
    "Not shared with {target}: the source record is private "
    "and share_private is disabled."
)
SHARING_DISABLED_MESSAGE = (
    "Not shared with {target}: entity type '{type_name}' does not support sharing."
)


class ConversionServiceError(Exception):
    """Base exception for conversion errors."""

    pass


class ConversionValidationError(ConversionServiceError):
    """Raised when a conversion is requested with invalid input."""

    def __init__(self, field_name: str, value: object, message: str) -> None:
        self.field_name = field_name
        self.value = value
        self.message = message
        super().__init__(f"Validation failed for '{field_name}': {message}")


class ConversionPipeline:
    """Converts legacy notes or attachments of one chunk."""

    def __init__(
        self,
        session: AsyncSession,
        kind: ConversionKind | str,
        options: ConversionOptions | None = None,
    ) -> None:
        try:
            self.strategy: RecordKindStrategy = get_record_kind(kind)
        except ValueError as e:
            raise ConversionValidationError("kind", kind, "unknown record kind") from e

        self.options = options or ConversionOptions()
        self.session = session
        self.source_repo = SourceRecordRepository(session, self.strategy.model)
        self.content_repo = ContentRepository(session)
        entity_repo = EntityRepository(session)
        self.router = RoutingResolver(
            entity_repo,
            route_inbound_messages=(
                self.strategy.routes_inbound_messages
                and self.options.route_inbound_message_attachments_to_case
            ),
        )
        self.eligibility = EligibilityFilter(
            SharingCapabilityService(entity_repo),
            convert_if_sharing_capability_disabled=(
                self.options.convert_if_sharing_capability_disabled
            ),
        )

    @property
    def kind(self) -> str:
        return self.strategy.kind.value

    async def convert_ids(self, record_ids: Collection[str]) -> list[ConversionResult]:
        """Load the records and convert them.

        Ids that no longer exist produce no result (already converted and
        deleted, or removed by someone else).
        """
        records = await self.source_repo.get_by_ids(record_ids)
        if len(records) < len(record_ids):
            logger.info(
                "Some records no longer exist and are skipped",
                extra={
                    "kind": self.kind,
                    "requested": len(record_ids),
                    "found": len(records),
                },
            )
        return await self.convert(records)

    async def convert(self, records: Sequence[SourceRecord]) -> list[ConversionResult]:
        """Run every phase for the records and return one result per record."""
        start_time = time.monotonic()
        records = list({str(record.id): record for record in records}.values())
        results = ConversionResultSet()
        if not records:
            return []

        requests = await self.router.resolve(records)
        conversion_logger.phase_complete("resolve", self.kind, requests=len(requests))

        eligible = await self.eligibility.apply(requests, results)
        conversion_logger.phase_complete(
            "filter", self.kind, eligible=len(eligible), rejected=len(results)
        )

        requests_by_version_id = await self._materialize(eligible, results)
        conversion_logger.phase_complete(
            "materialize", self.kind, versions_created=len(requests_by_version_id)
        )

        versions = await self.content_repo.get_versions_by_ids(
            list(requests_by_version_id)
        )
        conversion_logger.phase_complete("requery", self.kind, versions=len(versions))

        owners, links = await self._restore(versions, requests_by_version_id, results)
        conversion_logger.phase_complete(
            "restore", self.kind, owners_updated=owners, links_created=links
        )

        if self.options.delete_source_upon_conversion:
            deleted = await self._cleanup(versions)
            conversion_logger.phase_complete("cleanup", self.kind, deleted=deleted)

        duration_ms = (time.monotonic() - start_time) * 1000
        if duration_ms > SLOW_OPERATION_THRESHOLD_MS:
            logger.warning(
                "Slow conversion chunk",
                extra={
                    "kind": self.kind,
                    "record_count": len(records),
                    "duration_ms": round(duration_ms, 2),
                    "threshold_ms": SLOW_OPERATION_THRESHOLD_MS,
                },
            )
        return results.results()

    async def _materialize(
        self,
        requests: Sequence[ConversionRequest],
        results: ConversionResultSet,
    ) -> dict[str, ConversionRequest]:
        """Create one content version per request.

        Returns:
            Map of created version id to the request it was created for
        """
        versions = await self.content_repo.create_versions(
            [self.strategy.build_version(request.record) for request in requests],
            creator_id=self.options.run_as_principal_id,
        )

        requests_by_version_id: dict[str, ConversionRequest] = {}
        for request, version in zip(requests, versions, strict=True):
            version_id = str(version.id)
            requests_by_version_id[version_id] = request
            results.record_success(request.source_record_id, version_id)
        return requests_by_version_id

    async def _restore(
        self,
        versions: Sequence[ContentVersion],
        requests_by_version_id: dict[str, ConversionRequest],
        results: ConversionResultSet,
    ) -> tuple[int, int]:
        """Give each file back to the record's owner and share it when allowed.

        Returns:
            (owners updated, links created)
        """
        owner_by_version_id: dict[str, str] = {}
        links: list[ContentDocumentLink] = []

        for version in versions:
            request = requests_by_version_id.get(str(version.id))
            if request is None:
                logger.warning(
                    "Re-read content version has no matching request",
                    extra={"version_id": str(version.id), "kind": self.kind},
                )
                continue

            record = request.record
            result = results.get(request.source_record_id)
            if result is not None:
                result.content_document_id = str(version.content_document_id)

            published_version_id = (
                version.document.latest_published_version_id or version.id
            )
            owner_by_version_id[str(published_version_id)] = str(record.owner_id)

            if not request.sharing_supported:
                results.annotate(
                    request.source_record_id,
                    SHARING_DISABLED_MESSAGE.format(
                        target=request.share_target_id,
                        type_name=request.share_target_type or "unknown",
                    ),
                )
            elif record.is_private and not self.options.share_private:
                results.annotate(
                    request.source_record_id,
                    PRIVATE_RECORD_MESSAGE.format(target=request.share_target_id),
                )
            else:
                links.append(
                    ContentDocumentLink(
                        content_document_id=str(version.content_document_id),
                        linked_entity_id=request.share_target_id,
                        share_type=self.options.share_type,
                        visibility=self.options.visibility,
                    )
                )

        updated = await self.content_repo.update_owners(owner_by_version_id)
        created = await self.content_repo.create_links(links)
        return updated, len(created)

    async def _cleanup(self, versions: Sequence[ContentVersion]) -> int:
        """Delete the legacy records the re-read versions were converted from."""
        converted_ids = {
            str(version.original_record_id)
            for version in versions
            if version.original_record_id is not None
        }
        return await self.source_repo.delete_by_ids(converted_ids)
