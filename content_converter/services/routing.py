"""RoutingResolver: which entity should a converted file be shared with?

Normally the legacy record's own parent. Attachments of inbound email
messages can instead be routed one hop further, to the message's parent
(typically a case), because email messages never accept share links.
"""

from collections.abc import Sequence
from dataclasses import dataclass

from content_converter.core.logging import get_logger
from content_converter.models.entity import INBOUND_MESSAGE_TYPE, Entity
from content_converter.repositories.entity import EntityRepository
from content_converter.repositories.source_records import SourceRecord

logger = get_logger(__name__)


@dataclass
class ConversionRequest:
    """A legacy record paired with the entity its file will be shared with.

    `sharing_supported` is filled in by the eligibility filter.
    """

    record: SourceRecord
    share_target_id: str
    share_target_type: str | None
    sharing_supported: bool = False

    @property
    def source_record_id(self) -> str:
        return str(self.record.id)

    @property
    def rerouted(self) -> bool:
        return self.share_target_id != str(self.record.parent_id)


class RoutingResolver:
    """Resolves the share target of each record in bulk."""

    def __init__(
        self,
        entity_repo: EntityRepository,
        route_inbound_messages: bool = False,
    ) -> None:
        self._entity_repo = entity_repo
        self._route_inbound_messages = route_inbound_messages

    async def resolve(self, records: Sequence[SourceRecord]) -> list[ConversionRequest]:
        """Build one request per record, in record order."""
        if not records:
            return []

        entities = await self._entity_repo.get_by_ids(
            {str(record.parent_id) for record in records}
        )

        if self._route_inbound_messages:
            # Message parents are needed to know the type of the rerouted target.
            message_parent_ids = {
                str(entity.parent_id)
                for entity in entities.values()
                if entity.is_inbound_message and str(entity.parent_id) not in entities
            }
            if message_parent_ids:
                entities.update(await self._entity_repo.get_by_ids(message_parent_ids))

        requests = []
        for record in records:
            target_id = self._share_target(record, entities)
            target = entities.get(target_id)
            requests.append(
                ConversionRequest(
                    record=record,
                    share_target_id=target_id,
                    share_target_type=target.entity_type if target else None,
                )
            )

        rerouted = sum(1 for request in requests if request.rerouted)
        logger.debug(
            "Share targets resolved",
            extra={"request_count": len(requests), "rerouted": rerouted},
        )
        return requests

    def _share_target(self, record: SourceRecord, entities: dict[str, Entity]) -> str:
        parent_id = str(record.parent_id)
        if not self._route_inbound_messages:
            return parent_id

        parent = entities.get(parent_id)
        if parent is None or parent.entity_type != INBOUND_MESSAGE_TYPE:
            return parent_id
        if not parent.is_inbound_message:
            logger.debug(
                "Email message not routable, sharing with the message itself",
                extra={
                    "record_id": str(record.id),
                    "message_id": parent_id,
                    "is_incoming": parent.is_incoming,
                    "has_attachment": parent.has_attachment,
                    "has_parent": parent.parent_id is not None,
                },
            )
            return parent_id
        return str(parent.parent_id)
